from __future__ import annotations

import logging

from ironquest.db import get_schedule_context
from ironquest.jobs.atrophy_tick import run_atrophy_tick

MIDNIGHT_WINDOW_MINUTES = 15


def main() -> None:
    ctx = get_schedule_context()

    # Run this command every 5-10 minutes via cron/systemd timer.
    # The tick closes each user's previous local day, and users already decayed
    # for that day are skipped, so repeats inside the window are harmless.
    if ctx["local_hour"] == 0 and ctx["local_minute"] < MIDNIGHT_WINDOW_MINUTES:
        run_atrophy_tick()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    main()
