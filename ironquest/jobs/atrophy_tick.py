from __future__ import annotations

import logging

from ironquest.atrophy import process_atrophy
from ironquest.db import init_db

logger = logging.getLogger(__name__)


def run_atrophy_tick(for_date: str | None = None) -> dict:
    init_db()
    result = process_atrophy(for_date)
    logger.info(
        "Atrophy tick %s: %d candidates, %d applied, %d skipped, %d failed",
        result["date"] or "(previous local day)",
        result["candidates"],
        result["applied"],
        result["skipped"],
        len(result["failures"]),
    )
    for failure in result["failures"]:
        logger.warning("Atrophy failed for user %s: %s", failure["user_id"], failure["error"])
    return result


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_atrophy_tick()


if __name__ == "__main__":
    main()
