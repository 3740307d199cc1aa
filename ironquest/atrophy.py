"""Daily decay of XP for inactive users.

On any date a user is ``active`` (acted today), ``immune`` (inside the
new-user grace window) or ``decayable``. The daily sweep takes 1% off the
character XP and each stat pool of every decayable user and recomputes
their levels, so a long break can cost levels, not just XP.

The sweep judges a closed day: unless a date is forced, each user is judged
on the day that just ended in their own timezone, so it can run at any hour
and training on that day always protects them.
"""

from __future__ import annotations

import logging
import math
from datetime import date, timedelta

from ironquest import db
from ironquest.progression import STAT_FIELDS, derive_levels

logger = logging.getLogger(__name__)

ATROPHY_RATE = 0.01
NEW_USER_IMMUNITY_DAYS = 7

ACTIVE = "active"
IMMUNE = "immune"
DECAYABLE = "decayable"

XP_FIELDS = ("experience", *STAT_FIELDS)


def _today(user: dict | None, today: str | None) -> str:
    return today or db.today_key((user or {}).get("timezone"))


def closing_day(user: dict, for_date: str | None = None) -> str:
    return for_date or db.yesterday_key(user.get("timezone"))


def _due(user: dict, day: str) -> bool:
    return atrophy_state(user, day) == DECAYABLE and user.get("last_atrophy_date") != day


def atrophy_state(user: dict, today: str) -> str:
    last = user.get("last_activity_date")
    if last is not None and last >= today:
        return ACTIVE
    immunity = user.get("atrophy_immunity_until")
    if immunity is not None and immunity >= today:
        return IMMUNE
    return DECAYABLE


def _loss(xp: int) -> int:
    # At least one point, or small balances would never decay.
    if xp <= 0:
        return 0
    return max(1, math.floor(xp * ATROPHY_RATE))


def compute_atrophy(user: dict) -> dict:
    """New XP and level fields after one day of decay."""
    updated = {}
    for field in XP_FIELDS:
        xp = user.get(field) or 0
        updated[field] = max(0, xp - _loss(xp))
    updated.update(derive_levels(updated))
    return updated


def apply_atrophy(user_id: int, for_date: str | None = None) -> dict | None:
    """Decay one user for a closed day in its own transaction.

    Returns None when they no longer qualify.
    """
    with db.write_txn() as conn:
        user = db.fetch_user(conn, user_id)
        if user is None:
            raise db.UserNotFoundError(user_id)
        day = closing_day(user, for_date)
        if not _due(user, day):
            return None

        updated = compute_atrophy(user)
        updated["last_atrophy_date"] = day
        db.write_user(conn, user_id, updated)

        losses = {field: user[field] - updated[field] for field in XP_FIELDS}
        db.insert_event(
            conn,
            user_id,
            day,
            "atrophy",
            f"Atrophy: -{losses['experience']} XP, -{losses['strength_xp']} STR, "
            f"-{losses['stamina_xp']} STA, -{losses['agility_xp']} AGI",
            losses,
        )
        if updated["level"] < user["level"]:
            db.insert_event(conn, user_id, day, "level_down", f"Dropped to level {updated['level']}.")
        return updated


def process_atrophy(for_date: str | None = None) -> dict:
    """Sweep every user; ``for_date`` forces one judged day for all of them."""
    candidates = [u["id"] for u in db.get_all_users() if _due(u, closing_day(u, for_date))]
    logger.info("Processing atrophy for %d inactive users on %s", len(candidates), for_date or "each user's previous day")

    applied = 0
    skipped = 0
    failures = []
    for user_id in candidates:
        try:
            if apply_atrophy(user_id, for_date) is None:
                skipped += 1
            else:
                applied += 1
        except Exception as exc:
            logger.exception("Error applying atrophy to user %s", user_id)
            failures.append({"user_id": user_id, "error": str(exc)})

    return {"date": for_date, "candidates": len(candidates), "applied": applied, "skipped": skipped, "failures": failures}


def record_activity(user_id: int, today: str | None = None) -> None:
    with db.write_txn() as conn:
        user = db.fetch_user(conn, user_id)
        if user is None:
            raise db.UserNotFoundError(user_id)
        db.write_user(conn, user_id, {"last_activity_date": _today(user, today)})


def grant_new_user_immunity(user_id: int, today: str | None = None) -> str:
    with db.write_txn() as conn:
        user = db.fetch_user(conn, user_id)
        if user is None:
            raise db.UserNotFoundError(user_id)
        today = _today(user, today)
        until = (date.fromisoformat(today) + timedelta(days=NEW_USER_IMMUNITY_DAYS)).isoformat()
        db.write_user(conn, user_id, {"atrophy_immunity_until": until, "last_activity_date": today})
        db.insert_event(conn, user_id, today, "immunity", f"Atrophy immunity until {until}.")
        return until


def use_streak_freeze(user_id: int, today: str | None = None) -> dict:
    with db.write_txn() as conn:
        user = db.fetch_user(conn, user_id)
        if user is None:
            raise db.UserNotFoundError(user_id)
        if user["streak_freeze_count"] <= 0:
            return {"success": False, "remaining_freezes": 0}
        today = _today(user, today)
        remaining = user["streak_freeze_count"] - 1
        db.write_user(conn, user_id, {"streak_freeze_count": remaining, "last_activity_date": today})
        db.insert_event(conn, user_id, today, "streak_freeze", "Spent a streak freeze to skip atrophy.")
        return {"success": True, "remaining_freezes": remaining}


def get_user_atrophy_status(user_id: int, today: str | None = None) -> dict:
    user = db.get_user(user_id)
    if user is None:
        raise db.UserNotFoundError(user_id)
    today = _today(user, today)
    immunity = user.get("atrophy_immunity_until")
    has_immunity = immunity is not None and immunity >= today

    days_inactive = 0
    if user.get("last_activity_date"):
        days_inactive = max(0, (date.fromisoformat(today) - date.fromisoformat(user["last_activity_date"])).days)

    return {
        "is_at_risk": days_inactive >= 1 and not has_immunity,
        "days_inactive": days_inactive,
        "has_immunity": has_immunity,
        "immunity_ends_on": immunity,
    }
