from __future__ import annotations

import logging
from datetime import date

from ironquest import atrophy, db
from ironquest.progression import character_level

logger = logging.getLogger(__name__)

QUEST_TYPES = db.QUEST_COLUMNS

ALL_QUESTS_XP_BONUS = 5
STREAK_FREEZE_QUEST_THRESHOLD = 2
STREAK_FREEZE_CAP = 2


def _completed_count(progress: dict) -> int:
    return sum(1 for quest in QUEST_TYPES if progress[quest])


def _load_user(conn, user_id: int) -> dict:
    user = db.fetch_user(conn, user_id)
    if user is None:
        raise db.UserNotFoundError(user_id)
    return user


def get_daily_progress(user_id: int, today: str | None = None) -> dict:
    """Today's quest row, created on first access."""
    with db.write_txn() as conn:
        user = _load_user(conn, user_id)
        today = today or db.today_key(user["timezone"])
        return db.upsert_daily_progress(conn, user_id, today)


def toggle_daily_quest(user_id: int, quest_type: str, completed: bool, today: str | None = None) -> dict:
    if quest_type not in QUEST_TYPES:
        raise ValueError(f"Invalid quest type: {quest_type!r}")

    with db.write_txn() as conn:
        user = _load_user(conn, user_id)
        today = today or db.today_key(user["timezone"])
        progress = db.upsert_daily_progress(conn, user_id, today, {quest_type: bool(completed)})
        count = _completed_count(progress)

        experience = user["experience"]
        freezes = user["streak_freeze_count"]
        flags = {}

        if count == len(QUEST_TYPES) and not progress["xp_awarded"]:
            experience += ALL_QUESTS_XP_BONUS
            flags["xp_awarded"] = True
            db.insert_event(conn, user_id, today, "quest_bonus", f"All daily quests done: +{ALL_QUESTS_XP_BONUS} XP")
        elif count < len(QUEST_TYPES) and progress["xp_awarded"]:
            experience = max(0, experience - ALL_QUESTS_XP_BONUS)
            flags["xp_awarded"] = False

        if count >= STREAK_FREEZE_QUEST_THRESHOLD and not progress["streak_freeze_awarded"] and freezes < STREAK_FREEZE_CAP:
            freezes += 1
            flags["streak_freeze_awarded"] = True
            db.insert_event(conn, user_id, today, "streak_freeze", "Earned a streak freeze.")
        elif count < STREAK_FREEZE_QUEST_THRESHOLD and progress["streak_freeze_awarded"]:
            freezes = max(0, freezes - 1)
            flags["streak_freeze_awarded"] = False

        if flags:
            logger.info("User %s quest bonuses on %s: %s", user_id, today, flags)
            progress = db.upsert_daily_progress(conn, user_id, today, flags)
            db.write_user(
                conn,
                user_id,
                {"experience": experience, "level": character_level(experience), "streak_freeze_count": freezes},
            )

    if count >= STREAK_FREEZE_QUEST_THRESHOLD:
        atrophy.record_activity(user_id, today)
    streak = update_streak(user_id, today)

    return {
        **progress,
        "completed_count": count,
        "experience": streak["experience"],
        "level": streak["level"],
        "streak_freeze_count": streak["streak_freeze_count"],
        "current_streak": streak["current_streak"],
    }


def _missed_days(last_streak_date: str, today: str) -> int:
    return (date.fromisoformat(today) - date.fromisoformat(last_streak_date)).days - 1


def live_streak(user: dict, today: str) -> int:
    """The stored streak if it can still continue today, else 0."""
    last = user["last_streak_date"]
    if not last:
        return 0
    missed = _missed_days(last, today)
    if missed <= 0 or missed <= user["streak_freeze_count"]:
        return user["current_streak"]
    return 0


def update_streak(user_id: int, today: str | None = None) -> dict:
    """Advance, keep or break the consecutive-day streak for ``today``.

    A day counts with two or more daily quests done or one valid workout.
    Held streak freezes bridge missed days, one freeze per day. A freeze
    earned by today's quests cannot bridge the gap before today.
    """
    with db.write_txn() as conn:
        user = _load_user(conn, user_id)
        today = today or db.today_key(user["timezone"])
        progress = db.fetch_daily_progress(conn, user_id, today)
        quests_met = progress is not None and _completed_count(progress) >= STREAK_FREEZE_QUEST_THRESHOLD
        day_counts = quests_met or bool(db.get_sessions_on(user_id, today, conn=conn))

        last = user["last_streak_date"]
        streak = user["current_streak"]
        freezes = user["streak_freeze_count"]
        missed = _missed_days(last, today) if last else None
        earned_today = 1 if progress is not None and progress["streak_freeze_awarded"] else 0

        if day_counts:
            if last == today:
                return user
            if missed == 0:
                streak += 1
            elif missed is not None and 0 < missed <= freezes - earned_today:
                freezes -= missed
                streak += 1
                db.insert_event(conn, user_id, today, "streak_freeze", f"Used {missed} streak freeze(s) to keep a {streak}-day streak.")
            else:
                streak = 1
            fields = {
                "current_streak": streak,
                "longest_streak": max(user["longest_streak"], streak),
                "last_streak_date": today,
                "streak_freeze_count": freezes,
            }
        elif missed is not None and missed > freezes:
            fields = {"current_streak": 0, "last_streak_date": None}
        else:
            return user

        return db.write_user(conn, user_id, fields)
