from __future__ import annotations

import logging

from ironquest import atrophy, db, quests
from ironquest.allocation import apply_daily_caps
from ironquest.progression import apply_streak_bonus, derive_levels
from ironquest.validation import workout_validator

logger = logging.getLogger(__name__)

GAIN_FIELDS = {
    "xp_total": "experience",
    "xp_str": "strength_xp",
    "xp_sta": "stamina_xp",
    "xp_agi": "agility_xp",
}


def complete_workout_session(
    user_id: int,
    performances: list[dict],
    duration_minutes: float,
    reported_rpe: float,
    bodyweight: float | None = None,
    name: str | None = None,
    today: str | None = None,
) -> dict:
    """Validate a finished session and grant its XP.

    Rejected sessions are stored for audit and grant nothing. Valid ones go
    through daily caps and the streak bonus before being added to the user,
    then count as today's activity for atrophy and the streak.
    """
    with db.write_txn() as conn:
        user = db.fetch_user(conn, user_id)
        if user is None:
            raise db.UserNotFoundError(user_id)
        today = today or db.today_key(user["timezone"])
        if bodyweight is None:
            bodyweight = user["bodyweight_lbs"]

        result = workout_validator.calculate_validated_xp(performances, duration_minutes, bodyweight, reported_rpe)
        validation = result["validation"]
        gains = {key: result[key] for key in GAIN_FIELDS}
        gains["energy_code"] = result["energy_code"]
        bonus_xp = 0

        if validation["is_valid"]:
            earlier = db.get_sessions_on(user_id, today, conn=conn)
            gains = apply_daily_caps(earlier, gains)
            # a lapsed streak pays no bonus even before update_streak resets it
            streak = quests.live_streak(user, today)
            for key in GAIN_FIELDS:
                bonus = apply_streak_bonus(gains[key], streak)
                gains[key] = bonus["final_xp"]
                if key == "xp_total":
                    bonus_xp = bonus["bonus_xp"]

            updated = {field: user[field] + gains[key] for key, field in GAIN_FIELDS.items()}
            updated.update(derive_levels(updated))
            db.write_user(conn, user_id, updated)

            if updated["level"] > user["level"]:
                logger.info("User %s reached level %s", user_id, updated["level"])
                db.insert_event(conn, user_id, today, "level_up", f"Level up to {updated['level']}.")
            db.insert_event(conn, user_id, today, "workout", f"Workout complete (+{gains['xp_total']} XP).", gains)

        session_id = db.record_workout_session(
            conn,
            user_id,
            today,
            {
                "name": name or "Workout Session",
                "duration_minutes": duration_minutes,
                "reported_rpe": reported_rpe,
                "is_valid": validation["is_valid"],
                "validation": validation,
                **gains,
            },
        )

    if validation["is_valid"]:
        atrophy.record_activity(user_id, today)
        quests.update_streak(user_id, today)

    return {
        "session_id": session_id,
        "date": today,
        **gains,
        "streak_bonus_xp": bonus_xp,
        "validation": validation,
    }
