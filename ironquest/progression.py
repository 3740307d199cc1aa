"""Level curves for character and stat progression.

Early levels are cheap and later levels expensive: the XP needed to reach a
level grows as ``(level - 1) ** exponent * coefficient``. Levels are never
stored on their own; they are recomputed from XP with :func:`level_for_xp`
every time an XP pool changes.
"""

from __future__ import annotations

import math
from typing import NamedTuple


class Curve(NamedTuple):
    exponent: float
    coefficient: float


CHARACTER_CURVE = Curve(exponent=1.8, coefficient=16)
STAT_CURVE = Curve(exponent=2.5, coefficient=50)

# xp field -> level field
STAT_FIELDS = {
    "strength_xp": "strength",
    "stamina_xp": "stamina",
    "agility_xp": "agility",
}

STREAK_BONUS_MIN_DAYS = 3
STREAK_BONUS_MULTIPLIER = 1.5


def xp_required_for_level(level: int, curve: Curve = CHARACTER_CURVE) -> int:
    if level <= 1:
        return 0
    return math.floor((level - 1) ** curve.exponent * curve.coefficient)


def level_for_xp(xp: int, curve: Curve = CHARACTER_CURVE) -> int:
    # Search instead of inverting: floor() makes the closed form off by one near boundaries.
    if xp < 0:
        return 1
    level = 1
    while xp_required_for_level(level, curve) <= xp:
        level += 1
    return level - 1


def character_level(experience: int) -> int:
    return level_for_xp(experience, CHARACTER_CURVE)


def character_xp_required_for_level(level: int) -> int:
    return xp_required_for_level(level, CHARACTER_CURVE)


def calculate_stat_level(xp: int) -> int:
    return level_for_xp(xp, STAT_CURVE)


def get_stat_xp_required_for_level(level: int) -> int:
    return xp_required_for_level(level, STAT_CURVE)


def get_progress(xp: int, curve: Curve = CHARACTER_CURVE) -> dict:
    """Progress-bar view of an XP pool.

    ``current_xp`` is the XP earned inside the current level and
    ``total_xp_for_current_level`` the width of that level's band.
    """
    xp = max(0, xp)
    level = level_for_xp(xp, curve)
    floor_xp = xp_required_for_level(level, curve)
    next_xp = xp_required_for_level(level + 1, curve)
    return {
        "level": level,
        "current_xp": xp - floor_xp,
        "xp_to_next_level": next_xp - xp,
        "total_xp_for_current_level": next_xp - floor_xp,
    }


def derive_levels(fields: dict) -> dict:
    """Level fields matching whichever XP fields are present in ``fields``."""
    levels = {}
    if "experience" in fields:
        levels["level"] = character_level(fields["experience"])
    for xp_key, level_key in STAT_FIELDS.items():
        if xp_key in fields:
            levels[level_key] = calculate_stat_level(fields[xp_key])
    return levels


def streak_xp_multiplier(current_streak: int) -> dict:
    active = current_streak >= STREAK_BONUS_MIN_DAYS
    return {
        "multiplier": STREAK_BONUS_MULTIPLIER if active else 1.0,
        "bonus_active": active,
        "streak_days": current_streak,
    }


def apply_streak_bonus(base_xp: int, current_streak: int) -> dict:
    info = streak_xp_multiplier(current_streak)
    final_xp = math.floor(base_xp * info["multiplier"])
    return {"final_xp": final_xp, "bonus_xp": final_xp - base_xp, "bonus_info": info}
