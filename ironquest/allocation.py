"""Turns logged activities into XP split across strength, stamina and agility.

An activity is a plain dict::

    {"movement_type": "resistance", "sets": 1, "reps": 8, "load_kg": 45.4,
     "bodyweight_kg": 81.6, "RPE": 7, "interval_seconds": 17}

Cardio and skill activities carry ``minutes`` instead of sets/reps/load.
``average_hr_pct`` (percent of max heart rate) is optional.
"""

from __future__ import annotations

import math
from collections import Counter

MOVEMENT_TYPES = ("resistance", "cardio", "skill")

# str / sta / agi shares per movement type
MOVEMENT_SPLITS = {
    "resistance": (0.65, 0.15, 0.20),
    "cardio": (0.10, 0.80, 0.10),
    "skill": (0.05, 0.25, 0.70),
}

RPE_MULTIPLIERS = {1: 0.5, 2: 0.5, 3: 0.5, 4: 0.5, 5: 0.5, 6: 1.0, 7: 1.0, 8: 1.5, 9: 1.5, 10: 2.0}

BASE_XP_MULTIPLIER = 2

OXIDATIVE_CAP_SHARE = 0.80
OXIDATIVE_STAMINA_KEEP = 0.7


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def empty_allocation() -> dict:
    return {"xp_total": 0, "xp_str": 0, "xp_sta": 0, "xp_agi": 0, "energy_code": None}


def _work_units(activity: dict) -> float:
    if activity["movement_type"] == "resistance":
        sets = activity.get("sets") or 0
        reps = activity.get("reps") or 0
        bodyweight = activity.get("bodyweight_kg") or 0
        load = activity.get("load_kg")
        if load is None:
            load = bodyweight
        ratio = load / bodyweight if bodyweight > 0 else 1.0
        return max(0.0, sets * reps * ratio)
    return max(0.0, activity.get("minutes") or 0)


def _rpe_multiplier(rpe: float) -> float:
    return RPE_MULTIPLIERS[min(10, max(1, round_half_up(rpe)))]


def classify_energy_system(activity: dict) -> str:
    """P phosphagen, G glycolytic, M mixed, O oxidative, R recovery/skill."""
    hr = activity.get("average_hr_pct")
    rpe = activity.get("RPE", 0)
    if hr and rpe <= 5 and hr < 65:
        return "R"
    if hr:
        if hr > 95:
            return "P"
        if hr >= 90:
            return "G"
        if hr >= 75:
            return "M"
        return "O"

    interval = activity.get("interval_seconds")
    if interval:
        if interval <= 10:
            return "P"
        if interval <= 120:
            return "G"
        if interval <= 360:
            return "M"
        return "O"

    minutes = activity.get("minutes")
    if minutes:
        if minutes <= 10 / 60:
            return "P"
        if minutes <= 2:
            return "G"
        if minutes <= 6:
            return "M"
        return "O"

    return "P" if activity["movement_type"] == "resistance" else "O"


def _split(total: int, shares: tuple[float, float, float]) -> tuple[int, int, int]:
    # Largest remainder keeps the three channels summing to the total.
    raw = [total * share for share in shares]
    parts = [math.floor(x) for x in raw]
    leftover = total - sum(parts)
    by_remainder = sorted(range(3), key=lambda i: raw[i] - parts[i], reverse=True)
    for i in by_remainder[:leftover]:
        parts[i] += 1
    return parts[0], parts[1], parts[2]


def allocate_xp(activity: dict) -> dict:
    movement = activity.get("movement_type")
    if movement not in MOVEMENT_SPLITS:
        raise ValueError(f"Unknown movement type: {movement!r}")

    effort = _work_units(activity) * _rpe_multiplier(activity.get("RPE", 1))
    total = round_half_up(effort * BASE_XP_MULTIPLIER)
    xp_str, xp_sta, xp_agi = _split(total, MOVEMENT_SPLITS[movement])
    return {
        "xp_total": total,
        "xp_str": xp_str,
        "xp_sta": xp_sta,
        "xp_agi": xp_agi,
        "energy_code": classify_energy_system(activity),
    }


def allocate_session_xp(activities: list[dict]) -> dict:
    if not activities:
        return empty_allocation()

    results = [allocate_xp(a) for a in activities]
    # Ties go to the code seen first.
    dominant = Counter(r["energy_code"] for r in results).most_common(1)[0][0]
    return {
        "xp_total": sum(r["xp_total"] for r in results),
        "xp_str": sum(r["xp_str"] for r in results),
        "xp_sta": sum(r["xp_sta"] for r in results),
        "xp_agi": sum(r["xp_agi"] for r in results),
        "energy_code": dominant,
    }


def apply_daily_caps(daily: list[dict], current: dict) -> dict:
    """Damp stamina gains once a day is dominated by long aerobic work.

    ``daily`` holds the allocations already granted today. When earlier
    O-coded sessions make up more than 80% of the day's XP (``current``
    included) and ``current`` is O-coded too, 30% of its stamina XP moves to
    strength (30%) and agility (70%).
    """
    day_total = sum(a["xp_total"] for a in daily) + current["xp_total"]
    if day_total <= 0 or current.get("energy_code") != "O":
        return current
    oxidative = sum(a["xp_total"] for a in daily if a.get("energy_code") == "O")
    if oxidative / day_total <= OXIDATIVE_CAP_SHARE:
        return current

    capped_sta = round_half_up(current["xp_sta"] * OXIDATIVE_STAMINA_KEEP)
    moved = current["xp_sta"] - capped_sta
    return {
        **current,
        "xp_sta": capped_sta,
        "xp_str": current["xp_str"] + round_half_up(moved * 0.3),
        "xp_agi": current["xp_agi"] + round_half_up(moved * 0.7),
    }
