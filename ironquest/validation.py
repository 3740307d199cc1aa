"""Plausibility checks for a reported workout and the XP they allow.

Two layers: hard bounds reject a session outright, soft heuristics only
discount it through a confidence multiplier between 0.1 and 2.0.

A performance is a dict::

    {"exercise": {"name": "Bench Press", "category": "strength"},
     "sets": [{"reps": 8, "weight": 135, "completed": True}, ...]}

Weights and bodyweight are in pounds. Cardio, balance and flexibility sets
may carry ``duration`` (seconds) instead of reps.
"""

from __future__ import annotations

import logging
import math

from ironquest.allocation import allocate_session_xp, round_half_up

logger = logging.getLogger(__name__)

LBS_TO_KG = 0.453592

DEFAULT_CONFIG = {
    "min_workout_duration": 5,
    "max_workout_duration": 300,
    "min_rpe": 1,
    "max_rpe": 10,
    "min_sets_per_exercise": 1,
    "min_reps_per_set": {
        "strength": 1,
        "cardio": 30,
        "core": 5,
        "plyometric": 3,
        "balance": 10,
        "flexibility": 15,
    },
    "heavy_load_ratio": 3,
    "assumed_rest_seconds": 75,
    "rpe_tolerance": 3,
    "intensity_density_scale": 10.0,
    "intensity_baseline": 4.0,
}

RESISTANCE_CATEGORIES = {"strength", "core"}

# seconds per rep when a set has no recorded duration
SECONDS_PER_REP = {"cardio": 2, "plyometric": 3, "balance": 5, "flexibility": 3}

MIN_MULTIPLIER = 0.1
MAX_MULTIPLIER = 2.0
WELL_STRUCTURED_BONUS = 1.2


def movement_type_for(category: str) -> str:
    if category in RESISTANCE_CATEGORIES:
        return "resistance"
    if category == "cardio":
        return "cardio"
    return "skill"


def _completed_sets(performance: dict) -> list[dict]:
    return [s for s in (performance.get("sets") or []) if s.get("completed")]


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def estimate_set_duration(reps: int, weight: float | None = None) -> float:
    """Seconds under load for one resistance set: 2s a rep, a bit more when heavy."""
    weight_factor = math.log10(weight + 1) * 0.5 if weight else 0.0
    return (reps or 0) * 2 + weight_factor


def estimate_exercise_duration(category: str, reps: int) -> float:
    return SECONDS_PER_REP.get(category, 2) * (reps or 0)


class WorkoutValidator:
    def __init__(self, config: dict | None = None) -> None:
        self.config = {**DEFAULT_CONFIG, **(config or {})}
        self.config["min_reps_per_set"] = {**DEFAULT_CONFIG["min_reps_per_set"], **self.config["min_reps_per_set"]}

    def validate_workout(self, performances: list[dict], duration: float, bodyweight: float, reported_rpe: float) -> dict:
        cfg = self.config
        errors: list[str] = []
        suspicious: list[str] = []
        confidence = 1.0

        if duration < cfg["min_workout_duration"]:
            errors.append(f"Workout too short ({duration} min < {cfg['min_workout_duration']} min minimum)")
        if duration > cfg["max_workout_duration"]:
            errors.append(f"Workout impossibly long ({duration} min > {cfg['max_workout_duration']} min maximum)")
        if not cfg["min_rpe"] <= reported_rpe <= cfg["max_rpe"]:
            errors.append(f"Invalid RPE: {reported_rpe} (must be {cfg['min_rpe']}-{cfg['max_rpe']})")

        for performance in performances:
            exercise = performance.get("exercise") or {}
            name = exercise.get("name", "Exercise")
            category = exercise.get("category", "")
            min_work = cfg["min_reps_per_set"].get(category) or 1
            completed = _completed_sets(performance)

            if len(completed) < cfg["min_sets_per_exercise"]:
                errors.append(f"{name}: Too few sets ({len(completed)} < {cfg['min_sets_per_exercise']})")
                continue

            for s in completed:
                work = s.get("duration") or s.get("reps") or 0
                if work < min_work:
                    suspicious.append(f"{name}: Very low work ({work} < {min_work} expected)")
                    confidence *= 0.7
                weight = s.get("weight") or 0
                if category in RESISTANCE_CATEGORIES and weight > bodyweight * cfg["heavy_load_ratio"]:
                    suspicious.append(f"{name}: Very heavy weight ({weight}lbs vs {bodyweight}lbs bodyweight)")
                    confidence *= 0.8

        expected_rpe = self.estimate_rpe_from_intensity(self.estimate_workout_intensity(performances, duration))
        rpe_delta = abs(reported_rpe - expected_rpe)
        if rpe_delta > cfg["rpe_tolerance"]:
            suspicious.append(f"RPE mismatch: reported {reported_rpe} vs estimated {expected_rpe:.1f}")
            confidence *= 0.85

        min_duration = self.estimate_minimum_duration(performances)
        if duration < min_duration * 0.5:
            suspicious.append(f"Very fast workout: {duration}min vs {min_duration:.1f}min estimated minimum")
            confidence *= 0.6

        multiplier = _clamp(confidence, MIN_MULTIPLIER, MAX_MULTIPLIER)
        if duration >= 30 and rpe_delta <= 1 and not suspicious:
            multiplier = min(MAX_MULTIPLIER, multiplier * WELL_STRUCTURED_BONUS)

        return {
            "is_valid": not errors,
            "validation_errors": errors,
            "xp_multiplier": multiplier,
            "suspicious_reasons": suspicious,
        }

    def estimate_workout_intensity(self, performances: list[dict], duration: float) -> float:
        total_sets = sum(len(_completed_sets(p)) for p in performances)
        sets_per_minute = total_sets / duration if duration > 0 else 0.0
        scaled = sets_per_minute * self.config["intensity_density_scale"] + self.config["intensity_baseline"]
        return _clamp(scaled, 1, 10)

    @staticmethod
    def estimate_rpe_from_intensity(intensity: float) -> float:
        return _clamp(intensity * 0.8 + 1, 1, 10)

    def estimate_minimum_duration(self, performances: list[dict]) -> float:
        total_seconds = 0.0
        for performance in performances:
            category = (performance.get("exercise") or {}).get("category", "")
            for s in _completed_sets(performance):
                if s.get("duration"):
                    total_seconds += s["duration"]
                elif category in RESISTANCE_CATEGORIES:
                    total_seconds += estimate_set_duration(s.get("reps") or 0, s.get("weight"))
                else:
                    total_seconds += estimate_exercise_duration(category, s.get("reps") or 0)
                total_seconds += self.config["assumed_rest_seconds"]
        return total_seconds / 60

    def to_activities(self, performances: list[dict], bodyweight: float, reported_rpe: float) -> list[dict]:
        bodyweight_kg = bodyweight * LBS_TO_KG
        activities = []
        for performance in performances:
            category = (performance.get("exercise") or {}).get("category", "")
            movement = movement_type_for(category)
            for s in _completed_sets(performance):
                activity = {"movement_type": movement, "bodyweight_kg": bodyweight_kg, "RPE": reported_rpe}
                if movement == "resistance":
                    reps = s.get("reps") or 0
                    activity["sets"] = 1
                    activity["reps"] = reps
                    activity["load_kg"] = s["weight"] * LBS_TO_KG if s.get("weight") else bodyweight_kg
                    activity["interval_seconds"] = estimate_set_duration(reps, s.get("weight"))
                elif s.get("duration"):
                    activity["minutes"] = s["duration"] / 60
                else:
                    activity["minutes"] = estimate_exercise_duration(category, s.get("reps") or 0) / 60
                activities.append(activity)
        return activities

    def calculate_validated_xp(self, performances: list[dict], duration: float, bodyweight: float, reported_rpe: float) -> dict:
        validation = self.validate_workout(performances, duration, bodyweight, reported_rpe)
        if not validation["is_valid"]:
            logger.info("Rejected workout: %s", "; ".join(validation["validation_errors"]))
            return {"xp_total": 0, "xp_str": 0, "xp_sta": 0, "xp_agi": 0, "energy_code": None, "validation": validation}

        session = allocate_session_xp(self.to_activities(performances, bodyweight, reported_rpe))
        multiplier = validation["xp_multiplier"]
        return {
            "xp_total": round_half_up(session["xp_total"] * multiplier),
            "xp_str": round_half_up(session["xp_str"] * multiplier),
            "xp_sta": round_half_up(session["xp_sta"] * multiplier),
            "xp_agi": round_half_up(session["xp_agi"] * multiplier),
            "energy_code": session["energy_code"],
            "validation": validation,
        }


workout_validator = WorkoutValidator()


def validate_workout(performances: list[dict], duration: float, bodyweight: float, reported_rpe: float) -> dict:
    return workout_validator.validate_workout(performances, duration, bodyweight, reported_rpe)


def calculate_validated_xp(performances: list[dict], duration: float, bodyweight: float, reported_rpe: float) -> dict:
    return workout_validator.calculate_validated_xp(performances, duration, bodyweight, reported_rpe)
