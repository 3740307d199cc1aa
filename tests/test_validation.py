from __future__ import annotations

import unittest

from ironquest import validation
from ironquest.validation import WorkoutValidator


def exercise(name: str, category: str, sets: list[dict]) -> dict:
    return {"exercise": {"name": name, "category": category}, "sets": sets}


def bench(count: int = 3, reps: int = 8, weight: float = 100, completed: bool = True) -> dict:
    return exercise("Bench Press", "strength", [{"reps": reps, "weight": weight, "completed": completed} for _ in range(count)])


class HardBoundTests(unittest.TestCase):
    def test_short_workout_is_always_rejected(self) -> None:
        for rpe in (1, 5, 10):
            for performances in ([], [bench()], [bench(count=10, reps=20)]):
                result = validation.validate_workout(performances, 3, 180, rpe)
                self.assertFalse(result["is_valid"])

    def test_short_duration_and_bad_rpe_both_reported(self) -> None:
        result = validation.calculate_validated_xp([bench()], 2, 180, 15)
        self.assertFalse(result["validation"]["is_valid"])
        errors = result["validation"]["validation_errors"]
        self.assertEqual(len(errors), 2)
        self.assertIn("too short", errors[0])
        self.assertIn("Invalid RPE", errors[1])
        self.assertEqual((result["xp_total"], result["xp_str"], result["xp_sta"], result["xp_agi"]), (0, 0, 0, 0))

    def test_overlong_workout_is_rejected(self) -> None:
        result = validation.validate_workout([bench()], 301, 180, 7)
        self.assertFalse(result["is_valid"])
        self.assertIn("impossibly long", result["validation_errors"][0])

    def test_exercise_without_completed_sets_is_an_error(self) -> None:
        result = validation.validate_workout([bench(completed=False)], 40, 180, 7)
        self.assertFalse(result["is_valid"])
        self.assertIn("Bench Press: Too few sets (0 < 1)", result["validation_errors"])

    def test_null_exercise_and_sets_are_tolerated(self) -> None:
        unnamed = {"exercise": None, "sets": [{"reps": 12, "completed": True} for _ in range(3)]}
        result = validation.calculate_validated_xp([unnamed], 40, 180, 6)
        self.assertTrue(result["validation"]["is_valid"])
        self.assertEqual(validation.workout_validator.to_activities([unnamed], 180, 6)[0]["movement_type"], "skill")

        empty = validation.validate_workout([{"exercise": {"name": "Squat", "category": "strength"}, "sets": None}], 40, 180, 6)
        self.assertIn("Squat: Too few sets (0 < 1)", empty["validation_errors"])

    def test_config_overrides_defaults(self) -> None:
        strict = WorkoutValidator({"min_workout_duration": 10, "min_reps_per_set": {"strength": 5}})
        self.assertFalse(strict.validate_workout([bench()], 8, 180, 7)["is_valid"])
        self.assertEqual(strict.config["min_reps_per_set"]["cardio"], 30)


class SoftCheckTests(unittest.TestCase):
    def test_honest_session_keeps_full_multiplier(self) -> None:
        result = validation.validate_workout([bench()], 40, 180, 7)
        self.assertTrue(result["is_valid"])
        self.assertEqual(result["suspicious_reasons"], [])
        self.assertAlmostEqual(result["xp_multiplier"], 1.0)

    def test_well_structured_session_earns_bonus(self) -> None:
        result = validation.validate_workout([bench()], 30, 180, 5)
        self.assertAlmostEqual(result["xp_multiplier"], 1.2)

    def test_heavy_weight_discounts_each_set(self) -> None:
        result = validation.validate_workout([bench(reps=5, weight=600)], 30, 180, 8)
        self.assertTrue(result["is_valid"])
        self.assertEqual(len(result["suspicious_reasons"]), 3)
        self.assertTrue(all("Very heavy weight" in r for r in result["suspicious_reasons"]))
        self.assertAlmostEqual(result["xp_multiplier"], 0.8 ** 3)

    def test_rpe_mismatch_is_flagged(self) -> None:
        result = validation.validate_workout([bench()], 40, 180, 10)
        self.assertEqual(len(result["suspicious_reasons"]), 1)
        self.assertIn("RPE mismatch", result["suspicious_reasons"][0])
        self.assertAlmostEqual(result["xp_multiplier"], 0.85)

    def test_impossibly_fast_session_is_flagged(self) -> None:
        result = validation.validate_workout([bench(count=20, reps=10)], 6, 180, 9)
        self.assertTrue(result["is_valid"])
        self.assertTrue(any("Very fast workout" in r for r in result["suspicious_reasons"]))
        self.assertAlmostEqual(result["xp_multiplier"], 0.6)

    def test_short_cardio_set_is_low_work(self) -> None:
        run = exercise("Sprint", "cardio", [{"reps": 0, "duration": 20, "completed": True}])
        result = validation.validate_workout([run], 10, 180, 6)
        self.assertIn("Sprint: Very low work (20 < 30 expected)", result["suspicious_reasons"])

    def test_multiplier_stays_in_bounds(self) -> None:
        cases = [
            ([bench(count=10, reps=0)], 5, 100, 1),
            ([bench(count=30, reps=1, weight=2000)], 5, 100, 10),
            ([bench()], 30, 180, 5),
            ([], 60, 180, 1),
        ]
        for performances, duration, bodyweight, rpe in cases:
            multiplier = validation.validate_workout(performances, duration, bodyweight, rpe)["xp_multiplier"]
            self.assertGreaterEqual(multiplier, 0.1)
            self.assertLessEqual(multiplier, 2.0)
        self.assertAlmostEqual(validation.validate_workout([bench(count=10, reps=0)], 5, 100, 1)["xp_multiplier"], 0.1)


class ValidatedXPTests(unittest.TestCase):
    def test_bench_session_is_strength_dominant(self) -> None:
        result = validation.calculate_validated_xp([bench()], 40, 180, 7)
        self.assertTrue(result["validation"]["is_valid"])
        self.assertGreaterEqual(result["validation"]["xp_multiplier"], 1.0)
        self.assertLessEqual(result["validation"]["xp_multiplier"], 1.2)
        self.assertEqual(result["xp_total"], 27)
        self.assertEqual((result["xp_str"], result["xp_sta"], result["xp_agi"]), (18, 3, 6))
        self.assertEqual(result["energy_code"], "G")

    def test_multiplier_scales_each_channel(self) -> None:
        discounted = validation.calculate_validated_xp([bench()], 40, 180, 10)
        self.assertAlmostEqual(discounted["validation"]["xp_multiplier"], 0.85)
        # 54 / 36 / 9 / 9 raw at RPE 10, each rounded on its own after the discount
        self.assertEqual(
            (discounted["xp_total"], discounted["xp_str"], discounted["xp_sta"], discounted["xp_agi"]),
            (46, 31, 8, 8),
        )

    def test_activities_follow_category_mapping(self) -> None:
        performances = [
            exercise("Plank", "core", [{"reps": 10, "completed": True}]),
            exercise("Row", "cardio", [{"reps": 0, "duration": 600, "completed": True}]),
            exercise("Box Jump", "plyometric", [{"reps": 10, "completed": True}]),
            exercise("Skipped", "strength", [{"reps": 10, "completed": False}]),
        ]
        activities = validation.workout_validator.to_activities(performances, 200, 6)
        self.assertEqual([a["movement_type"] for a in activities], ["resistance", "cardio", "skill"])
        self.assertAlmostEqual(activities[0]["load_kg"], 200 * validation.LBS_TO_KG)
        self.assertAlmostEqual(activities[1]["minutes"], 10)
        self.assertAlmostEqual(activities[2]["minutes"], 0.5)


if __name__ == "__main__":
    unittest.main()
