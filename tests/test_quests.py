from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import ironquest.db as db
from ironquest import quests

TODAY = "2026-03-10"


class DBIsolatedTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._old_db = db.DB_PATH
        db.DB_PATH = Path(self._tmp.name) / "test.sqlite3"
        db.init_db()
        self.user_id = db.create_user("quester")["id"]

    def tearDown(self) -> None:
        db.DB_PATH = self._old_db
        self._tmp.cleanup()

    def check(self, *quest_types: str, completed: bool = True, today: str = TODAY) -> dict:
        result = {}
        for quest_type in quest_types:
            result = quests.toggle_daily_quest(self.user_id, quest_type, completed, today)
        return result


class DailyProgressTests(DBIsolatedTestCase):
    def test_row_is_created_lazily(self) -> None:
        self.assertIsNone(db.get_daily_progress(self.user_id, TODAY))
        progress = quests.get_daily_progress(self.user_id, TODAY)
        self.assertEqual({q: progress[q] for q in quests.QUEST_TYPES}, dict.fromkeys(quests.QUEST_TYPES, False))
        self.assertFalse(progress["xp_awarded"])
        self.assertIsNotNone(db.get_daily_progress(self.user_id, TODAY))

    def test_unknown_quest_type_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            quests.toggle_daily_quest(self.user_id, "meditation", True, TODAY)

    def test_missing_user_raises(self) -> None:
        with self.assertRaises(db.UserNotFoundError):
            quests.toggle_daily_quest(999, "steps", True, TODAY)


class QuestBonusTests(DBIsolatedTestCase):
    def setUp(self) -> None:
        super().setUp()
        db.update_user(self.user_id, {"experience": 100, "level": 7})

    def test_all_four_grants_five_xp_once(self) -> None:
        result = self.check(*quests.QUEST_TYPES)
        self.assertTrue(result["xp_awarded"])
        self.assertEqual(result["experience"], 105)

        again = self.check("hydration")
        self.assertEqual(again["experience"], 105)
        self.assertEqual(db.get_user(self.user_id)["experience"], 105)

    def test_unchecking_revokes_bonus(self) -> None:
        self.check(*quests.QUEST_TYPES)
        result = self.check("sleep", completed=False)
        self.assertFalse(result["xp_awarded"])
        self.assertEqual(db.get_user(self.user_id)["experience"], 100)

        self.check("sleep")
        self.assertEqual(db.get_user(self.user_id)["experience"], 105)

    def test_level_follows_bonus(self) -> None:
        db.update_user(self.user_id, {"experience": 12, "level": 1})
        self.check(*quests.QUEST_TYPES)
        self.assertEqual(db.get_user(self.user_id)["level"], 2)
        self.check("steps", completed=False)
        self.assertEqual(db.get_user(self.user_id)["level"], 1)


class StreakFreezeAwardTests(DBIsolatedTestCase):
    def test_two_quests_earn_a_freeze_and_count_as_activity(self) -> None:
        self.check("hydration")
        self.assertIsNone(db.get_user(self.user_id)["last_activity_date"])
        result = self.check("steps")
        self.assertTrue(result["streak_freeze_awarded"])
        user = db.get_user(self.user_id)
        self.assertEqual(user["streak_freeze_count"], 1)
        self.assertEqual(user["last_activity_date"], TODAY)

    def test_dropping_below_two_takes_it_back(self) -> None:
        self.check("hydration", "steps")
        result = self.check("steps", completed=False)
        self.assertFalse(result["streak_freeze_awarded"])
        self.assertEqual(db.get_user(self.user_id)["streak_freeze_count"], 0)

    def test_freeze_stock_is_capped(self) -> None:
        db.update_user(self.user_id, {"streak_freeze_count": 2})
        result = self.check("hydration", "steps")
        self.assertFalse(result["streak_freeze_awarded"])
        self.assertEqual(db.get_user(self.user_id)["streak_freeze_count"], 2)


class StreakTests(DBIsolatedTestCase):
    def test_consecutive_days_extend_streak(self) -> None:
        self.check("hydration", "steps", today="2026-03-08")
        self.check("hydration", "steps", today="2026-03-09")
        self.check("hydration", "steps", today=TODAY)
        user = db.get_user(self.user_id)
        self.assertEqual(user["current_streak"], 3)
        self.assertEqual(user["longest_streak"], 3)
        self.assertEqual(user["last_streak_date"], TODAY)

    def test_repeat_toggles_same_day_do_not_double_count(self) -> None:
        self.check("hydration", "steps", "protein", "sleep")
        self.check("sleep", completed=False)
        self.check("sleep")
        self.assertEqual(db.get_user(self.user_id)["current_streak"], 1)

    def test_held_freezes_bridge_missed_day(self) -> None:
        self.check("hydration", "steps", today="2026-03-07")
        self.check("hydration", "steps", today="2026-03-08")
        self.assertEqual(db.get_user(self.user_id)["streak_freeze_count"], 2)

        self.check("hydration", "steps", today=TODAY)
        user = db.get_user(self.user_id)
        self.assertEqual(user["current_streak"], 3)
        self.assertEqual(user["streak_freeze_count"], 1)

    def test_freeze_earned_today_cannot_bridge_yesterday(self) -> None:
        db.update_user(self.user_id, {"current_streak": 4, "longest_streak": 4, "last_streak_date": "2026-03-08"})
        db.update_daily_progress(self.user_id, TODAY, {"hydration": True})
        result = self.check("steps")
        self.assertTrue(result["streak_freeze_awarded"])
        self.assertEqual((result["current_streak"], result["streak_freeze_count"]), (1, 1))

        self.check("steps", completed=False)
        self.check("steps")
        user = db.get_user(self.user_id)
        self.assertEqual((user["current_streak"], user["streak_freeze_count"]), (1, 1))

    def test_gap_without_freezes_restarts(self) -> None:
        db.update_user(self.user_id, {"current_streak": 4, "last_streak_date": "2026-03-07"})
        db.update_daily_progress(self.user_id, TODAY, {"protein": True, "sleep": True})
        user = quests.update_streak(self.user_id, TODAY)
        self.assertEqual(user["current_streak"], 1)

    def test_unmet_day_after_long_gap_breaks_streak(self) -> None:
        db.update_user(self.user_id, {"current_streak": 5, "longest_streak": 5, "last_streak_date": "2026-03-05"})
        user = quests.update_streak(self.user_id, TODAY)
        self.assertEqual(user["current_streak"], 0)
        self.assertIsNone(user["last_streak_date"])
        self.assertEqual(user["longest_streak"], 5)

    def test_yesterday_streak_survives_unmet_today(self) -> None:
        db.update_user(self.user_id, {"current_streak": 2, "last_streak_date": "2026-03-09"})
        user = quests.update_streak(self.user_id, TODAY)
        self.assertEqual(user["current_streak"], 2)


if __name__ == "__main__":
    unittest.main()
