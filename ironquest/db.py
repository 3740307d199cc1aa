from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("IRONQUEST_DB_PATH") or Path(__file__).resolve().parent.parent / "data.sqlite3")

QUEST_COLUMNS = ("hydration", "steps", "protein", "sleep")

USER_FIELDS = {
    "username",
    "timezone",
    "bodyweight_lbs",
    "experience",
    "level",
    "strength_xp",
    "stamina_xp",
    "agility_xp",
    "strength",
    "stamina",
    "agility",
    "last_activity_date",
    "atrophy_immunity_until",
    "last_atrophy_date",
    "streak_freeze_count",
    "current_streak",
    "longest_streak",
    "last_streak_date",
}

PROGRESS_FIELDS = set(QUEST_COLUMNS) | {"xp_awarded", "streak_freeze_awarded"}


class UserNotFoundError(LookupError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH, timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
    cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
    if column not in {c[1] for c in cols}:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def init_db() -> None:
    conn = get_conn()
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                timezone TEXT NOT NULL DEFAULT '',
                bodyweight_lbs REAL NOT NULL DEFAULT 0,
                experience INTEGER NOT NULL DEFAULT 0,
                level INTEGER NOT NULL DEFAULT 1,
                strength_xp INTEGER NOT NULL DEFAULT 0,
                stamina_xp INTEGER NOT NULL DEFAULT 0,
                agility_xp INTEGER NOT NULL DEFAULT 0,
                strength INTEGER NOT NULL DEFAULT 1,
                stamina INTEGER NOT NULL DEFAULT 1,
                agility INTEGER NOT NULL DEFAULT 1,
                last_activity_date TEXT,
                atrophy_immunity_until TEXT,
                streak_freeze_count INTEGER NOT NULL DEFAULT 0,
                current_streak INTEGER NOT NULL DEFAULT 0,
                last_streak_date TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS daily_progress (
                user_id INTEGER NOT NULL REFERENCES users(id),
                date TEXT NOT NULL,
                hydration INTEGER NOT NULL DEFAULT 0,
                steps INTEGER NOT NULL DEFAULT 0,
                protein INTEGER NOT NULL DEFAULT 0,
                sleep INTEGER NOT NULL DEFAULT 0,
                xp_awarded INTEGER NOT NULL DEFAULT 0,
                streak_freeze_awarded INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, date)
            );

            CREATE TABLE IF NOT EXISTS workout_session (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id),
                date TEXT NOT NULL,
                name TEXT NOT NULL,
                duration_minutes REAL NOT NULL,
                reported_rpe REAL NOT NULL,
                is_valid INTEGER NOT NULL,
                xp_total INTEGER NOT NULL DEFAULT 0,
                xp_str INTEGER NOT NULL DEFAULT 0,
                xp_sta INTEGER NOT NULL DEFAULT 0,
                xp_agi INTEGER NOT NULL DEFAULT 0,
                energy_code TEXT,
                validation_json TEXT,
                completed_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS event_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                date TEXT NOT NULL,
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                meta_json TEXT
            );

            CREATE INDEX IF NOT EXISTS ix_workout_session_user_date ON workout_session (user_id, date);
            """
        )

        _ensure_column(conn, "users", "longest_streak", "INTEGER NOT NULL DEFAULT 0")
        _ensure_column(conn, "users", "last_atrophy_date", "TEXT")
        conn.commit()
    finally:
        conn.close()


def local_today(tz_name: str | None = None) -> date:
    if not tz_name:
        return date.today()
    try:
        return datetime.now(ZoneInfo(tz_name)).date()
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to server time", tz_name)
        return date.today()


def today_key(tz_name: str | None = None) -> str:
    return local_today(tz_name).isoformat()


def yesterday_key(tz_name: str | None = None) -> str:
    return (local_today(tz_name) - timedelta(days=1)).isoformat()


@contextmanager
def write_txn() -> Iterator[sqlite3.Connection]:
    """One read-modify-write unit; the write lock is taken before the first read."""
    conn = get_conn()
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def insert_event(conn: sqlite3.Connection, user_id: int, event_date: str, kind: str, text: str, meta: dict | None = None) -> None:
    conn.execute(
        "INSERT INTO event_log (user_id, date, kind, text, meta_json) VALUES (?, ?, ?, ?, ?)",
        (user_id, event_date, kind, text, json.dumps(meta or {})),
    )


def _progress_dict(row: sqlite3.Row) -> dict:
    out = dict(row)
    for key in PROGRESS_FIELDS:
        out[key] = bool(out[key])
    return out


def fetch_user(conn: sqlite3.Connection, user_id: int) -> dict | None:
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return dict(row) if row else None


def write_user(conn: sqlite3.Connection, user_id: int, fields: dict) -> dict:
    unknown = set(fields) - USER_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)}")
    if fields:
        assignments = ", ".join(f"{key} = ?" for key in fields)
        conn.execute(f"UPDATE users SET {assignments} WHERE id = ?", (*fields.values(), user_id))
    user = fetch_user(conn, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def fetch_daily_progress(conn: sqlite3.Connection, user_id: int, for_date: str) -> dict | None:
    row = conn.execute("SELECT * FROM daily_progress WHERE user_id = ? AND date = ?", (user_id, for_date)).fetchone()
    return _progress_dict(row) if row else None


def upsert_daily_progress(conn: sqlite3.Connection, user_id: int, for_date: str, fields: dict | None = None) -> dict:
    fields = fields or {}
    unknown = set(fields) - PROGRESS_FIELDS
    if unknown:
        raise ValueError(f"Unknown daily progress fields: {sorted(unknown)}")
    conn.execute(
        "INSERT INTO daily_progress (user_id, date) VALUES (?, ?) ON CONFLICT(user_id, date) DO NOTHING",
        (user_id, for_date),
    )
    if fields:
        assignments = ", ".join(f"{key} = ?" for key in fields)
        conn.execute(
            f"UPDATE daily_progress SET {assignments} WHERE user_id = ? AND date = ?",
            (*(int(v) for v in fields.values()), user_id, for_date),
        )
    progress = fetch_daily_progress(conn, user_id, for_date)
    assert progress is not None
    return progress


def create_user(username: str, tz_name: str = "", bodyweight_lbs: float = 0.0) -> dict:
    username = username.strip()
    if not username:
        raise ValueError("Username is required")
    with write_txn() as conn:
        try:
            cur = conn.execute(
                "INSERT INTO users (username, timezone, bodyweight_lbs, created_at) VALUES (?, ?, ?, ?)",
                (username, tz_name.strip(), max(0.0, float(bodyweight_lbs)), utc_now_iso()),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Username {username!r} is already taken") from exc
        user = fetch_user(conn, cur.lastrowid)
        assert user is not None
        return user


def get_user(user_id: int) -> dict | None:
    conn = get_conn()
    try:
        return fetch_user(conn, user_id)
    finally:
        conn.close()


def update_user(user_id: int, fields: dict) -> dict:
    with write_txn() as conn:
        if fetch_user(conn, user_id) is None:
            raise UserNotFoundError(user_id)
        return write_user(conn, user_id, fields)


def get_all_users() -> list[dict]:
    conn = get_conn()
    try:
        return [dict(r) for r in conn.execute("SELECT * FROM users ORDER BY id").fetchall()]
    finally:
        conn.close()


def get_daily_progress(user_id: int, for_date: str) -> dict | None:
    conn = get_conn()
    try:
        return fetch_daily_progress(conn, user_id, for_date)
    finally:
        conn.close()


def update_daily_progress(user_id: int, for_date: str, fields: dict) -> dict:
    with write_txn() as conn:
        return upsert_daily_progress(conn, user_id, for_date, fields)


def record_workout_session(conn: sqlite3.Connection, user_id: int, session_date: str, session: dict) -> int:
    cur = conn.execute(
        """
        INSERT INTO workout_session (
            user_id, date, name, duration_minutes, reported_rpe, is_valid,
            xp_total, xp_str, xp_sta, xp_agi, energy_code, validation_json, completed_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            session_date,
            session["name"],
            session["duration_minutes"],
            session["reported_rpe"],
            int(session["is_valid"]),
            session["xp_total"],
            session["xp_str"],
            session["xp_sta"],
            session["xp_agi"],
            session.get("energy_code"),
            json.dumps(session.get("validation") or {}),
            utc_now_iso(),
        ),
    )
    return int(cur.lastrowid)


def get_sessions_on(user_id: int, session_date: str, valid_only: bool = True, conn: sqlite3.Connection | None = None) -> list[dict]:
    query = "SELECT * FROM workout_session WHERE user_id = ? AND date = ?"
    if valid_only:
        query += " AND is_valid = 1"
    own = conn is None
    conn = conn or get_conn()
    try:
        return [dict(r) for r in conn.execute(query + " ORDER BY id", (user_id, session_date)).fetchall()]
    finally:
        if own:
            conn.close()


def get_events(user_id: int, limit: int = 12) -> list[dict]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT * FROM event_log WHERE user_id = ? ORDER BY id DESC LIMIT ?", (user_id, limit)).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def get_schedule_context(tz_name: str | None = None) -> dict:
    tz_name = tz_name or os.environ.get("IRONQUEST_TIMEZONE", "")
    now = datetime.now()
    if tz_name:
        try:
            now = datetime.now(ZoneInfo(tz_name))
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, falling back to server time", tz_name)
    return {
        "local_date": now.date().isoformat(),
        "local_hour": now.hour,
        "local_minute": now.minute,
        "timezone": tz_name or "server",
    }
