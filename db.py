import sqlite3
import aiosqlite
import csv
import os
import json
import secrets
import datetime
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

CATALOG_CREATED_AT = "2025-01-01T00:00:00+00:00"


def new_id() -> str:
    """Return a short URL-safe identifier."""
    return secrets.token_urlsafe(8)[:10]


def utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "users": (
            """CREATE TABLE users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    email_verified INTEGER NOT NULL DEFAULT 0,
                    image TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "name", "email", "email_verified", "image", "created_at", "updated_at"],
        ),
        "sessions": (
            """CREATE TABLE sessions (
                    id TEXT PRIMARY KEY,
                    token TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    ip_address TEXT,
                    user_agent TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "token",
                "user_id",
                "expires_at",
                "ip_address",
                "user_agent",
                "created_at",
                "updated_at",
            ],
        ),
        "accounts": (
            """CREATE TABLE accounts (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    provider_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    password TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "account_id",
                "provider_id",
                "user_id",
                "password",
                "created_at",
                "updated_at",
            ],
        ),
        "profiles": (
            """CREATE TABLE profiles (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL UNIQUE,
                    height REAL,
                    weight REAL,
                    body_fat REAL,
                    muscle_mass REAL,
                    big3_target_bench_press REAL,
                    big3_target_squat REAL,
                    big3_target_deadlift REAL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "height",
                "weight",
                "body_fat",
                "muscle_mass",
                "big3_target_bench_press",
                "big3_target_squat",
                "big3_target_deadlift",
                "created_at",
                "updated_at",
            ],
        ),
        "profile_history": (
            """CREATE TABLE profile_history (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    height REAL,
                    weight REAL,
                    body_fat REAL,
                    muscle_mass REAL,
                    bmi REAL,
                    recorded_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "height",
                "weight",
                "body_fat",
                "muscle_mass",
                "bmi",
                "recorded_at",
            ],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    name_en TEXT,
                    body_part TEXT NOT NULL,
                    muscle_sub_group TEXT,
                    primary_equipment TEXT,
                    tier TEXT NOT NULL DEFAULT 'initial',
                    is_big3 INTEGER NOT NULL DEFAULT 0,
                    description TEXT,
                    video_url TEXT,
                    difficulty_level TEXT,
                    equipment_required TEXT,
                    user_id TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "name",
                "name_en",
                "body_part",
                "muscle_sub_group",
                "primary_equipment",
                "tier",
                "is_big3",
                "description",
                "video_url",
                "difficulty_level",
                "equipment_required",
                "user_id",
                "created_at",
            ],
        ),
        "user_exercise_settings": (
            """CREATE TABLE user_exercise_settings (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    is_visible INTEGER NOT NULL DEFAULT 1,
                    updated_at TEXT NOT NULL,
                    UNIQUE(user_id, exercise_id),
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            ["id", "user_id", "exercise_id", "is_visible", "updated_at"],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    note TEXT,
                    duration_minutes INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(user_id, date),
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "date",
                "note",
                "duration_minutes",
                "created_at",
                "updated_at",
            ],
        ),
        "sets": (
            """CREATE TABLE sets (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    set_order INTEGER NOT NULL,
                    weight REAL NOT NULL DEFAULT 0,
                    reps INTEGER NOT NULL DEFAULT 0,
                    rpe REAL,
                    is_warmup INTEGER NOT NULL DEFAULT 0,
                    rest_seconds INTEGER,
                    notes TEXT,
                    failure INTEGER NOT NULL DEFAULT 0,
                    duration INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "exercise_id",
                "set_order",
                "weight",
                "reps",
                "rpe",
                "is_warmup",
                "rest_seconds",
                "notes",
                "failure",
                "duration",
                "created_at",
            ],
        ),
        "cardio_records": (
            """CREATE TABLE cardio_records (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    duration INTEGER NOT NULL DEFAULT 0,
                    distance REAL,
                    speed REAL,
                    calories INTEGER,
                    heart_rate INTEGER,
                    incline REAL,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "exercise_id",
                "duration",
                "distance",
                "speed",
                "calories",
                "heart_rate",
                "incline",
                "notes",
                "created_at",
            ],
        ),
    }

    def __init__(self, db_path: str = "musclegrow.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._import_exercise_catalog_data()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=ON;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            conn.execute("PRAGMA legacy_alter_table=ON;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA legacy_alter_table=OFF;")
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in (
                        "is_big3",
                        "is_warmup",
                        "failure",
                        "email_verified",
                        "weight",
                        "reps",
                        "duration",
                    ):
                        return "0"
                    if col == "is_visible":
                        return "1"
                    if col == "tier":
                        return "'initial'"
                    if col in ("created_at", "updated_at", "recorded_at"):
                        return f"'{utc_now()}'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    @staticmethod
    def read_catalog() -> list[dict]:
        csv_path = os.path.join(os.path.dirname(__file__), "exercise_catalog.csv")
        if not os.path.exists(csv_path):
            return []
        with open(csv_path, newline="", encoding="utf-8") as csvfile:
            reader = csv.DictReader(csvfile)
            return [
                {
                    "id": row["id"],
                    "name": row["name"],
                    "name_en": row["name_en"] or None,
                    "body_part": row["body_part"],
                    "muscle_sub_group": row["muscle_sub_group"] or None,
                    "primary_equipment": row["primary_equipment"] or None,
                    "tier": row["tier"],
                    "is_big3": row["is_big3"] == "1",
                }
                for row in reader
            ]

    def _import_exercise_catalog_data(self) -> None:
        records = self.read_catalog()
        with self._connection() as conn:
            for r in records:
                conn.execute(
                    "INSERT INTO exercises (id, name, name_en, body_part, muscle_sub_group, primary_equipment, tier, is_big3, user_id, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?) "
                    "ON CONFLICT(id) DO UPDATE SET name=excluded.name, name_en=excluded.name_en, "
                    "body_part=excluded.body_part, muscle_sub_group=excluded.muscle_sub_group, "
                    "primary_equipment=excluded.primary_equipment, tier=excluded.tier, is_big3=excluded.is_big3;",
                    (
                        r["id"],
                        r["name"],
                        r["name_en"],
                        r["body_part"],
                        r["muscle_sub_group"],
                        r["primary_equipment"],
                        r["tier"],
                        int(r["is_big3"]),
                        CATALOG_CREATED_AT,
                    ),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")

    @staticmethod
    def _to_dicts(columns: Iterable[str], rows: Iterable[Tuple]) -> list[dict]:
        cols = list(columns)
        return [dict(zip(cols, row)) for row in rows]


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)


class UserRepository(BaseRepository):
    """Repository for application users."""

    _COLUMNS = ["id", "name", "email", "email_verified", "image", "created_at", "updated_at"]

    def create(self, name: str, email: str) -> str:
        uid = new_id()
        now = utc_now()
        try:
            self.execute(
                "INSERT INTO users (id, name, email, email_verified, created_at, updated_at) VALUES (?, ?, ?, 0, ?, ?);",
                (uid, name, email, now, now),
            )
        except sqlite3.IntegrityError:
            raise ValueError("email already registered")
        return uid

    def _format(self, row: Tuple) -> dict:
        data = dict(zip(self._COLUMNS, row))
        data["email_verified"] = bool(data["email_verified"])
        return data

    def find_by_email(self, email: str) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM users WHERE email = ?;",
            (email,),
        )
        return self._format(rows[0]) if rows else None

    def fetch_detail(self, user_id: str) -> dict:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM users WHERE id = ?;",
            (user_id,),
        )
        if not rows:
            raise ValueError("user not found")
        return self._format(rows[0])

    def delete(self, user_id: str) -> None:
        if self.execute("DELETE FROM users WHERE id = ?;", (user_id,)) == 0:
            raise ValueError("user not found")


class AuthSessionRepository(BaseRepository):
    """Repository for login sessions keyed by bearer token."""

    def create(
        self,
        user_id: str,
        token: str,
        expires_at: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        sid = new_id()
        now = utc_now()
        self.execute(
            "INSERT INTO sessions (id, token, user_id, expires_at, ip_address, user_agent, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (sid, token, user_id, expires_at, ip_address, user_agent, now, now),
        )
        return sid

    def fetch_by_token(self, token: str) -> Optional[Tuple[str, str]]:
        rows = self.fetch_all(
            "SELECT user_id, expires_at FROM sessions WHERE token = ?;", (token,)
        )
        return rows[0] if rows else None

    def delete_by_token(self, token: str) -> None:
        self.execute("DELETE FROM sessions WHERE token = ?;", (token,))

    def delete_expired(self, now: str) -> int:
        return self.execute("DELETE FROM sessions WHERE expires_at <= ?;", (now,))


class AccountRepository(BaseRepository):
    """Repository for credential and OAuth provider accounts."""

    def add(
        self,
        user_id: str,
        provider_id: str,
        account_id: str,
        password: str | None = None,
    ) -> str:
        aid = new_id()
        now = utc_now()
        self.execute(
            "INSERT INTO accounts (id, account_id, provider_id, user_id, password, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (aid, account_id, provider_id, user_id, password, now, now),
        )
        return aid

    def fetch_password_hash(self, user_id: str) -> Optional[str]:
        rows = self.fetch_all(
            "SELECT password FROM accounts WHERE user_id = ? AND password IS NOT NULL LIMIT 1;",
            (user_id,),
        )
        return rows[0][0] if rows else None

    def has_provider(self, user_id: str, provider_id: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM accounts WHERE user_id = ? AND provider_id = ? LIMIT 1;",
            (user_id, provider_id),
        )
        return bool(rows)

    def set_password(self, user_id: str, password_hash: str) -> None:
        updated = self.execute(
            "UPDATE accounts SET password = ?, updated_at = ? WHERE user_id = ? AND provider_id = 'credential';",
            (password_hash, utc_now(), user_id),
        )
        if updated == 0:
            self.add(user_id, "credential", user_id, password_hash)

    def remove_provider(self, user_id: str, provider_id: str) -> None:
        self.execute(
            "DELETE FROM accounts WHERE user_id = ? AND provider_id = ?;",
            (user_id, provider_id),
        )


class ProfileRepository(BaseRepository):
    """Repository for the one-per-user body profile."""

    _COLUMNS = [
        "id",
        "user_id",
        "height",
        "weight",
        "body_fat",
        "muscle_mass",
        "big3_target_bench_press",
        "big3_target_squat",
        "big3_target_deadlift",
        "created_at",
        "updated_at",
    ]
    EDITABLE = (
        "height",
        "weight",
        "body_fat",
        "muscle_mass",
        "big3_target_bench_press",
        "big3_target_squat",
        "big3_target_deadlift",
    )

    def fetch(self, user_id: str) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM profiles WHERE user_id = ?;",
            (user_id,),
        )
        return dict(zip(self._COLUMNS, rows[0])) if rows else None

    def upsert(self, user_id: str, values: dict) -> dict:
        fields = [k for k in values if k in self.EDITABLE]
        now = utc_now()
        cols = ["id", "user_id", *fields, "created_at", "updated_at"]
        params = [new_id(), user_id, *(values[k] for k in fields), now, now]
        updates = ", ".join(f"{k}=excluded.{k}" for k in fields + ["updated_at"])
        self.execute(
            f"INSERT INTO profiles ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)}) "
            f"ON CONFLICT(user_id) DO UPDATE SET {updates};",
            tuple(params),
        )
        return self.fetch(user_id)


class ProfileHistoryRepository(BaseRepository):
    """Repository for body measurement snapshots."""

    _COLUMNS = ["id", "height", "weight", "body_fat", "muscle_mass", "bmi", "recorded_at"]

    def add(
        self,
        user_id: str,
        height: float | None,
        weight: float | None,
        body_fat: float | None,
        muscle_mass: float | None,
        bmi: float | None,
        recorded_at: str | None = None,
    ) -> str:
        hid = new_id()
        self.execute(
            "INSERT INTO profile_history (id, user_id, height, weight, body_fat, muscle_mass, bmi, recorded_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (hid, user_id, height, weight, body_fat, muscle_mass, bmi, recorded_at or utc_now()),
        )
        return hid

    def fetch_since(self, user_id: str, start_date: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM profile_history "
            "WHERE user_id = ? AND recorded_at >= ? ORDER BY recorded_at, rowid;",
            (user_id, start_date),
        )
        return self._to_dicts(self._COLUMNS, rows)

    def delete_for_user(self, user_id: str) -> None:
        self.execute("DELETE FROM profile_history WHERE user_id = ?;", (user_id,))


class ExerciseRepository(BaseRepository):
    """Repository for shared and user-defined exercises."""

    _COLUMNS = [
        "id",
        "name",
        "name_en",
        "body_part",
        "muscle_sub_group",
        "primary_equipment",
        "tier",
        "is_big3",
        "description",
        "video_url",
        "difficulty_level",
        "equipment_required",
        "user_id",
        "created_at",
    ]

    def _format(self, row: Tuple) -> dict:
        data = dict(zip(self._COLUMNS, row))
        data["is_big3"] = bool(data["is_big3"])
        data["equipment_required"] = (
            json.loads(data["equipment_required"]) if data["equipment_required"] else []
        )
        return data

    def add_custom(self, user_id: str, data: dict, exercise_id: str | None = None) -> str:
        eid = exercise_id or new_id()
        try:
            self.execute(
                "INSERT INTO exercises (id, name, name_en, body_part, muscle_sub_group, primary_equipment, tier, is_big3, "
                "description, video_url, difficulty_level, equipment_required, user_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, 'custom', ?, ?, ?, ?, ?, ?, ?);",
                (
                    eid,
                    data["name"],
                    data.get("name_en"),
                    data["body_part"],
                    data.get("muscle_sub_group"),
                    data.get("primary_equipment"),
                    int(bool(data.get("is_big3", False))),
                    data.get("description"),
                    data.get("video_url"),
                    data.get("difficulty_level"),
                    json.dumps(data.get("equipment_required") or []),
                    user_id,
                    utc_now(),
                ),
            )
        except sqlite3.IntegrityError:
            raise ValueError("exercise already exists")
        return eid

    def fetch_for_user(self, user_id: str | None) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM exercises "
            "WHERE user_id IS NULL OR user_id = ? ORDER BY created_at, rowid;",
            (user_id,),
        )
        return [self._format(r) for r in rows]

    def fetch_detail(self, exercise_id: str) -> dict:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM exercises WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        return self._format(rows[0])

    def fetch_accessible(self, user_id: str, exercise_id: str) -> dict:
        detail = self.fetch_detail(exercise_id)
        if detail["user_id"] is not None and detail["user_id"] != user_id:
            raise ValueError("exercise not found")
        return detail

    def fetch_masters(self) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM exercises "
            "WHERE user_id IS NULL ORDER BY created_at, rowid;"
        )
        return [self._format(r) for r in rows]


class UserExerciseSettingsRepository(BaseRepository):
    """Repository for per-user exercise visibility."""

    def upsert(self, user_id: str, exercise_id: str, visible: bool) -> None:
        self.execute(
            "INSERT INTO user_exercise_settings (id, user_id, exercise_id, is_visible, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id, exercise_id) DO UPDATE SET is_visible=excluded.is_visible, updated_at=excluded.updated_at;",
            (new_id(), user_id, exercise_id, int(visible), utc_now()),
        )

    def fetch_for_user(self, user_id: str) -> dict[str, bool]:
        rows = self.fetch_all(
            "SELECT exercise_id, is_visible FROM user_exercise_settings WHERE user_id = ?;",
            (user_id,),
        )
        return {eid: bool(visible) for eid, visible in rows}


class WorkoutSessionRepository(BaseRepository):
    """Repository for per-day workout sessions."""

    _COLUMNS = ["id", "user_id", "date", "note", "duration_minutes", "created_at", "updated_at"]

    def upsert(
        self,
        user_id: str,
        date: str,
        note: str | None = None,
        duration_minutes: int | None = None,
    ) -> str:
        existing = self.fetch_by_date(user_id, date)
        now = utc_now()
        if existing is not None:
            self.execute(
                "UPDATE workout_sessions SET note = COALESCE(?, note), "
                "duration_minutes = COALESCE(?, duration_minutes), updated_at = ? WHERE id = ?;",
                (note, duration_minutes, now, existing["id"]),
            )
            return existing["id"]
        sid = new_id()
        self.execute(
            "INSERT INTO workout_sessions (id, user_id, date, note, duration_minutes, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (sid, user_id, date, note, duration_minutes, now, now),
        )
        return sid

    def fetch_by_date(self, user_id: str, date: str) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM workout_sessions WHERE user_id = ? AND date = ?;",
            (user_id, date),
        )
        return dict(zip(self._COLUMNS, rows[0])) if rows else None

    def fetch_range(
        self, user_id: str, start_date: str | None = None, end_date: str | None = None
    ) -> list[dict]:
        query = f"SELECT {', '.join(self._COLUMNS)} FROM workout_sessions WHERE user_id = ?"
        params: list[str] = [user_id]
        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        query += " ORDER BY date DESC;"
        return self._to_dicts(self._COLUMNS, self.fetch_all(query, tuple(params)))

    def fetch_detail(self, session_id: str) -> dict:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise ValueError("session not found")
        return dict(zip(self._COLUMNS, rows[0]))

    def body_parts_by_date(
        self, user_id: str, start_date: str, end_date: str
    ) -> List[Tuple[str, str]]:
        return self.fetch_all(
            "SELECT ws.date, e.body_part FROM sets s "
            "JOIN workout_sessions ws ON s.session_id = ws.id "
            "JOIN exercises e ON s.exercise_id = e.id "
            "WHERE ws.user_id = ? AND ws.date BETWEEN ? AND ? "
            "UNION "
            "SELECT ws.date, e.body_part FROM cardio_records c "
            "JOIN workout_sessions ws ON c.session_id = ws.id "
            "JOIN exercises e ON c.exercise_id = e.id "
            "WHERE ws.user_id = ? AND ws.date BETWEEN ? AND ? "
            "ORDER BY 1, 2;",
            (user_id, start_date, end_date, user_id, start_date, end_date),
        )

    def delete_for_user(self, user_id: str) -> int:
        return self.execute("DELETE FROM workout_sessions WHERE user_id = ?;", (user_id,))


class SetRepository(BaseRepository):
    """Repository for strength sets."""

    _COLUMNS = [
        "id",
        "exercise_id",
        "set_order",
        "weight",
        "reps",
        "rpe",
        "is_warmup",
        "rest_seconds",
        "notes",
        "failure",
        "duration",
    ]

    @classmethod
    def _format(cls, row: Tuple) -> dict:
        data = dict(zip(cls._COLUMNS, row))
        data["is_warmup"] = bool(data["is_warmup"])
        data["failure"] = bool(data["failure"])
        return data

    def replace(self, session_id: str, exercise_id: str, sets: list[dict]) -> int:
        """Replace all sets of an exercise within a session atomically."""
        now = utc_now()
        with self._connection() as conn:
            conn.execute(
                "DELETE FROM sets WHERE session_id = ? AND exercise_id = ?;",
                (session_id, exercise_id),
            )
            for order, item in enumerate(sets, start=1):
                conn.execute(
                    "INSERT INTO sets (id, session_id, exercise_id, set_order, weight, reps, rpe, is_warmup, "
                    "rest_seconds, notes, failure, duration, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                    (
                        new_id(),
                        session_id,
                        exercise_id,
                        order,
                        item.get("weight") or 0,
                        item.get("reps") or 0,
                        item.get("rpe"),
                        int(bool(item.get("is_warmup", False))),
                        item.get("rest_seconds"),
                        item.get("notes"),
                        int(bool(item.get("failure", False))),
                        item.get("duration"),
                        now,
                    ),
                )
        return len(sets)

    def fetch_for_exercise(self, session_id: str, exercise_id: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM sets WHERE session_id = ? AND exercise_id = ? ORDER BY set_order;",
            (session_id, exercise_id),
        )
        return [self._format(r) for r in rows]

    def fetch_for_session(self, session_id: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM sets WHERE session_id = ? ORDER BY rowid;",
            (session_id,),
        )
        return [self._format(r) for r in rows]

    def delete_for_exercise(self, session_id: str, exercise_id: str) -> int:
        return self.execute(
            "DELETE FROM sets WHERE session_id = ? AND exercise_id = ?;",
            (session_id, exercise_id),
        )

    def max_weight_by_date(
        self, user_id: str, exercise_id: str, start_date: str | None = None
    ) -> List[Tuple[str, float]]:
        query = (
            "SELECT ws.date, MAX(s.weight) FROM sets s "
            "JOIN workout_sessions ws ON s.session_id = ws.id "
            "WHERE ws.user_id = ? AND s.exercise_id = ? AND s.is_warmup = 0 AND s.weight > 0"
        )
        params: list[str] = [user_id, exercise_id]
        if start_date:
            query += " AND ws.date >= ?"
            params.append(start_date)
        query += " GROUP BY ws.date ORDER BY ws.date;"
        return self.fetch_all(query, tuple(params))

    def max_weights(self, user_id: str, include_warmup: bool = True) -> dict[str, float]:
        query = (
            "SELECT s.exercise_id, MAX(s.weight) FROM sets s "
            "JOIN workout_sessions ws ON s.session_id = ws.id "
            "WHERE ws.user_id = ? AND s.weight > 0"
        )
        if not include_warmup:
            query += " AND s.is_warmup = 0"
        query += " GROUP BY s.exercise_id;"
        return {eid: weight for eid, weight in self.fetch_all(query, (user_id,))}

    def fetch_history(self, user_id: str, exercise_id: str | None = None) -> list[dict]:
        """Return every set of a user together with its session date."""
        query = (
            f"SELECT ws.date, {', '.join('s.' + c for c in self._COLUMNS)} FROM sets s "
            "JOIN workout_sessions ws ON s.session_id = ws.id WHERE ws.user_id = ?"
        )
        params: list[str] = [user_id]
        if exercise_id:
            query += " AND s.exercise_id = ?"
            params.append(exercise_id)
        query += " ORDER BY ws.date, s.set_order;"
        result = []
        for row in self.fetch_all(query, tuple(params)):
            data = self._format(row[1:])
            data["date"] = row[0]
            result.append(data)
        return result

    def export_rows(self, user_id: str) -> List[Tuple]:
        return self.fetch_all(
            "SELECT ws.date, e.name, e.body_part, s.weight, s.reps, s.set_order, s.duration, ws.note "
            "FROM sets s JOIN workout_sessions ws ON s.session_id = ws.id "
            "JOIN exercises e ON s.exercise_id = e.id "
            "WHERE ws.user_id = ? ORDER BY ws.date DESC, e.name, s.set_order;",
            (user_id,),
        )


class CardioRecordRepository(BaseRepository):
    """Repository for cardio records."""

    _COLUMNS = [
        "id",
        "exercise_id",
        "duration",
        "distance",
        "speed",
        "calories",
        "heart_rate",
        "incline",
        "notes",
    ]

    def replace(self, session_id: str, exercise_id: str, records: list[dict]) -> int:
        """Replace all cardio records of an exercise within a session atomically."""
        now = utc_now()
        with self._connection() as conn:
            conn.execute(
                "DELETE FROM cardio_records WHERE session_id = ? AND exercise_id = ?;",
                (session_id, exercise_id),
            )
            for item in records:
                conn.execute(
                    "INSERT INTO cardio_records (id, session_id, exercise_id, duration, distance, speed, calories, "
                    "heart_rate, incline, notes, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                    (
                        new_id(),
                        session_id,
                        exercise_id,
                        item.get("duration") or 0,
                        item.get("distance"),
                        item.get("speed"),
                        item.get("calories"),
                        item.get("heart_rate"),
                        item.get("incline"),
                        item.get("notes"),
                        now,
                    ),
                )
        return len(records)

    def fetch_for_exercise(self, session_id: str, exercise_id: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM cardio_records WHERE session_id = ? AND exercise_id = ? ORDER BY rowid;",
            (session_id, exercise_id),
        )
        return self._to_dicts(self._COLUMNS, rows)

    def fetch_for_session(self, session_id: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM cardio_records WHERE session_id = ? ORDER BY rowid;",
            (session_id,),
        )
        return self._to_dicts(self._COLUMNS, rows)

    def delete_for_exercise(self, session_id: str, exercise_id: str) -> int:
        return self.execute(
            "DELETE FROM cardio_records WHERE session_id = ? AND exercise_id = ?;",
            (session_id, exercise_id),
        )

    def fetch_history(self, user_id: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT ws.date, {', '.join('c.' + c for c in self._COLUMNS)} FROM cardio_records c "
            "JOIN workout_sessions ws ON c.session_id = ws.id WHERE ws.user_id = ? ORDER BY ws.date, c.rowid;",
            (user_id,),
        )
        result = []
        for row in rows:
            data = dict(zip(self._COLUMNS, row[1:]))
            data["date"] = row[0]
            result.append(data)
        return result

    def export_rows(self, user_id: str) -> List[Tuple]:
        return self.fetch_all(
            "SELECT ws.date, e.name, e.body_part, c.duration, c.distance, c.calories, ws.note "
            "FROM cardio_records c JOIN workout_sessions ws ON c.session_id = ws.id "
            "JOIN exercises e ON c.exercise_id = e.id "
            "WHERE ws.user_id = ? ORDER BY ws.date DESC, e.name;",
            (user_id,),
        )


class AsyncSetRepository(AsyncBaseRepository):
    """Async read access to strength sets."""

    async def fetch_for_exercise(self, session_id: str, exercise_id: str) -> list[dict]:
        rows = await self.fetch_all(
            f"SELECT {', '.join(SetRepository._COLUMNS)} FROM sets WHERE session_id = ? AND exercise_id = ? ORDER BY set_order;",
            (session_id, exercise_id),
        )
        return [SetRepository._format(r) for r in rows]


class AsyncCardioRecordRepository(AsyncBaseRepository):
    """Async read access to cardio records."""

    async def fetch_for_exercise(self, session_id: str, exercise_id: str) -> list[dict]:
        rows = await self.fetch_all(
            f"SELECT {', '.join(CardioRecordRepository._COLUMNS)} FROM cardio_records "
            "WHERE session_id = ? AND exercise_id = ? ORDER BY rowid;",
            (session_id, exercise_id),
        )
        return self._to_dicts(CardioRecordRepository._COLUMNS, rows)
