import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, ExerciseRepository


class TestSchemaMigration:
    def test_drops_existing_backup_table(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE profiles (id TEXT PRIMARY KEY, user_id TEXT, height REAL, weight REAL)"
        )
        conn.execute("INSERT INTO profiles VALUES ('p1', 'u1', 170.0, 65.0)")
        conn.execute("CREATE TABLE profiles_old (id TEXT)")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='profiles_old'"
        )
        assert cur.fetchone() is None
        cur = conn.execute("PRAGMA table_info(profiles)")
        cols = [row[1] for row in cur.fetchall()]
        assert "body_fat" in cols
        assert "big3_target_deadlift" in cols
        row = conn.execute(
            "SELECT user_id, height, weight, body_fat, created_at FROM profiles"
        ).fetchone()
        assert row[:4] == ("u1", 170.0, 65.0, None)
        assert row[4] is not None
        conn.close()

    def test_new_columns_get_defaults(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE exercises (id TEXT PRIMARY KEY, name TEXT, body_part TEXT, created_at TEXT)"
        )
        conn.execute(
            "INSERT INTO exercises VALUES ('old-1', 'Old Press', 'chest', '2020-01-01T00:00:00+00:00')"
        )
        conn.commit()
        conn.close()

        repo = ExerciseRepository(str(db_file))
        old = repo.fetch_detail("old-1")
        assert old["tier"] == "initial"
        assert old["is_big3"] is False
        assert old["equipment_required"] == []

    def test_catalog_import_is_idempotent(self, tmp_path):
        db_file = str(tmp_path / "test.db")
        Database(db_file)
        Database(db_file)
        masters = ExerciseRepository(db_file).fetch_masters()
        assert len(masters) == len(Database.read_catalog())
        big3 = sorted(e["id"] for e in masters if e["is_big3"])
        assert big3 == ["bench-press", "deadlift", "squat"]
        assert masters[0]["id"] == "bench-press"
