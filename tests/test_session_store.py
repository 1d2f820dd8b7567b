"""Tests for persisted session files."""

import sqlite3

from dm_monitor.session_store import SessionStore, repair_session_file

GARBAGE = b"this is not a sqlite database " * 64


class TestRepairSessionFile:
    """Tests for repair_session_file."""

    def test_missing_file_is_left_alone(self, tmp_path):
        path = tmp_path / "missing.session"
        assert repair_session_file(str(path)) is False
        assert not path.exists()

    def test_valid_file_is_kept(self, tmp_path):
        path = tmp_path / "valid.session"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE t (x INTEGER)")
        conn.commit()
        conn.close()

        assert repair_session_file(str(path)) is False
        assert path.exists()

    def test_corrupted_file_is_deleted(self, tmp_path):
        path = tmp_path / "corrupt.session"
        path.write_bytes(GARBAGE)

        assert repair_session_file(str(path)) is True
        assert not path.exists()

    def test_creates_missing_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "x.session"
        repair_session_file(str(path))
        assert path.parent.is_dir()


class TestSessionStore:
    """Tests for SessionStore."""

    def test_values_survive_reopen(self, tmp_path):
        path = str(tmp_path / "discord.session")
        SessionStore(path).update({"session_id": "abc", "seq": 42})

        reopened = SessionStore(path)
        assert reopened.get("session_id") == "abc"
        assert reopened.get("seq") == "42"
        assert reopened.get("missing", "default") == "default"

    def test_corrupted_file_replaced_on_open(self, tmp_path):
        path = tmp_path / "discord.session"
        path.write_bytes(GARBAGE)

        store = SessionStore(str(path))

        assert store.get("session_id") is None
        store.set("session_id", "fresh")
        assert store.get("session_id") == "fresh"

    def test_reload_recovers_from_corruption(self, tmp_path):
        path = tmp_path / "discord.session"
        store = SessionStore(str(path))
        store.set("session_id", "old")

        path.write_bytes(GARBAGE)
        store.reload()

        assert store.get("session_id") is None
        conn = sqlite3.connect(str(path))
        try:
            conn.execute("PRAGMA schema_version").fetchone()
        finally:
            conn.close()

    def test_clear(self, tmp_path):
        store = SessionStore(str(tmp_path / "s.session"))
        store.update({"session_id": "abc", "seq": 1})
        store.clear()
        assert store.get("session_id") is None
        assert store.get("seq") is None
