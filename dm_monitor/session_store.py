"""Persisted protocol sessions backed by SQLite files."""
import sqlite3
import os
import logging
from datetime import datetime

logger = logging.getLogger(__name__)


def _ensure_directory(path):
    """Ensure the directory for a session file exists."""
    session_dir = os.path.dirname(path)
    if session_dir and not os.path.exists(session_dir):
        os.makedirs(session_dir)
        logger.info("Created directory for session files: %s", session_dir)


def repair_session_file(path):
    """Delete ``path`` if it is not a readable SQLite database.

    Returns True when a corrupted file was removed. A missing file is left
    alone; whoever opens it next creates a fresh one.
    """
    _ensure_directory(path)
    if not os.path.exists(path):
        return False

    conn = None
    try:
        conn = sqlite3.connect(path)
        conn.execute("PRAGMA schema_version").fetchone()
        return False
    except sqlite3.DatabaseError as e:
        logger.error("Session database %s is corrupted: %s", path, e)
    finally:
        if conn is not None:
            conn.close()

    logger.info("Deleting corrupted session file and creating a new one")
    os.remove(path)
    return True


class SessionStore:
    """Key/value session data persisted in a single SQLite file."""

    def __init__(self, path):
        """Open the session file, recreating it if it cannot be read."""
        self.path = path
        repair_session_file(self.path)
        self._init_db()

    def _init_db(self):
        """Initialize the session table if it doesn't exist."""
        conn = sqlite3.connect(self.path)
        try:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS session_data (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            conn.commit()
            logger.info("Using session file: %s", self.path)
        except Exception as e:
            logger.error("Error initializing session file: %s", e)
            raise
        finally:
            conn.close()

    def reload(self):
        """Re-check the file before a connect attempt; recreate it if damaged."""
        if repair_session_file(self.path) or not os.path.exists(self.path):
            self._init_db()

    def get(self, key, default=None):
        """Return the stored value for ``key``."""
        conn = sqlite3.connect(self.path)
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM session_data WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row is not None else default
        finally:
            conn.close()

    def set(self, key, value):
        """Store ``value`` under ``key``."""
        self.update({key: value})

    def update(self, values):
        """Store several values in one transaction."""
        conn = sqlite3.connect(self.path)
        try:
            updated_at = datetime.now().isoformat()
            cursor = conn.cursor()
            cursor.executemany(
                "INSERT OR REPLACE INTO session_data (key, value, updated_at) VALUES (?, ?, ?)",
                [(key, str(value), updated_at) for key, value in values.items()]
            )
            conn.commit()
        except Exception as e:
            logger.error("Error saving session data: %s", e)
            conn.rollback()
            raise
        finally:
            conn.close()

    def clear(self):
        """Forget all stored session data."""
        conn = sqlite3.connect(self.path)
        try:
            conn.execute("DELETE FROM session_data")
            conn.commit()
            logger.info("Cleared session data in %s", self.path)
        finally:
            conn.close()
