"""
SQLite storage for podcast records.

This is the persistence stage of the pipeline: a record is created when a job
starts and updated with the result, or with the error if the job fails.
"""

import json
import os
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple

from kokoro_podcast.jobs.pipeline import PersistenceError

PODCAST_STATUSES = ('generating', 'completed', 'failed')

UPDATABLE_COLUMNS = ('audio_url', 'audio_duration', 'transcript', 'status', 'error')


class PodcastDatabase:
    """
    SQLite-based storage for podcast metadata.

    Features:
    - Thread-local connections (the worker and UI threads both read)
    - WAL mode for concurrent access
    - Every failure surfaces as PersistenceError
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize storage.

        Args:
            db_path: Path to SQLite database file. Defaults to ~/.kokoro-podcast/podcasts.db
        """
        if db_path is None:
            data_dir = Path.home() / ".kokoro-podcast"
            data_dir.mkdir(exist_ok=True)
            db_path = str(data_dir / "podcasts.db")
        else:
            parent = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(parent, exist_ok=True)

        self.db_path = db_path
        self._local = threading.local()

        self._initialize_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        if not hasattr(self._local, 'connection'):
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.connection = conn

        return self._local.connection

    @contextmanager
    def _transaction(self):
        """
        Context manager for database transactions.

        Commits on success, rolls back and raises PersistenceError on error.
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise

    def _initialize_database(self):
        """Initialize database schema from schema.sql."""
        schema_path = Path(__file__).parent / "schema.sql"
        schema_sql = schema_path.read_text(encoding="utf-8")

        conn = self._get_connection()
        conn.executescript(schema_sql)
        conn.commit()

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        record['transcript'] = json.loads(record['transcript'] or '[]')
        return record

    # Podcast CRUD Operations

    def create_podcast(self, note_id: str, user_id: str, note_content: str, duration: str) -> str:
        """
        Create a podcast record in 'generating' state.

        Returns:
            ID of the new record
        """
        podcast_id = uuid.uuid4().hex
        now = time.time()

        with self._transaction() as conn:
            conn.execute("""
                INSERT INTO podcasts (
                    podcast_id, note_id, user_id, note_content, duration,
                    status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 'generating', ?, ?)
            """, (podcast_id, note_id, user_id, note_content, duration, now, now))

        return podcast_id

    def update_podcast(self, podcast_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        """
        Update fields of a podcast record.

        Args:
            podcast_id: Record to update
            **fields: Any of audio_url, audio_duration, transcript, status, error

        Returns:
            The updated record, or None if it doesn't exist

        Raises:
            PersistenceError: On invalid fields or database errors
        """
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise PersistenceError(f"Cannot update podcast fields: {', '.join(sorted(unknown))}")
        if 'status' in fields and fields['status'] not in PODCAST_STATUSES:
            raise PersistenceError(f"Invalid podcast status: {fields['status']}")
        if 'transcript' in fields:
            fields['transcript'] = json.dumps(fields['transcript'])

        if fields:
            assignments = ", ".join(f"{column} = :{column}" for column in fields)
            params = dict(fields, podcast_id=podcast_id, updated_at=time.time())

            with self._transaction() as conn:
                conn.execute(
                    f"UPDATE podcasts SET {assignments}, updated_at = :updated_at "
                    f"WHERE podcast_id = :podcast_id",
                    params
                )

        return self.get_podcast(podcast_id)

    def get_podcast(self, podcast_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a podcast record by ID, or None if not found."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM podcasts WHERE podcast_id = ?", (podcast_id,)
            ).fetchone()

        return self._row_to_dict(row) if row else None

    def get_podcasts_by_user(
        self,
        user_id: str,
        limit: int = 10,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Get a page of a user's podcasts, newest first.

        Returns:
            Tuple of (records, total count for the user)
        """
        with self._transaction() as conn:
            rows = conn.execute("""
                SELECT * FROM podcasts
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
            """, (user_id, limit, offset)).fetchall()
            total = conn.execute(
                "SELECT COUNT(*) FROM podcasts WHERE user_id = ?", (user_id,)
            ).fetchone()[0]

        return [self._row_to_dict(row) for row in rows], total

    def get_podcasts_by_note(self, note_id: str) -> List[Dict[str, Any]]:
        """All podcasts generated from one note, newest first."""
        with self._transaction() as conn:
            rows = conn.execute("""
                SELECT * FROM podcasts WHERE note_id = ? ORDER BY created_at DESC
            """, (note_id,)).fetchall()

        return [self._row_to_dict(row) for row in rows]

    def get_recent_podcasts(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM podcasts ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()

        return [self._row_to_dict(row) for row in rows]

    def delete_podcast(self, podcast_id: str) -> bool:
        """Delete a podcast record. Returns False if it didn't exist."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM podcasts WHERE podcast_id = ?", (podcast_id,))

        return cursor.rowcount > 0

    def close(self):
        """Close this thread's database connection."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            delattr(self._local, 'connection')
