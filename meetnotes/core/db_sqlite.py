"""
SQLite job table for the local (Deepgram) transcription runner.
Thread-safe via check_same_thread=False + explicit locking.
"""

import sqlite3
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from meetnotes.core.constants import DEFAULT_JOB_DB_PATH, RemoteJobStatus
from meetnotes.core.models import TranscriptionJob

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS transcription_jobs (
    job_name TEXT PRIMARY KEY,
    video_id TEXT NOT NULL,
    media_path TEXT NOT NULL,
    output_path TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'QUEUED',
    error_code TEXT,
    error_message TEXT,
    created_at TEXT,
    updated_at TEXT,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_transcription_jobs_status ON transcription_jobs(status);
"""

_TERMINAL = (RemoteJobStatus.COMPLETED, RemoteJobStatus.FAILED)


class Database:
    """SQLite database wrapper for transcription jobs."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or DEFAULT_JOB_DB_PATH)
        self._lock = threading.Lock()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(_CREATE_TABLES)
            cur.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
            self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> TranscriptionJob:
        return TranscriptionJob(**dict(row))

    # ── Job CRUD ──────────────────────────────────────────────────────

    def upsert_job(self, job_name: str, video_id: str, media_path: str,
                   output_path: str) -> tuple[TranscriptionJob, bool]:
        """
        Create a QUEUED job, or reset a FAILED one with the same name.
        Returns (job, queued) where queued is False when a live or completed
        job already existed and was left untouched.
        """
        now = self._now()
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM transcription_jobs WHERE job_name = ?", (job_name,)
            ).fetchone()
            if row and row['status'] != RemoteJobStatus.FAILED:
                return self._row_to_job(row), False

            self.conn.execute(
                """INSERT OR REPLACE INTO transcription_jobs
                   (job_name, video_id, media_path, output_path, status,
                    error_code, error_message, created_at, updated_at, completed_at)
                   VALUES (?, ?, ?, ?, ?, NULL, NULL, ?, ?, NULL)""",
                (job_name, video_id, media_path, output_path,
                 RemoteJobStatus.QUEUED, now, now),
            )
            self.conn.commit()
            row = self.conn.execute(
                "SELECT * FROM transcription_jobs WHERE job_name = ?", (job_name,)
            ).fetchone()
        return self._row_to_job(row), True

    def get_job(self, job_name: str) -> TranscriptionJob | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM transcription_jobs WHERE job_name = ?", (job_name,)
            ).fetchone()
        return self._row_to_job(row) if row else None

    def get_unfinished_jobs(self) -> list[TranscriptionJob]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM transcription_jobs WHERE status NOT IN (?, ?) ORDER BY created_at ASC",
                _TERMINAL,
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def update_job_status(self, job_name: str, status: str, **extra):
        fields = {'status': status, 'updated_at': self._now()}
        if status in _TERMINAL:
            fields['completed_at'] = fields['updated_at']
        fields.update(extra)
        sets = ', '.join(f"{k} = ?" for k in fields)
        vals = list(fields.values()) + [job_name]
        with self._lock:
            self.conn.execute(
                f"UPDATE transcription_jobs SET {sets} WHERE job_name = ?", vals
            )
            self.conn.commit()

    def delete_job(self, job_name: str):
        with self._lock:
            self.conn.execute("DELETE FROM transcription_jobs WHERE job_name = ?", (job_name,))
            self.conn.commit()
