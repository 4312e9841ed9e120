"""SQLite storage for encoded conversation backups."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from pathlib import Path

from .bitstream import from_base64
from .config import DEFAULT_VERSION
from .errors import BackupError, BackupNotFound
from .formatting import iso_now
from .models import BackupRecord, BackupSummary

logger = logging.getLogger(__name__)

_SUMMARY_COLUMNS = (
    "id, file_name, message_count, version, file_size, description, created_at, updated_at"
)


class BackupStore:
    """SQLite-backed storage for backup records.

    The connection may be used from worker threads; access is serialized.
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.Lock()
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS memory_backups (
                id TEXT PRIMARY KEY,
                file_name TEXT NOT NULL,
                binary_data TEXT NOT NULL,
                message_count INTEGER NOT NULL DEFAULT 0,
                version TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                description TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_memory_backups_created
                ON memory_backups(created_at);
        """)
        self.conn.commit()

    def create(
        self,
        file_name: str,
        binary_data: str,
        message_count: int = 0,
        version: str = DEFAULT_VERSION,
        description: str | None = None,
    ) -> BackupRecord:
        """Store a base64 payload and return the new record.

        ``file_size`` is the length of the decoded payload, so invalid base64
        is rejected here with MalformedPayload.
        """
        if not binary_data or not file_name:
            raise BackupError("Missing required fields: binaryData or fileName")

        file_size = len(from_base64(binary_data))
        now = iso_now()
        record = BackupRecord(
            id=uuid.uuid4().hex,
            file_name=file_name,
            binary_data=binary_data,
            message_count=message_count or 0,
            version=version or DEFAULT_VERSION,
            file_size=file_size,
            description=description or f"Auto-backup {now}",
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            self.conn.execute(
                """INSERT INTO memory_backups (id, file_name, binary_data, message_count,
                   version, file_size, description, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (record.id, record.file_name, record.binary_data, record.message_count,
                 record.version, record.file_size, record.description,
                 record.created_at, record.updated_at),
            )
            self.conn.commit()

        logger.info("Saved backup %s (%s, %d bytes)", record.id, file_name, file_size)
        return record

    def get(self, backup_id: str) -> BackupRecord:
        """Get a backup including its payload."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM memory_backups WHERE id = ?", (backup_id,)
            ).fetchone()
        if not row:
            raise BackupNotFound(backup_id)
        return BackupRecord.model_validate(dict(row))

    def exists(self, backup_id: str) -> bool:
        with self._lock:
            row = self.conn.execute(
                "SELECT 1 FROM memory_backups WHERE id = ?", (backup_id,)
            ).fetchone()
        return row is not None

    def list(self) -> list[BackupSummary]:
        """List backups newest first, without payloads."""
        with self._lock:
            rows = self.conn.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM memory_backups "
                "ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [BackupSummary.model_validate(dict(r)) for r in rows]

    def delete(self, backup_id: str):
        with self._lock:
            cursor = self.conn.execute(
                "DELETE FROM memory_backups WHERE id = ?", (backup_id,)
            )
            self.conn.commit()
        if cursor.rowcount == 0:
            raise BackupNotFound(backup_id)
        logger.info("Deleted backup %s", backup_id)

    def get_stats(self) -> dict:
        """Get overall backup statistics."""
        with self._lock:
            row = self.conn.execute(
                """SELECT COUNT(*), COALESCE(SUM(file_size), 0),
                          COALESCE(SUM(message_count), 0), MAX(created_at)
                   FROM memory_backups"""
            ).fetchone()

        return {
            "total_backups": row[0],
            "total_bytes": row[1],
            "total_messages": row[2],
            "latest_backup": row[3],
        }

    def close(self):
        self.conn.close()
