"""Session state for one chat: the message list, backups and the auto-save timer."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable

from . import codec
from .bitstream import from_base64
from .config import AUTO_SAVE_INTERVAL_MINUTES, DEFAULT_VERSION
from .errors import BackupError
from .formatting import iso_now
from .importer import import_history_file
from .models import BackupRecord, ConversationMessage, Role
from .storage import BackupStore

logger = logging.getLogger(__name__)

MANUAL_DESCRIPTION = "Manual backup"
AUTO_DESCRIPTION = "Auto-saved backup"


def backup_file_name(prefix: str = "EMG_BACKUP") -> str:
    return f"{prefix}_{int(time.time() * 1000)}.bin"


def create_backup(
    store: BackupStore,
    history: list[ConversationMessage],
    version: str = DEFAULT_VERSION,
    file_name: str | None = None,
    description: str | None = None,
) -> BackupRecord:
    """Encode ``history`` and store it under the default name and description."""
    return store.create(
        file_name or backup_file_name(),
        codec.encode_base64(history, version),
        len(history),
        version,
        description or MANUAL_DESCRIPTION,
    )


def write_export(record: BackupRecord, dest: Path) -> Path:
    """Write a backup's raw packed bytes; a directory ``dest`` gets its file name."""
    if dest.is_dir():
        dest = dest / record.file_name
    try:
        dest.write_bytes(from_base64(record.binary_data))
    except OSError as exc:
        raise BackupError(
            f"Could not write {dest}: {exc.strerror or exc}",
            details={"path": str(dest)},
        ) from exc
    return dest


class SessionController:
    """Owns the in-memory history of one session and its backup operations.

    Encoding and store calls run in a worker thread; restore decodes inline.
    """

    def __init__(self, store: BackupStore, version: str = DEFAULT_VERSION):
        self.store = store
        self.version = version
        self.history: list[ConversationMessage] = []

    def add_message(self, role: Role, text: str, is_reflective: bool = False) -> ConversationMessage:
        msg = ConversationMessage(
            role=role,
            text=text,
            timestamp=iso_now(),
            is_reflective=is_reflective or None,
        )
        self.history.append(msg)
        return msg

    def clear(self):
        self.history = []

    async def save_backup(
        self,
        file_name: str | None = None,
        description: str | None = None,
    ) -> BackupRecord:
        return await asyncio.to_thread(
            create_backup, self.store, list(self.history), self.version, file_name, description
        )

    async def auto_save(self) -> BackupRecord | None:
        if not self.history:
            logger.debug("Auto-save skipped, history is empty")
            return None
        return await self.save_backup(backup_file_name("AUTO"), AUTO_DESCRIPTION)

    async def restore(self, backup_id: str) -> list[ConversationMessage]:
        """Replace the history with a stored backup.

        Raises BackupNotFound or DecodeError; the history is left as it was.
        """
        record = await asyncio.to_thread(self.store.get, backup_id)
        messages = codec.decode_base64(record.binary_data)
        self.history = messages
        logger.info("Restored %d messages from backup %s", len(messages), backup_id)
        return messages

    async def import_file(self, path: Path) -> list[ConversationMessage]:
        """Replace the history with the contents of a user-supplied file."""
        messages = await asyncio.to_thread(import_history_file, path)
        self.history = messages
        return messages

    async def export(self, backup_id: str, dest: Path) -> Path:
        """Write a stored backup's raw packed bytes to ``dest``.

        A directory ``dest`` receives the backup under its own file name.
        """
        record = await asyncio.to_thread(self.store.get, backup_id)
        return await asyncio.to_thread(write_export, record, dest)


class AutoSaver:
    """Periodically calls ``SessionController.auto_save``.

    ``sleep`` is injectable so callers (and tests) control the timer.
    """

    def __init__(
        self,
        controller: SessionController,
        interval_minutes: float = AUTO_SAVE_INTERVAL_MINUTES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.controller = controller
        self.interval_minutes = interval_minutes
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def enabled(self) -> bool:
        return self.interval_minutes > 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the timer; a no-op when disabled or already running."""
        if not self.enabled or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self):
        while True:
            await self._sleep(self.interval_minutes * 60)
            try:
                record = await self.controller.auto_save()
            except Exception:
                logger.warning("Auto-save failed", exc_info=True)
                continue
            if record is not None:
                logger.info("Auto-saved %d messages as %s", record.message_count, record.file_name)
