"""Import pipeline for user-supplied history files and ZIP archives."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

from .codec import decode_lenient
from .config import IMPORT_SUFFIXES, MAX_IMPORT_BYTES
from .errors import ImportFileError
from .models import ArchiveEntry, ConversationMessage

logger = logging.getLogger(__name__)


def import_history_file(path: str | Path) -> list[ConversationMessage]:
    """Read a ``.bin``/``.txt`` history file through the lenient decode route.

    Only unreadable files raise; unparseable content comes back as a single
    system message.
    """
    file = Path(path)

    if not file.is_file():
        raise ImportFileError(f"File not found: {file}", details={"path": str(file)})

    size = file.stat().st_size
    if size > MAX_IMPORT_BYTES:
        raise ImportFileError(
            f"File too large to import: {file.name} ({size} bytes)",
            details={"path": str(file), "size": size},
        )

    if file.suffix.lower() not in IMPORT_SUFFIXES:
        logger.debug("Importing %s with unexpected suffix '%s'", file.name, file.suffix)

    messages = decode_lenient(file.read_bytes())
    logger.info("Imported %d messages from %s", len(messages), file.name)
    return messages


def list_archive(zip_path: str | Path) -> list[ArchiveEntry]:
    """List the files inside a ZIP archive (directories are skipped)."""
    zip_file = Path(zip_path)

    if not zip_file.exists():
        raise ImportFileError(f"File not found: {zip_path}", details={"path": str(zip_path)})

    if not zipfile.is_zipfile(str(zip_file)):
        raise ImportFileError(f"Not a valid ZIP file: {zip_path}", details={"path": str(zip_path)})

    with zipfile.ZipFile(str(zip_file), "r") as zf:
        return [
            ArchiveEntry(name=info.filename, size=info.file_size, compressed_size=info.compress_size)
            for info in zf.infolist()
            if not info.is_dir()
        ]
