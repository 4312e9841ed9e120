"""Error types raised by the codec, the backup store and the importer."""

from __future__ import annotations

from typing import Any, Optional


class ChatBackupError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class DecodeError(ChatBackupError):
    """A payload could not be turned back into a conversation history."""


class MalformedPayload(DecodeError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("malformed_payload", message, details)


class UnrecognizedShape(DecodeError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("unrecognized_shape", message, details)


class BackupError(ChatBackupError):
    def __init__(self, message: str, code: str = "backup_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class BackupNotFound(BackupError):
    def __init__(self, backup_id: str):
        super().__init__(f"Backup not found: {backup_id}", code="backup_not_found", details={"id": backup_id})
        self.backup_id = backup_id


class ImportFileError(ChatBackupError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("import_error", message, details)
