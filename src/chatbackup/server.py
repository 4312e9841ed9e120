"""FastMCP server exposing backup, restore and scan tools."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from . import codec
from .anomaly import anomaly_stats, scan_buffer
from .config import DEFAULT_VERSION, EXPORT_DIR, SQLITE_PATH
from .errors import ChatBackupError
from .formatting import format_byte_size, format_datetime, format_relative_time
from .session import create_backup, write_export
from .storage import BackupStore

# Logging to stderr only, stdout is the MCP JSON-RPC transport
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)

mcp = FastMCP(
    "chatbackup",
    instructions=(
        "Save and restore chat conversation history backups. "
        "Use save_backup to store a list of messages, list_backups to browse, "
        "restore_backup to read a backup's messages back, and download_backup "
        "to export the raw .bin file. Use scan_anomalies to look for undefined "
        "terms in a block of text."
    ),
)

# Singleton store, reused across tool calls
_store: BackupStore | None = None


def _get_store() -> BackupStore:
    global _store
    if _store is None:
        _store = BackupStore(SQLITE_PATH)
    return _store


@mcp.tool()
def save_backup(
    messages: list[dict],
    file_name: str | None = None,
    description: str | None = None,
    version: str = DEFAULT_VERSION,
) -> str:
    """Save a conversation history as a new backup.

    Args:
        messages: Ordered messages, each {"role": "user"|"ai"|"system", "text": "..."}
        file_name: Optional backup file name
        description: Optional description
        version: Envelope version tag
    """
    try:
        history = codec.extract_history(messages)
        record = create_backup(_get_store(), history, version, file_name, description)
    except ChatBackupError as exc:
        return f"Failed to save backup: {exc}"

    return (
        f"Saved backup `{record.id}` ({record.file_name}): "
        f"{record.message_count} messages, {format_byte_size(record.file_size)}."
    )


@mcp.tool()
def list_backups() -> str:
    """List stored backups, newest first."""
    backups = _get_store().list()
    if not backups:
        return "No backups found."

    lines = [f"{len(backups)} backups:\n"]
    for i, b in enumerate(backups, 1):
        lines.append(f"{i}. **{b.file_name}** ({format_relative_time(b.created_at)})")
        lines.append(
            f"   ID: `{b.id}` | {b.message_count} msgs | "
            f"{format_byte_size(b.file_size)} | v{b.version}"
        )
        if b.description:
            lines.append(f"   {b.description}")
    return "\n".join(lines)


@mcp.tool()
def get_backup(backup_id: str) -> str:
    """Show one backup's metadata without decoding its messages.

    Args:
        backup_id: The backup ID (from list_backups)
    """
    try:
        record = _get_store().get(backup_id)
    except ChatBackupError as exc:
        return str(exc)

    return "\n".join([
        f"# {record.file_name}",
        f"- **ID**: `{record.id}`",
        f"- **Created**: {format_datetime(record.created_at)}",
        f"- **Messages**: {record.message_count}",
        f"- **Size**: {format_byte_size(record.file_size)}",
        f"- **Version**: {record.version}",
        f"- **Description**: {record.description or '-'}",
    ])


@mcp.tool()
def restore_backup(backup_id: str) -> str:
    """Decode a backup and return its messages as a JSON array.

    Args:
        backup_id: The backup ID (from list_backups)
    """
    try:
        record = _get_store().get(backup_id)
        messages = codec.decode_base64(record.binary_data)
    except ChatBackupError as exc:
        return f"Failed to restore backup: {exc}"

    return json.dumps([m.to_wire() for m in messages], ensure_ascii=False)


@mcp.tool()
def download_backup(backup_id: str, destination: str | None = None) -> str:
    """Write a backup's raw .bin payload to disk and return the path.

    Args:
        backup_id: The backup ID
        destination: Optional file or directory (defaults to the export directory)
    """
    dest = Path(destination) if destination else EXPORT_DIR
    try:
        if not destination:
            dest.mkdir(parents=True, exist_ok=True)
        record = _get_store().get(backup_id)
        dest = write_export(record, dest)
    except OSError as exc:
        return f"Could not write {dest}: {exc.strerror or exc}"
    except ChatBackupError as exc:
        return str(exc)

    return f"Downloaded {record.file_name} to {dest}"


@mcp.tool()
def delete_backup(backup_id: str) -> str:
    """Delete a stored backup.

    Args:
        backup_id: The backup ID
    """
    try:
        _get_store().delete(backup_id)
    except ChatBackupError as exc:
        return str(exc)
    return f"Deleted backup `{backup_id}`."


@mcp.tool()
def scan_anomalies(buffer: str) -> str:
    """Scan text for undefined words, equations, code stubs and entities.

    Args:
        buffer: The text to scan (only the last 60,000 characters are used)
    """
    anomalies = scan_buffer(buffer)
    return json.dumps({
        "anomalies": [a.model_dump(exclude_none=True) for a in anomalies],
        "stats": anomaly_stats(anomalies),
        "bufferSize": len(buffer),
    })


@mcp.tool()
def get_stats() -> str:
    """Get statistics about stored backups."""
    s = _get_store().get_stats()
    lines = [
        "# Backup Statistics",
        "",
        f"- **Backups**: {s['total_backups']:,}",
        f"- **Messages**: {s['total_messages']:,}",
        f"- **Payload size**: {format_byte_size(s['total_bytes'])}",
    ]
    if s["latest_backup"]:
        lines.append(f"- **Latest**: {format_datetime(s['latest_backup'])}")
    return "\n".join(lines)
