"""CLI interface for chatbackup."""

from __future__ import annotations

import asyncio
import json
import shutil
from contextlib import closing, contextmanager
from pathlib import Path

import click

from . import __version__
from .config import DATA_DIR, DEFAULT_VERSION, EXPORT_DIR, SQLITE_PATH
from .errors import ChatBackupError


@contextmanager
def _handle_errors():
    try:
        yield
    except ChatBackupError as exc:
        raise click.ClickException(str(exc)) from exc


def _open_store():
    from .storage import BackupStore

    return closing(BackupStore(SQLITE_PATH))


def _echo_messages(messages, output: str | None):
    payload = json.dumps([m.to_wire() for m in messages], indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(payload, encoding="utf-8")
        click.echo(f"Wrote {len(messages)} messages to {output}")
    else:
        click.echo(payload)


@click.group()
@click.version_option(version=__version__, prog_name="chatbackup")
def cli():
    """chatbackup: save and restore chat history as binary backups.

    Conversation history is stored as a bit-packed JSON envelope in a local
    SQLite database. Backups can be restored, downloaded as .bin files, and
    history files can be imported back.
    """
    pass


@cli.command()
@click.argument("history_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", "file_name", help="File name for the backup (default EMG_BACKUP_<ms>.bin)")
@click.option("--description", help="Free-text description")
@click.option("--version-tag", default=DEFAULT_VERSION, show_default=True, help="Envelope version tag")
def save(history_path: str, file_name: str | None, description: str | None, version_tag: str):
    """Save a JSON conversation history as a new backup.

    HISTORY_PATH may hold a bare message array, or an object with a
    'conversationHistory' or 'messages' list.

    Example:
        chatbackup save history.json --description "Before cleanup"
    """
    from .codec import extract_history
    from .formatting import format_byte_size
    from .session import SessionController

    try:
        data = json.loads(Path(history_path).read_text(encoding="utf-8"))
    except ValueError as exc:
        raise click.ClickException(f"Not a valid JSON file: {history_path}") from exc

    with _handle_errors(), _open_store() as store:
        controller = SessionController(store, version=version_tag)
        controller.history = extract_history(data)
        record = asyncio.run(controller.save_backup(file_name, description))

    click.echo(click.style("Backup saved!", fg="green", bold=True))
    click.echo(f"  ID:       {record.id}")
    click.echo(f"  File:     {record.file_name}")
    click.echo(f"  Messages: {record.message_count}")
    click.echo(f"  Size:     {format_byte_size(record.file_size)}")


@cli.command("list")
def list_cmd():
    """List stored backups, newest first."""
    from .formatting import format_byte_size, format_relative_time

    with _open_store() as store:
        backups = store.list()

    if not backups:
        click.echo("No backups found.")
        return

    for i, b in enumerate(backups, 1):
        click.echo(f"{i}. {click.style(b.file_name, bold=True)} ({format_relative_time(b.created_at)})")
        click.echo(
            f"   ID: {b.id} | {b.message_count} msgs | "
            f"{format_byte_size(b.file_size)} | v{b.version}"
        )
        if b.description:
            click.echo(f"   {b.description}")


@cli.command()
@click.argument("backup_id")
@click.option("--preview", default=3, show_default=True, help="Number of messages to preview")
def show(backup_id: str, preview: int):
    """Show a backup's metadata and the start of its history."""
    from .bitstream import from_base64
    from .codec import decode_envelope
    from .formatting import format_byte_size, format_datetime

    with _handle_errors(), _open_store() as store:
        record = store.get(backup_id)
        envelope = decode_envelope(from_base64(record.binary_data))

    click.echo()
    click.echo(click.style(record.file_name, bold=True))
    click.echo(f"  Created:      {format_datetime(record.created_at)}")
    click.echo(f"  Size:         {format_byte_size(record.file_size)}")
    click.echo(f"  Version:      {envelope.version}")
    click.echo(f"  Generated by: {envelope.metadata.generated_by}")
    click.echo(f"  Messages:     {len(envelope.conversation_history)}")
    if envelope.metadata.message_count != len(envelope.conversation_history):
        click.echo(f"  (metadata declares {envelope.metadata.message_count})")
    if record.description:
        click.echo(f"  Description:  {record.description}")
    click.echo()

    for msg in envelope.conversation_history[:preview]:
        text = msg.text if len(msg.text) <= 200 else msg.text[:200] + "..."
        click.echo(f"{click.style(msg.role.upper(), bold=True)}: {text}")


@cli.command()
@click.argument("backup_id")
@click.option("-o", "--output", type=click.Path(dir_okay=False), help="Write messages JSON here")
def restore(backup_id: str, output: str | None):
    """Decode a backup and print its conversation history as JSON."""
    from .session import SessionController

    with _handle_errors(), _open_store() as store:
        messages = asyncio.run(SessionController(store).restore(backup_id))

    _echo_messages(messages, output)


@cli.command()
@click.argument("backup_id")
@click.option("-o", "--output", type=click.Path(), help="Destination file or directory")
def download(backup_id: str, output: str | None):
    """Write a backup's raw .bin payload to disk."""
    from .session import SessionController

    dest = Path(output) if output else EXPORT_DIR
    if not output:
        dest.mkdir(parents=True, exist_ok=True)

    with _handle_errors(), _open_store() as store:
        path = asyncio.run(SessionController(store).export(backup_id, dest))

    click.echo(f"Downloaded {path}")


@cli.command()
@click.argument("backup_id")
@click.confirmation_option(prompt="Delete this backup?")
def delete(backup_id: str):
    """Delete a stored backup."""
    with _handle_errors(), _open_store() as store:
        store.delete(backup_id)
    click.echo("Backup deleted.")


@cli.command("import")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", type=click.Path(dir_okay=False), help="Write messages JSON here")
@click.option("--save", "save_backup", is_flag=True, help="Also store the imported history as a backup")
def import_cmd(file_path: str, output: str | None, save_backup: bool):
    """Import a .bin or .txt history file.

    Files that cannot be parsed are imported as one system message holding
    the decoded text.
    """
    from .session import SessionController

    with _handle_errors(), _open_store() as store:
        controller = SessionController(store)
        messages = asyncio.run(controller.import_file(Path(file_path)))
        if save_backup:
            record = asyncio.run(controller.save_backup(description=f"Imported from {Path(file_path).name}"))
            click.echo(f"Saved as backup {record.id}", err=True)

    _echo_messages(messages, output)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--report", type=click.Path(dir_okay=False), help="Write an audit report JSON here")
@click.option("--notes", help="Notes to include in the audit report")
def scan(file_path: str, report: str | None, notes: str | None):
    """Scan a text file for undefined terms, equations, code and entities."""
    from .anomaly import anomaly_stats, build_audit_report, scan_buffer, validate_bitstream

    content = Path(file_path).read_text(encoding="utf-8", errors="replace")

    for issue in validate_bitstream(content)["issues"]:
        click.echo(click.style(f"Warning: {issue}", fg="yellow"), err=True)

    anomalies = scan_buffer(content)
    stats = anomaly_stats(anomalies)

    click.echo(click.style(f"Found {stats['total']} anomalies", bold=True))
    for a in anomalies:
        click.echo(f"  [{a.severity.upper():6}] {a.type:8} line {a.line}: {a.item}")

    if stats["by_severity"]:
        summary = ", ".join(f"{k}: {v}" for k, v in sorted(stats["by_severity"].items()))
        click.echo(f"  Severity: {summary}")

    if report:
        audit = build_audit_report(anomalies, buffer_size=len(content), notes=notes)
        Path(report).write_text(json.dumps(audit.to_wire(), indent=2), encoding="utf-8")
        click.echo(f"Report written to {report}")


@cli.command()
@click.argument("zip_path", type=click.Path(exists=True, dir_okay=False))
def archive(zip_path: str):
    """List the files inside a ZIP archive."""
    from .formatting import format_byte_size
    from .importer import list_archive

    with _handle_errors():
        entries = list_archive(zip_path)

    if not entries:
        click.echo("Archive is empty.")
        return

    for e in entries:
        click.echo(f"  {format_byte_size(e.size):>10}  {e.name}")
    click.echo(f"{len(entries)} files")


@cli.command()
def stats():
    """Show statistics about stored backups."""
    if not SQLITE_PATH.exists():
        click.echo("No backups found. Save one first:")
        click.echo("  chatbackup save history.json")
        return

    from .formatting import format_byte_size, format_datetime

    with _open_store() as store:
        s = store.get_stats()

    click.echo()
    click.echo(click.style("Backup Statistics", bold=True))
    click.echo(f"  Backups:        {s['total_backups']:,}")
    click.echo(f"  Messages:       {s['total_messages']:,}")
    click.echo(f"  Payload size:   {format_byte_size(s['total_bytes'])}")
    if s["latest_backup"]:
        click.echo(f"  Latest:         {format_datetime(s['latest_backup'])}")
    click.echo(f"  Database size:  {format_byte_size(SQLITE_PATH.stat().st_size)}")
    click.echo(f"  Location:       {DATA_DIR}")
    click.echo()


@cli.command()
def serve():
    """Start the MCP server (stdio transport)."""
    from .server import mcp

    mcp.run(transport="stdio")


@cli.command()
@click.confirmation_option(prompt="This will delete all backups. Are you sure?")
def reset():
    """Delete all stored backups and exports."""
    if DATA_DIR.exists():
        shutil.rmtree(DATA_DIR)
        click.echo(f"Deleted {DATA_DIR}")
    else:
        click.echo("No data to delete.")
