from __future__ import annotations

import json

import pytest

from chatbackup import codec, server
from chatbackup.storage import BackupStore


@pytest.fixture
def server_store(tmp_path, monkeypatch):
    store = BackupStore(tmp_path / "backups.db")
    monkeypatch.setattr(server, "_store", store)
    monkeypatch.setattr(server, "EXPORT_DIR", tmp_path / "exports")
    yield store
    store.close()


def test_save_list_restore(server_store, history) -> None:
    messages = [m.to_wire() for m in history]
    reply = server.save_backup(messages, file_name="mcp.bin", description="via mcp")
    assert "3 messages" in reply

    backup = server_store.list()[0]
    assert f"`{backup.id}`" in reply
    assert backup.description == "via mcp"

    listing = server.list_backups()
    assert "**mcp.bin**" in listing
    assert "via mcp" in listing

    assert json.loads(server.restore_backup(backup.id)) == messages
    assert "**Messages**: 3" in server.get_backup(backup.id)


def test_save_rejects_invalid_messages(server_store) -> None:
    reply = server.save_backup([{"role": "robot", "text": "x"}])
    assert reply.startswith("Failed to save backup")
    assert server_store.list() == []


def test_restore_reports_errors(server_store) -> None:
    assert server.restore_backup("missing") == "Failed to restore backup: Backup not found: missing"

    broken = server_store.create("broken.bin", "aGVsbG8=")
    assert server.restore_backup(broken.id).startswith("Failed to restore backup: Decoded payload is not valid JSON")


def test_download_and_delete(server_store, history, tmp_path) -> None:
    server.save_backup([m.to_wire() for m in history], file_name="dl.bin")
    backup = server_store.list()[0]

    reply = server.download_backup(backup.id)
    exported = tmp_path / "exports" / "dl.bin"
    assert str(exported) in reply
    assert codec.decode(exported.read_bytes()) == history

    assert server.delete_backup(backup.id) == f"Deleted backup `{backup.id}`."
    assert server.delete_backup(backup.id) == f"Backup not found: {backup.id}"
    assert server.list_backups() == "No backups found."


def test_scan_anomalies() -> None:
    result = json.loads(server.scan_anomalies("class Foo {}\nVar_3"))
    assert result["stats"]["total"] == 2
    assert [a["type"] for a in result["anomalies"]] == ["CODE", "EQUATION"]
    assert result["bufferSize"] == 18


def test_get_stats(server_store, history) -> None:
    server.save_backup([m.to_wire() for m in history])
    stats = server.get_stats()
    assert "**Backups**: 1" in stats
    assert "**Messages**: 3" in stats


def test_save_uses_default_name_and_description(server_store, history) -> None:
    server.save_backup([m.to_wire() for m in history])
    backup = server_store.list()[0]
    assert backup.file_name.startswith("EMG_BACKUP_")
    assert backup.file_name.endswith(".bin")
    assert backup.description == "Manual backup"


def test_download_reports_write_errors(server_store, history, tmp_path) -> None:
    server.save_backup([m.to_wire() for m in history], file_name="dl.bin")
    backup = server_store.list()[0]

    reply = server.download_backup(backup.id, str(tmp_path / "missing" / "dl.bin"))
    assert reply.startswith("Could not write")
    assert not (tmp_path / "missing").exists()
