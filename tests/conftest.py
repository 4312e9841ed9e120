"""Pytest fixtures for chatbackup tests."""

import pytest

from chatbackup.models import ConversationMessage
from chatbackup.storage import BackupStore


@pytest.fixture
def store(tmp_path):
    """BackupStore on a temporary database, closed after the test."""
    s = BackupStore(tmp_path / "data" / "backups.db")
    yield s
    s.close()


@pytest.fixture
def history():
    """A short Latin-1-clean conversation."""
    return [
        ConversationMessage(role="system", text="Identity: EMG Core online."),
        ConversationMessage(role="user", text="Hi! Can you \"quote\" this\\path?", timestamp="2024-03-01T10:00:00.000Z"),
        ConversationMessage(
            role="ai",
            text="Sure.\nCafé au lait? No, wait: crème brûlée.",
            timestamp="2024-03-01T10:00:05.000Z",
            is_reflective=True,
        ),
    ]
