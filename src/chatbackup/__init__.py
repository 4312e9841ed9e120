"""chatbackup: binary-encoded conversation history backups."""

__version__ = "0.1.0"
