"""Central configuration for paths and constants."""

import os
from pathlib import Path

# Data directory, override with CHATBACKUP_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("CHATBACKUP_DATA_DIR", str(Path.home() / ".chatbackup"))
)

# Database and export paths
SQLITE_PATH = DATA_DIR / "backups.db"
EXPORT_DIR = DATA_DIR / "exports"

# Envelope tags
DEFAULT_VERSION = "8.5"
GENERATED_BY = "EMG_CORE_v8.5"

# Auto-save
AUTO_SAVE_INTERVAL_MINUTES = 5

# Import limits
MAX_IMPORT_BYTES = 50 * 1024 * 1024  # Safety limit per uploaded file
IMPORT_SUFFIXES = {".bin", ".txt"}

# Anomaly scanning
ANOMALY_BUFFER_LIMIT = 60_000  # Only the tail of longer buffers is scanned
BITSTREAM_MAX_CHARS = 100_000
SCANNER_TAG = "regex-rules-v1"
