"""Runtime settings for mongo-migrate.

Values are read once at import time; each can be overridden through the
environment:

* ``MONGO_MIGRATE_BACKUP_DIR``: where backup archives are written
  (default: ``backups/`` beside this package). Set this when the package
  is pip-installed: the default then sits inside site-packages, which is
  often read-only, and every backup copy would fail with a warning
* ``MONGO_MIGRATE_TIMEOUT_MS``: server selection timeout for probes
* ``MONGO_MIGRATE_LOG_FILE``: also append the log to this file
* ``TMPDIR``: location of temporary archives (honoured by :mod:`tempfile`)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# ────────── paths ──────────
PACKAGE_DIR = Path(__file__).resolve().parent
BACKUP_DIR = Path(os.environ.get("MONGO_MIGRATE_BACKUP_DIR", PACKAGE_DIR / "backups"))

# ────────── probes ──────────
SERVER_TIMEOUT_MS = int(os.environ.get("MONGO_MIGRATE_TIMEOUT_MS", "5000"))

# ────────── thresholds (MB) ──────────
LARGE_DATABASE_MB = 1000
MIN_FREE_SPACE_MB = 1000

# ────────── logging ──────────
LOG_FILE = os.environ.get("MONGO_MIGRATE_LOG_FILE")
LOG_FORMAT = "%(asctime)s — %(levelname)s — %(message)s"


def configure_logging(log_file: str | None = LOG_FILE) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
