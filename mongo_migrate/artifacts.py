"""Archive files produced by a migration run.

Temporary archives live under the system temp directory and are owned by a
:class:`TempArtifacts` registry, which deletes them when the process exits,
whether it finishes, fails or is interrupted by SIGINT/SIGTERM. Backup
archives are plain copies kept in the backup directory afterwards.
"""

from __future__ import annotations

import atexit
import logging
import shutil
import signal
import sys
import tempfile
import time
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class ArchiveArtifact:
    path: Path
    origin_uri: str
    size: int


@dataclass
class BackupPlan:
    source: Path
    target: Path


def backup_path(backup_dir: Path, direction: str, database: str, timestamp: str) -> Path:
    """``<backup_dir>/{from|to}_<database>_<timestamp>.archive``"""
    return Path(backup_dir) / f"{direction}_{database}_{timestamp}.archive"


def plan_backups(backup_dir: Path, database: str, timestamp: str) -> BackupPlan:
    return BackupPlan(
        source=backup_path(backup_dir, "from", database, timestamp),
        target=backup_path(backup_dir, "to", database, timestamp),
    )


def copy_to_backup(archive: Path, destination: Path) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(archive, destination)
    return destination


def free_space_mb(path: str | None = None) -> int:
    return shutil.disk_usage(path or tempfile.gettempdir()).free // (1024 * 1024)


def human_size(num_bytes: int) -> str:
    """Compact size string in the style of ``du -h`` (``512B``, ``4.2M``)."""
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            break
        size /= 1024
    if unit == "B":
        return f"{int(size)}B"
    return f"{size:.1f}{unit}" if size < 10 else f"{size:.0f}{unit}"


class TempArtifacts:
    """Registry of temporary archive files deleted on every exit path."""

    def __init__(self) -> None:
        self._paths: List[Path] = []
        self._previous_handlers: Dict[int, object] = {}
        self._installed = False

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def new_path(self, prefix: str, database: str) -> Path:
        path = Path(tempfile.gettempdir()) / f"{prefix}-{database}-{int(time.time())}.archive"
        self.register(path)
        return path

    def register(self, path: Path) -> Path:
        if path not in self._paths:
            self._paths.append(path)
        return path

    def discard(self, path: Path) -> None:
        """Delete one archive now and stop tracking it."""
        self._remove(path)
        with suppress(ValueError):
            self._paths.remove(path)

    def cleanup(self) -> None:
        """Delete every tracked archive. Safe to call any number of times."""
        for path in list(self._paths):
            self._remove(path)
        self._paths.clear()

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(f"⚠️  Could not remove temporary file {path}: {exc}")

    def install(self) -> None:
        """Run :meth:`cleanup` at interpreter exit and on SIGINT/SIGTERM."""
        if self._installed:
            return
        atexit.register(self.cleanup)
        for signum in HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        atexit.unregister(self.cleanup)
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
        self._installed = False

    def _handle_signal(self, signum, frame) -> None:
        logger.warning(f"⚠️  Received {signal.Signals(signum).name}, removing temporary files and exiting")
        self.cleanup()
        sys.exit(128 + signum)
