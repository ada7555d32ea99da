"""Wrappers around the MongoDB Database Tools (mongodump / mongorestore)."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from mongo_migrate.errors import MigrationError

MONGODB_TOOLS = ("mongodump", "mongorestore")
ERROR_PREVIEW_LINES = 10
INSTALL_HINT = (
    "Please install MongoDB Database Tools:",
    "  macOS: brew install mongodb-database-tools",
    "  Linux: https://www.mongodb.com/try/download/database-tools",
)


@dataclass
class ToolResult:
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def preview(self, lines: int = ERROR_PREVIEW_LINES) -> list[str]:
        return self.output.splitlines()[:lines]


def ensure_tools_installed(tools: Iterable[str] = MONGODB_TOOLS) -> None:
    for exe in tools:
        if not shutil.which(exe):
            raise MigrationError(f"❌ {exe} not found", *INSTALL_HINT)


def _run(cmd: list[str]) -> ToolResult:
    try:
        result = subprocess.run(
            cmd,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except FileNotFoundError:
        return ToolResult(127, f"{cmd[0]}: command not found")
    return ToolResult(result.returncode, result.stdout or "")


def dump_database(uri: str, database: str, archive: Path) -> ToolResult:
    """Export ``database`` from ``uri`` into a single archive file."""
    return _run(
        [
            "mongodump",
            f"--uri={uri}",
            f"--db={database}",
            f"--archive={archive}",
        ]
    )


def restore_database(uri: str, database: str, archive: Path) -> ToolResult:
    """Load an archive into ``database`` at ``uri``.

    mongorestore inserts only: collections are never dropped, and documents
    whose ``_id`` already exists on the target are skipped rather than
    replaced.
    """
    return _run(
        [
            "mongorestore",
            f"--uri={uri}",
            f"--nsInclude={database}.*",
            f"--archive={archive}",
        ]
    )
