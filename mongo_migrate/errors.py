"""Exceptions that stop a migration run.

Each carries the process exit status the run should end with, so the CLI
entry point can turn any abort into a return code in one place.
"""

from __future__ import annotations


class MigrationAbort(Exception):
    """Base class for anything that ends the pipeline early."""

    exit_code = 1

    def __init__(self, message: str, *details: str) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class MigrationError(MigrationAbort):
    """Validation, connectivity, environment or tool failure (exit 1)."""

    exit_code = 1


class MigrationCancelled(MigrationAbort):
    """The operator declined at a confirmation prompt (exit 0)."""

    exit_code = 0
