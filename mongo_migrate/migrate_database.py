#!/usr/bin/env python3
"""Copy a MongoDB database from a source server to a target server.

The source database is exported with ``mongodump`` into a temporary archive
which is then loaded into the target with ``mongorestore``. The restore
merges: existing collections on the target are kept, and documents whose
``_id`` already exists there are left untouched rather than overwritten.
Nothing on the source is ever modified.

Before any data moves the script refuses to copy a server onto itself or to
touch the ``admin``/``local``/``config`` databases, asks for an explicit
``YES`` when the target looks like a production host, checks that both
servers answer and that the source database exists, and asks for
confirmation. Optionally the source export and a post-migration export of
the target are kept as backups.

Usage examples::

    # Copy "mydatabase" from a shared server into a local Docker container
    mongo-migrate "mongodb://source:27017" "mongodb://localhost:27017" mydatabase

    # Without installing the package
    python3 -m mongo_migrate.migrate_database "mongodb://source:27018" "mongodb://localhost:27018" mydatabase

Requirements::

    pip install pymongo
    # plus the MongoDB Database Tools (mongodump, mongorestore) on PATH
"""

from __future__ import annotations

import argparse
import logging
import sys
import tempfile
from contextlib import ExitStack
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from pymongo.errors import PyMongoError

from mongo_migrate import artifacts, config, prompts, tools
from mongo_migrate.artifacts import ArchiveArtifact, BackupPlan, TempArtifacts
from mongo_migrate.errors import MigrationAbort, MigrationCancelled, MigrationError
from mongo_migrate.probes import EndpointProbe, ProbeResult
from mongo_migrate.safety import MigrationRequest, looks_like_production, redact_uri, validate_request

logger = logging.getLogger(__name__)
log, log_warn, log_err = logger.info, logger.warning, logger.error


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with exit status 1 instead of argparse's 2."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog="mongo-migrate",
        description="Copy a MongoDB database from a source server to a target server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Example:\n"
            '  mongo-migrate "mongodb://source:27018" "mongodb://localhost:27018" "mydatabase"'
        ),
    )
    parser.add_argument(
        "source_uri",
        metavar="from-url",
        help="Source MongoDB URL (e.g., mongodb://source:27017)",
    )
    parser.add_argument(
        "target_uri",
        metavar="target-url",
        help="Target MongoDB URL (e.g., mongodb://localhost:27017)",
    )
    parser.add_argument(
        "database",
        metavar="database-name",
        help="Database name to migrate (e.g., mydatabase)",
    )
    return parser.parse_args(argv)


# ────────── pre-flight ──────────

def announce(request: MigrationRequest) -> None:
    log("=== MongoDB Database Migration ===")
    log(f"From: {redact_uri(request.source_uri)}")
    log(f"To: {redact_uri(request.target_uri)}")
    log(f"Database: {request.database}")


def confirm_production_target(target_uri: str) -> None:
    if not looks_like_production(target_uri):
        return
    log_warn("⚠️  WARNING: Target URL contains production-like keywords!")
    log_warn(f"Target: {redact_uri(target_uri)}")
    if not prompts.confirm_exact("Are you sure you want to proceed? Type 'YES' to continue: "):
        raise MigrationCancelled("Migration cancelled for safety.")


def open_endpoint(uri: str, role: str, *hints: str) -> EndpointProbe:
    log(f"Testing {role} connection...")
    try:
        probe = EndpointProbe(uri, timeout_ms=config.SERVER_TIMEOUT_MS)
    except (PyMongoError, ValueError) as exc:
        raise MigrationError(f"❌ Invalid {role} MongoDB URL: {exc}", *hints) from exc
    if not probe.ping():
        probe.close()
        raise MigrationError(
            f"❌ Cannot connect to {role} MongoDB",
            f"Please check the {role} URL: {redact_uri(uri)}",
            *hints,
        )
    log(f"✅ {role.capitalize()} connection OK")
    return probe


def inspect_source(probe: EndpointProbe, database: str) -> Optional[int]:
    """Fail unless ``database`` exists on the source; return its size in MB if known."""
    log("Checking if database exists on source...")
    try:
        exists = probe.database_exists(database)
    except PyMongoError as exc:
        raise MigrationError(f"❌ Could not check database '{database}' on source: {exc}") from exc
    if not exists:
        raise MigrationError(f"❌ Database '{database}' not found on source")
    log("✅ Database found on source")

    log("Checking source database size...")
    size_mb = probe.data_size_mb(database)
    if size_mb:
        log(f"✅ Source database size: ~{size_mb} MB")
        if size_mb > config.LARGE_DATABASE_MB:
            log_warn("⚠️  Large database detected (>1GB). Migration may take significant time.")
    return size_mb


def inspect_target(probe: EndpointProbe, database: str) -> ProbeResult:
    log("Checking target database...")
    result = probe.inspect(database)
    if not result.exists:
        log("✅ Target database does not exist (will be created)")
    elif result.collection_count:
        log_warn(
            f"⚠️  WARNING: Target database '{database}' already exists "
            f"with {result.collection_count} collection(s)"
        )
        log_warn("⚠️  Data will be ADDED to existing collections (duplicates may occur)")
        log_warn("⚠️  Documents with same _id will NOT be overwritten")
        if not prompts.confirm("Continue anyway? [y/N]: "):
            raise MigrationCancelled("Migration cancelled")
    else:
        log("✅ Target database exists but is empty")
    return result


# ────────── confirmation gate ──────────

def choose_backups(database: str, backup_dir: Path, timestamp: str) -> Optional[BackupPlan]:
    if not prompts.confirm(f"Create backup copies in {backup_dir}? [y/N]: "):
        return None
    plan = artifacts.plan_backups(backup_dir, database, timestamp)
    log("Backups will be saved to:")
    log(f"  Source: {plan.source}")
    log(f"  Target: {plan.target}")
    return plan


def confirm_plan(request: MigrationRequest, backups: Optional[BackupPlan]) -> None:
    source, target = redact_uri(request.source_uri), redact_uri(request.target_uri)
    steps = [f"Export all data from {request.database} on {source}"]
    if backups:
        steps.append("Create backup of source database")
    steps.append(f"Import to {request.database} on {target}")
    if backups:
        steps.append("Create backup of target database")

    log("This will:")
    for number, step in enumerate(steps, 1):
        log(f"  {number}. {step}")
    log("Note: Data will be added to existing collections (duplicates may occur)")
    if not prompts.confirm("Continue? [y/N]: "):
        raise MigrationCancelled("Migration cancelled")


def check_disk_space() -> None:
    log("Checking available disk space...")
    available = artifacts.free_space_mb()
    if available < config.MIN_FREE_SPACE_MB:
        log_warn(f"⚠️  WARNING: Less than 1GB free space in {tempfile.gettempdir()}")
        log_warn("⚠️  Migration may fail if database is large")
        if not prompts.confirm("Continue anyway? [y/N]: "):
            raise MigrationCancelled("Migration cancelled")
    else:
        log(f"✅ Sufficient disk space available (~{available} MB)")


# ────────── transfer ──────────

def export_source(request: MigrationRequest, temp_files: TempArtifacts) -> ArchiveArtifact:
    path = temp_files.new_path("mongo-migrate", request.database)
    log("Step 1/2: Exporting from source...")
    result = tools.dump_database(request.source_uri, request.database, path)
    if not result.ok:
        raise MigrationError("❌ Export failed", "Error details:", *result.preview())
    if not path.is_file() or path.stat().st_size == 0:
        raise MigrationError("❌ Export failed: Archive file is empty or missing")

    archive = ArchiveArtifact(path=path, origin_uri=request.source_uri, size=path.stat().st_size)
    log(f"✅ Export completed ({artifacts.human_size(archive.size)})")
    return archive


def backup_source(archive: ArchiveArtifact, destination: Path) -> bool:
    log("Creating backup of source database...")
    try:
        artifacts.copy_to_backup(archive.path, destination)
    except OSError as exc:
        log_warn(f"⚠️  Source backup creation failed ({exc}), but continuing with migration...")
        return False
    log(f"✅ Source backup created: {destination} ({artifacts.human_size(destination.stat().st_size)})")
    return True


def import_target(request: MigrationRequest, archive: ArchiveArtifact) -> None:
    log("Step 2/2: Importing to target...")
    result = tools.restore_database(request.target_uri, request.database, archive.path)
    if not result.ok:
        raise MigrationError(
            "❌ Import failed",
            "Error details:",
            *result.preview(),
            "Note: Source database was NOT modified. You can retry the migration.",
        )
    log("✅ Import completed")


def verify_import(source: EndpointProbe, target: EndpointProbe, database: str) -> Optional[bool]:
    """Compare collection counts; ``None`` when either side could not be read."""
    log("Verifying import...")
    source_count = source.stats_collection_count(database)
    target_count = target.stats_collection_count(database)
    if not source_count or not target_count:
        return None
    if target_count >= source_count:
        log(f"✅ Verification OK: {target_count} collections in target ({source_count} in source)")
        return True
    log_warn(f"⚠️  Warning: Target has {target_count} collections, source has {source_count}")
    log_warn("⚠️  Some collections may not have been imported")
    return False


def backup_target(request: MigrationRequest, destination: Path, temp_files: TempArtifacts) -> bool:
    log("Creating backup of target database...")
    path = temp_files.new_path("mongo-backup-target", request.database)
    try:
        result = tools.dump_database(request.target_uri, request.database, path)
        if not result.ok:
            log_warn("⚠️  Target backup export failed, but migration completed...")
            return False
        try:
            artifacts.copy_to_backup(path, destination)
        except OSError as exc:
            log_warn(f"⚠️  Target backup copy failed ({exc}), but migration completed...")
            return False
    finally:
        temp_files.discard(path)
    log(f"✅ Target backup created: {destination} ({artifacts.human_size(destination.stat().st_size)})")
    return True


# ────────── pipeline ──────────

def run_migration(
    request: MigrationRequest,
    temp_files: TempArtifacts,
    backup_dir: Optional[Path] = None,
) -> None:
    """Run every step in order. Raises :class:`MigrationAbort` to stop early."""
    backup_dir = Path(backup_dir or config.BACKUP_DIR)
    timestamp = datetime.now().strftime(artifacts.BACKUP_TIMESTAMP_FORMAT)

    announce(request)
    validate_request(request)
    confirm_production_target(request.target_uri)
    tools.ensure_tools_installed()

    try:
        with ExitStack() as stack:
            source = stack.enter_context(open_endpoint(request.source_uri, "source"))
            target = stack.enter_context(
                open_endpoint(
                    request.target_uri,
                    "target",
                    "Make sure Docker containers are running: docker-compose ps",
                )
            )
            inspect_source(source, request.database)
            inspect_target(target, request.database)

            backups = choose_backups(request.database, backup_dir, timestamp)
            confirm_plan(request, backups)
            check_disk_space()

            log("Starting migration...")
            log("This may take a while depending on database size...")
            archive = export_source(request, temp_files)
            if backups:
                backup_source(archive, backups.source)
            import_target(request, archive)
            verify_import(source, target, request.database)

            if backups:
                backup_target(request, backups.target, temp_files)
    finally:
        temp_files.cleanup()

    log("✅ Migration completed successfully!")
    log(f"Database {request.database} is now available at: {redact_uri(request.target_uri)}")
    if backups:
        log("Backups created:")
        for backup in (backups.source, backups.target):
            if backup.exists():
                log(f"  {backup}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    config.configure_logging()
    request = MigrationRequest(args.source_uri, args.target_uri, args.database)

    temp_files = TempArtifacts()
    temp_files.install()
    try:
        run_migration(request, temp_files)
    except MigrationAbort as exc:
        report = log_err if exc.exit_code else log
        report(exc.message)
        for line in exc.details:
            report(line)
        return exc.exit_code
    finally:
        temp_files.cleanup()
        temp_files.uninstall()
    return 0


if __name__ == "__main__":
    sys.exit(main())
