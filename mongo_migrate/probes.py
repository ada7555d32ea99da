"""Read-only diagnostic queries against a MongoDB endpoint.

Only :meth:`EndpointProbe.ping` and :meth:`EndpointProbe.database_exists`
are hard prerequisites for a migration. The remaining queries are
best-effort: on a driver error they log a warning and return ``None`` so a
missing privilege for ``dbStats`` cannot block an otherwise viable copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pymongo import MongoClient
from pymongo.errors import OperationFailure, PyMongoError

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass
class ProbeResult:
    exists: bool
    size_mb: Optional[int] = None
    collection_count: Optional[int] = None


class EndpointProbe:
    def __init__(self, uri: str, timeout_ms: int = 5000) -> None:
        self.uri = uri
        self.client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)

    def __enter__(self) -> "EndpointProbe":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
        except PyMongoError as exc:
            logger.debug(f"ping failed: {exc}")
            return False
        return True

    def database_exists(self, name: str) -> bool:
        """Check ``listDatabases``; fall back to the database itself when the
        user lacks the privilege to list every database on the server."""
        try:
            return name in self.client.list_database_names()
        except OperationFailure as exc:
            logger.debug(f"listDatabases refused ({exc}), checking {name} directly")
            return bool(self.client[name].list_collection_names())

    def _db_stats(self, name: str) -> Optional[dict]:
        try:
            return self.client[name].command("dbStats")
        except PyMongoError as exc:
            logger.warning(f"⚠️  Could not read stats for {name}: {exc}")
            return None

    def data_size_mb(self, name: str) -> Optional[int]:
        stats = self._db_stats(name)
        if not stats or "dataSize" not in stats:
            return None
        return int(stats["dataSize"]) // BYTES_PER_MB

    def stats_collection_count(self, name: str) -> Optional[int]:
        stats = self._db_stats(name)
        if not stats or "collections" not in stats:
            return None
        return int(stats["collections"])

    def collection_count(self, name: str) -> Optional[int]:
        try:
            return len(self.client[name].list_collection_names())
        except PyMongoError as exc:
            logger.warning(f"⚠️  Could not list collections in {name}: {exc}")
            return None

    def inspect(self, name: str) -> ProbeResult:
        """Existence and collection count, with any driver error read as absent."""
        try:
            exists = self.database_exists(name)
        except PyMongoError as exc:
            logger.warning(f"⚠️  Could not check whether {name} exists: {exc}")
            return ProbeResult(exists=False)
        if not exists:
            return ProbeResult(exists=False)
        return ProbeResult(exists=True, collection_count=self.collection_count(name))
