"""
Shared pytest fixtures for the mongo-migrate tests.

Nothing here talks to a real server or runs a real binary:

- ``mongo_servers`` swaps pymongo's ``MongoClient`` for an in-memory fake
  keyed by URI
- ``mongo_tools`` swaps ``subprocess.run`` for a fake mongodump/mongorestore
  that writes archives to disk and merges collections into the fake servers
- ``answers`` scripts the replies to ``input()`` prompts
- ``workspace`` points the temp directory and backup directory at tmp_path
"""

from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from mongo_migrate import artifacts, probes, tools

SOURCE_URI = "mongodb://source:27017"
TARGET_URI = "mongodb://localhost:27017"


# =============================================================================
# Fake MongoDB servers
# =============================================================================


class FakeServer:
    def __init__(
        self,
        databases: Optional[Dict[str, List[str]]] = None,
        *,
        reachable: bool = True,
        data_size: int = 0,
        stats_fail: bool = False,
        list_databases_fail: bool = False,
    ) -> None:
        self.databases = {name: list(colls) for name, colls in (databases or {}).items()}
        self.reachable = reachable
        self.data_size = data_size
        self.stats_fail = stats_fail
        self.list_databases_fail = list_databases_fail
        self.writes = 0


class FakeDatabase:
    def __init__(self, server: Optional[FakeServer], name: str) -> None:
        self.server = server
        self.name = name

    def _check(self) -> FakeServer:
        if self.server is None or not self.server.reachable:
            raise ServerSelectionTimeoutError("No servers found yet")
        return self.server

    def command(self, name: str):
        server = self._check()
        if name == "ping":
            return {"ok": 1.0}
        if name == "dbStats":
            if server.stats_fail:
                raise OperationFailure("not authorized on db to execute command dbStats")
            collections = server.databases.get(self.name, [])
            size = server.data_size if self.name in server.databases else 0
            return {"db": self.name, "collections": len(collections), "dataSize": size, "ok": 1.0}
        raise OperationFailure(f"no such command: '{name}'")

    def list_collection_names(self) -> List[str]:
        return list(self._check().databases.get(self.name, []))


class FakeMongoClient:
    def __init__(self, servers: Dict[str, FakeServer], uri: str, **kwargs) -> None:
        self.server = servers.get(uri)
        self.uri = uri
        self.kwargs = kwargs
        self.closed = False

    @property
    def admin(self) -> FakeDatabase:
        return FakeDatabase(self.server, "admin")

    def __getitem__(self, name: str) -> FakeDatabase:
        return FakeDatabase(self.server, name)

    def list_database_names(self) -> List[str]:
        server = FakeDatabase(self.server, "admin")._check()
        if server.list_databases_fail:
            raise OperationFailure("not authorized on admin to execute command listDatabases")
        return ["admin", "config", "local", *server.databases]

    def close(self) -> None:
        self.closed = True


class FakeMongo:
    def __init__(self) -> None:
        self.servers: Dict[str, FakeServer] = {}
        self.clients: List[FakeMongoClient] = []

    def add(self, uri: str, **kwargs) -> FakeServer:
        server = FakeServer(**kwargs)
        self.servers[uri] = server
        return server

    def client(self, uri: str, **kwargs) -> FakeMongoClient:
        client = FakeMongoClient(self.servers, uri, **kwargs)
        self.clients.append(client)
        return client


@pytest.fixture
def mongo_servers(monkeypatch) -> FakeMongo:
    fake = FakeMongo()
    monkeypatch.setattr(probes, "MongoClient", fake.client)
    return fake


# =============================================================================
# Fake mongodump / mongorestore
# =============================================================================


class FakeTools:
    def __init__(self, mongo: FakeMongo) -> None:
        self.mongo = mongo
        self.calls: List[tuple] = []
        self.which_calls: List[str] = []
        self.missing: set = set()
        self.failing_dumps: set = set()
        self.empty_dumps: set = set()
        self.restore_fails = False
        self.on_dump: Optional[Callable[[Path], None]] = None
        self._archives: Dict[Path, List[str]] = {}

    def tool_names(self) -> List[str]:
        return [tool for tool, _ in self.calls]

    def which(self, exe: str) -> Optional[str]:
        self.which_calls.append(exe)
        return None if exe in self.missing else f"/usr/bin/{exe}"

    def run(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        tool = cmd[0]
        opts = dict(arg[2:].split("=", 1) for arg in cmd[1:])
        self.calls.append((tool, opts))
        uri, archive = opts["uri"], Path(opts["archive"])

        if tool == "mongodump":
            if uri in self.failing_dumps:
                lines = [f"Failed: connection error line {i}" for i in range(1, 16)]
                return subprocess.CompletedProcess(cmd, 1, stdout="\n".join(lines))
            database = opts["db"]
            collections = self.mongo.servers[uri].databases.get(database, [])
            archive.write_bytes(b"" if uri in self.empty_dumps else b"archive:" + database.encode() * 64)
            self._archives[archive] = list(collections)
            if self.on_dump:
                self.on_dump(archive)
            return subprocess.CompletedProcess(cmd, 0, stdout="done dumping\n")

        if tool == "mongorestore":
            if self.restore_fails:
                return subprocess.CompletedProcess(cmd, 1, stdout="Failed: target refused connection\n")
            database = opts["nsInclude"].split(".", 1)[0]
            server = self.mongo.servers[uri]
            existing = server.databases.setdefault(database, [])
            for name in self._archives.get(archive, []):
                if name not in existing:
                    existing.append(name)
            server.writes += 1
            return subprocess.CompletedProcess(cmd, 0, stdout="0 document(s) failed to restore\n")

        raise AssertionError(f"unexpected command {cmd}")


@pytest.fixture
def mongo_tools(monkeypatch, mongo_servers) -> FakeTools:
    fake = FakeTools(mongo_servers)
    monkeypatch.setattr(tools.subprocess, "run", fake.run)
    monkeypatch.setattr(tools.shutil, "which", fake.which)
    return fake


# =============================================================================
# Prompts and filesystem
# =============================================================================


class ScriptedInput:
    def __init__(self) -> None:
        self.replies: List[str] = []
        self.prompts: List[str] = []

    def queue(self, *replies: str) -> None:
        self.replies.extend(replies)

    def __call__(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError(f"unexpected prompt: {prompt!r}")
        return self.replies.pop(0)


@pytest.fixture
def answers(monkeypatch) -> ScriptedInput:
    script = ScriptedInput()
    monkeypatch.setattr("builtins.input", script)
    return script


class Workspace:
    def __init__(self, root: Path) -> None:
        self.tmp = root / "tmp"
        self.backups = root / "backups"
        self.tmp.mkdir()

    def temp_archives(self) -> List[Path]:
        return sorted(self.tmp.glob("*.archive"))

    def backup_archives(self) -> List[Path]:
        if not self.backups.exists():
            return []
        return sorted(self.backups.glob("*.archive"))


@pytest.fixture
def workspace(monkeypatch, tmp_path) -> Workspace:
    ws = Workspace(tmp_path)
    monkeypatch.setattr(tempfile, "tempdir", str(ws.tmp))
    monkeypatch.setattr(artifacts, "free_space_mb", lambda path=None: 50_000)
    return ws
