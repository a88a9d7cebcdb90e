# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for dbsnap tests.

Provides an in-memory blob transport, fake dump tools, and test
configuration helpers. Nothing here starts mydumper, myloader or azcopy.
"""

import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Set

import pytest

from dbsnap.builder import create_backup_config, create_restore_config
from dbsnap.config import BackupConfig, RestoreConfig
from dbsnap.dump import DumpRequest, LoadRequest
from dbsnap.exceptions import DumpFailure, LoadFailure, TransportError
from dbsnap.remote.transport import RemoteEntry

BASE_URL = "https://testaccount.blob.core.windows.net/mysql-backups"


class FakeTransport:
    """In-memory BlobTransport: remote objects are keys of a dict."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.uploads: List[str] = []
        self.deleted: List[str] = []
        self.fail_upload = False
        self.fail_write = False
        self.fail_list = False
        self.fail_delete: Set[str] = set()

    def seed_snapshot(self, base: str, name: str) -> None:
        self.objects[f"{base}/{name}/mydumper.log"] = b"seeded"

    async def upload_directory(self, local_dir: Path, remote_path: str) -> None:
        if self.fail_upload:
            raise TransportError("upload refused", details={"remote_path": remote_path})
        self.uploads.append(remote_path)
        for path in sorted(Path(local_dir).rglob("*")):
            if path.is_file():
                relative = path.relative_to(local_dir).as_posix()
                self.objects[f"{remote_path}/{relative}"] = path.read_bytes()

    async def write_object(self, remote_path: str, payload: bytes) -> None:
        if self.fail_write:
            raise TransportError("write refused")
        self.objects[remote_path] = payload

    async def list_children(self, remote_path: str) -> List[RemoteEntry]:
        if self.fail_list:
            raise TransportError("list refused")
        prefix = remote_path.rstrip("/") + "/"
        children: Dict[str, bool] = {}
        for key in self.objects:
            if key.startswith(prefix):
                name, sep, _ = key[len(prefix):].partition("/")
                children[name] = children.get(name, False) or bool(sep)
        return [RemoteEntry(name=n, is_directory=d) for n, d in sorted(children.items())]

    async def delete_tree(self, remote_path: str) -> None:
        name = remote_path.rsplit("/", 1)[-1]
        if name in self.fail_delete:
            raise TransportError(f"remove refused for {name}")
        prefix = remote_path.rstrip("/") + "/"
        for key in [k for k in self.objects if k.startswith(prefix) or k == remote_path]:
            del self.objects[key]
        self.deleted.append(remote_path)

    def snapshot_names(self, base: str = BASE_URL) -> List[str]:
        prefix = base + "/"
        return sorted(
            {k[len(prefix):].split("/", 1)[0] for k in self.objects if k.startswith(prefix)}
        )


class FakeProducer:
    """Dump producer that writes a fixed set of files into the slot."""

    def __init__(self, files: Dict[str, bytes] | None = None, fail: bool = False) -> None:
        self.files = files if files is not None else {
            "db1.t1.00000.sql.gz": b"a" * 10,
            "db1.t2.00000.sql.gz": b"b" * 20,
            "metadata": b"c" * 30,
        }
        self.fail = fail
        self.requests: List[DumpRequest] = []
        self.seen_entries: List[str] = []

    async def dump(self, request: DumpRequest) -> None:
        self.requests.append(request)
        self.seen_entries = sorted(p.name for p in Path(request.output_dir).iterdir())
        for relative, content in self.files.items():
            target = Path(request.output_dir) / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        if self.fail:
            raise DumpFailure("mydumper exited with status 2", details={"returncode": 2})


class FakeConsumer:
    """Dump consumer that records what it was asked to load."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: List[LoadRequest] = []

    async def load(self, request: LoadRequest) -> None:
        self.requests.append(request)
        if self.fail:
            raise LoadFailure("myloader exited with status 1", details={"returncode": 1})


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backup_root(temp_dir: Path) -> Path:
    return temp_dir / "backups"


@pytest.fixture
def backup_config(backup_root: Path) -> BackupConfig:
    """SAS-authenticated config rooted in a temporary directory."""
    return create_backup_config(
        "mysql.internal",
        "backup",
        src_password="secret",
        account="testaccount",
        container="mysql-backups",
        auth_mode="sas",
        sas_token="sv=2024-01-01&sig=abc",
        root=backup_root,
        retention_days=30,
    )


@pytest.fixture
def restore_config(backup_root: Path) -> RestoreConfig:
    return create_restore_config(
        "mysql-restore.internal",
        "restore",
        dest_password="secret",
        root=backup_root,
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_producer() -> FakeProducer:
    return FakeProducer()


@pytest.fixture
def fake_consumer() -> FakeConsumer:
    return FakeConsumer()
