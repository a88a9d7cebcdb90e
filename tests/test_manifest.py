# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Checksum manifest tests.
"""

import hashlib
from pathlib import Path

import pytest

from dbsnap.exceptions import ManifestError
from dbsnap.snapshot.manifest import (
    MANIFEST_FILE_NAME,
    generate_manifest,
    hash_file,
    is_data_file,
    iter_data_files,
    read_manifest,
    verify_manifest,
)


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _populate(slot: Path) -> None:
    slot.mkdir(parents=True, exist_ok=True)
    (slot / "db1.t1.00000.sql.gz").write_bytes(b"a" * 10)
    (slot / "db1.t2.00000.sql.gz").write_bytes(b"b" * 20)
    (slot / "metadata").write_bytes(b"c" * 30)


# ============================================================================
# Selection
# ============================================================================

@pytest.mark.parametrize(
    "name",
    ["a.sql.gz", "a.sql.zst", "schema.sql", "meta.json", "mydumper.log", "notes.txt",
     "metadata", "db1-schema-create.sql", "db1.t1-metadata"],
)
def test_data_files_are_selected(name):
    assert is_data_file(name)


@pytest.mark.parametrize("name", [MANIFEST_FILE_NAME, "core", "a.tmp", "a.sql.partial"])
def test_other_files_are_ignored(name):
    assert not is_data_file(name)


def test_iter_orders_by_relative_path_bytes(temp_dir: Path):
    (temp_dir / "b").mkdir()
    for name in ("b/a.sql", "B.sql", "a.sql", "a.sql.gz"):
        (temp_dir / name).write_bytes(b"x")

    ordered = [p.relative_to(temp_dir).as_posix() for p in iter_data_files(temp_dir)]

    assert ordered == ["B.sql", "a.sql", "a.sql.gz", "b/a.sql"]


# ============================================================================
# Generation
# ============================================================================

@pytest.mark.asyncio
async def test_hash_file_matches_hashlib(temp_dir: Path):
    data = b"x" * (3 * 1024 * 1024 + 17)
    path = temp_dir / "big.sql"
    path.write_bytes(data)

    assert await hash_file(path) == _sha(data)


@pytest.mark.asyncio
async def test_generate_writes_sha256sum_format(temp_dir: Path):
    _populate(temp_dir)

    manifest = await generate_manifest(temp_dir)

    assert manifest.file_count == 3
    expected = (
        f"{_sha(b'a' * 10)}  db1.t1.00000.sql.gz\n"
        f"{_sha(b'b' * 20)}  db1.t2.00000.sql.gz\n"
        f"{_sha(b'c' * 30)}  metadata\n"
    )
    assert (temp_dir / MANIFEST_FILE_NAME).read_text() == expected
    assert not (temp_dir / f"{MANIFEST_FILE_NAME}.tmp").exists()


@pytest.mark.asyncio
async def test_generate_is_deterministic(temp_dir: Path):
    _populate(temp_dir)

    await generate_manifest(temp_dir)
    first = (temp_dir / MANIFEST_FILE_NAME).read_bytes()
    await generate_manifest(temp_dir)

    assert (temp_dir / MANIFEST_FILE_NAME).read_bytes() == first


@pytest.mark.asyncio
async def test_generate_on_empty_slot(temp_dir: Path):
    manifest = await generate_manifest(temp_dir)

    assert manifest.file_count == 0
    assert (temp_dir / MANIFEST_FILE_NAME).read_bytes() == b""


@pytest.mark.asyncio
async def test_generate_includes_nested_files(temp_dir: Path):
    (temp_dir / "db1").mkdir()
    (temp_dir / "db1" / "t1.sql").write_bytes(b"nested")

    manifest = await generate_manifest(temp_dir)

    assert [e.path for e in manifest.entries] == ["db1/t1.sql"]


@pytest.mark.asyncio
async def test_generate_failure_leaves_no_manifest(temp_dir: Path, monkeypatch):
    _populate(temp_dir)

    async def broken_hash(path):
        raise OSError("read error")

    monkeypatch.setattr("dbsnap.snapshot.manifest.hash_file", broken_hash)

    with pytest.raises(ManifestError):
        await generate_manifest(temp_dir)

    assert not (temp_dir / MANIFEST_FILE_NAME).exists()
    assert not (temp_dir / f"{MANIFEST_FILE_NAME}.tmp").exists()


# ============================================================================
# Verification
# ============================================================================

@pytest.mark.asyncio
async def test_verify_clean_snapshot(temp_dir: Path):
    _populate(temp_dir)
    await generate_manifest(temp_dir)

    result = await verify_manifest(temp_dir)

    assert result.ok
    assert result.checked == 3


@pytest.mark.asyncio
async def test_verify_reports_every_kind_of_drift(temp_dir: Path):
    _populate(temp_dir)
    await generate_manifest(temp_dir)

    (temp_dir / "db1.t1.00000.sql.gz").write_bytes(b"tampered")
    (temp_dir / "db1.t2.00000.sql.gz").unlink()
    (temp_dir / "extra.sql").write_bytes(b"new")

    result = await verify_manifest(temp_dir)

    assert not result.ok
    assert result.mismatched == ["db1.t1.00000.sql.gz"]
    assert result.missing == ["db1.t2.00000.sql.gz"]
    assert result.unlisted == ["extra.sql"]


def test_read_manifest_missing(temp_dir: Path):
    with pytest.raises(ManifestError):
        read_manifest(temp_dir)


def test_read_manifest_malformed(temp_dir: Path):
    (temp_dir / MANIFEST_FILE_NAME).write_text("not a manifest line\n")
    with pytest.raises(ManifestError):
        read_manifest(temp_dir)
