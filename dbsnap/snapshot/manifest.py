# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Checksum Manifest - Integrity record for a local snapshot.

After the dump producer succeeds, every data file in the slot is hashed
with SHA-256 and the results are written to MANIFEST.sha256 in the
sha256sum text format:

    <hex digest>  <relative/posix/path>

Lines are ordered by the UTF-8 bytes of the relative path, so the
manifest is byte-identical for identical input on any platform or locale.
The manifest is written to a temp file and renamed into place; a failure
at any point leaves no manifest behind.
"""

import fnmatch
import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import aiofiles
import structlog

from dbsnap.exceptions import ManifestError

logger = structlog.get_logger()

MANIFEST_FILE_NAME = "MANIFEST.sha256"

# Compressed table dumps, raw SQL, structured metadata, logs and reports
DATA_FILE_PATTERNS = (
    "*.gz",
    "*.zst",
    "*.sql",
    "*.json",
    "*.log",
    "*.txt",
    "metadata",
    "*-metadata",
)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ManifestEntry:
    """One manifest line."""

    path: str  # Relative to the slot, POSIX separators
    sha256: str


@dataclass
class Manifest:
    """A manifest as written to disk."""

    path: Path
    entries: List[ManifestEntry]

    @property
    def file_count(self) -> int:
        return len(self.entries)


@dataclass
class ManifestVerification:
    """Result of checking a slot against its manifest."""

    checked: int
    missing: List[str] = field(default_factory=list)
    mismatched: List[str] = field(default_factory=list)
    unlisted: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.mismatched or self.unlisted)


def is_data_file(name: str) -> bool:
    """Whether a file name belongs in the manifest."""
    if name == MANIFEST_FILE_NAME:
        return False
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in DATA_FILE_PATTERNS)


def _sort_key(relative: str) -> bytes:
    return relative.encode("utf-8", "surrogateescape")


def iter_data_files(slot: Path) -> List[Path]:
    """
    List the slot's data files in manifest order.

    Args:
        slot: Snapshot directory

    Returns:
        Absolute paths, sorted by the bytes of their relative POSIX path
    """
    slot = Path(slot)
    files = [
        path
        for path in slot.rglob("*")
        if path.is_file() and is_data_file(path.name)
    ]
    return sorted(files, key=lambda p: _sort_key(p.relative_to(slot).as_posix()))


async def hash_file(path: Path) -> str:
    """SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def render_manifest(entries: List[ManifestEntry]) -> bytes:
    """Serialize entries in sha256sum format, in manifest order."""
    ordered = sorted(entries, key=lambda e: _sort_key(e.path))
    return "".join(f"{e.sha256}  {e.path}\n" for e in ordered).encode(
        "utf-8", "surrogateescape"
    )


async def generate_manifest(slot: Path) -> Manifest:
    """
    Hash every data file in the slot and write MANIFEST.sha256.

    Must only be called after the dump producer exited successfully.

    Raises:
        ManifestError: If any file cannot be read or the manifest cannot be
            written; no partial manifest is left in the slot
    """
    slot = Path(slot)
    manifest_path = slot / MANIFEST_FILE_NAME
    temp_path = slot / f"{MANIFEST_FILE_NAME}.tmp"

    try:
        entries: List[ManifestEntry] = []
        for data_file in iter_data_files(slot):
            relative = data_file.relative_to(slot).as_posix()
            if "\n" in relative:
                raise ManifestError(
                    "File name cannot be represented in the manifest",
                    details={"path": relative},
                )
            entries.append(ManifestEntry(path=relative, sha256=await hash_file(data_file)))

        payload = render_manifest(entries)

        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(payload)

        # Atomic on POSIX filesystems
        temp_path.replace(manifest_path)

    except Exception as e:
        temp_path.unlink(missing_ok=True)
        if isinstance(e, ManifestError):
            raise
        raise ManifestError(
            f"Failed to generate manifest: {e}",
            details={"slot": str(slot)},
        )

    logger.info(
        "manifest_written",
        manifest_path=str(manifest_path),
        files=len(entries),
    )

    return Manifest(path=manifest_path, entries=entries)


def read_manifest(slot: Path) -> List[ManifestEntry]:
    """
    Parse the slot's MANIFEST.sha256.

    Raises:
        ManifestError: If the manifest is missing or malformed
    """
    manifest_path = Path(slot) / MANIFEST_FILE_NAME

    try:
        text = manifest_path.read_bytes().decode("utf-8", "surrogateescape")
    except FileNotFoundError:
        raise ManifestError(
            f"Manifest not found: {manifest_path}",
            details={"manifest_path": str(manifest_path)},
        )
    except OSError as e:
        raise ManifestError(
            f"Failed to read manifest: {e}",
            details={"manifest_path": str(manifest_path)},
        )

    entries: List[ManifestEntry] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        digest, sep, relative = line.partition("  ")
        if not sep or len(digest) != 64 or not relative:
            raise ManifestError(
                f"Malformed manifest line {lineno}",
                details={"manifest_path": str(manifest_path), "line": line},
            )
        entries.append(ManifestEntry(path=relative, sha256=digest.lower()))

    return entries


async def verify_manifest(slot: Path) -> ManifestVerification:
    """
    Re-hash the slot and compare it with its manifest.

    Reports files listed but missing, files whose digest changed, and data
    files present in the slot but absent from the manifest.
    """
    slot = Path(slot)
    entries = read_manifest(slot)
    expected = {e.path: e.sha256 for e in entries}
    present = {p.relative_to(slot).as_posix() for p in iter_data_files(slot)}

    result = ManifestVerification(checked=len(entries))
    for entry in entries:
        if entry.path not in present:
            result.missing.append(entry.path)
            continue
        try:
            actual = await hash_file(slot / entry.path)
        except OSError as e:
            raise ManifestError(
                f"Failed to hash {entry.path}: {e}",
                details={"slot": str(slot)},
            )
        if actual != entry.sha256:
            result.mismatched.append(entry.path)

    result.unlisted = sorted(present - expected.keys(), key=_sort_key)

    logger.info(
        "manifest_verified",
        slot=str(slot),
        checked=result.checked,
        missing=len(result.missing),
        mismatched=len(result.mismatched),
        unlisted=len(result.unlisted),
    )

    return result
