# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Lock Manager - Mutual exclusion between backup and restore runs.

The lock is a marker directory under the backup root. Creating it with
mkdir is atomic on every local filesystem: of two racing processes exactly
one succeeds and the other fails immediately. There is no waiting, no
renewal and no stale-lock expiry; a marker left behind by a crashed run
must be removed by hand, because breaking it automatically could let two
runs touch the snapshot slot at once.
"""

import json
import os
import shutil
import socket
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Generator

import structlog

from dbsnap.errors import explain_lock_held
from dbsnap.exceptions import LockContentionError

logger = structlog.get_logger()

LOCK_DIR_NAME = ".job.lock"
OWNER_FILE_NAME = "owner.json"


@dataclass
class LockHandle:
    """Proof of ownership of the lock for one root directory."""

    root: Path
    path: Path
    operation: str
    pid: int
    acquired_at: datetime
    released: bool = False


def lock_path(root: Path) -> Path:
    return Path(root) / LOCK_DIR_NAME


def acquire_lock(root: Path, operation: str = "backup") -> LockHandle:
    """
    Acquire the lock for a root directory.

    Args:
        root: Backup root directory (created if missing)
        operation: Name of the operation taking the lock, for diagnostics

    Returns:
        LockHandle to pass to release_lock()

    Raises:
        LockContentionError: If the lock is already held, including by
            this same process
    """
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    marker = lock_path(root)

    try:
        marker.mkdir()
    except FileExistsError:
        owner = read_lock_owner(root)
        logger.warning(
            "lock_contention",
            lock_path=str(marker),
            operation=operation,
            owner=owner,
        )
        raise LockContentionError(
            explain_lock_held(str(marker), owner),
            details={"lock_path": str(marker)},
        )

    handle = LockHandle(
        root=root,
        path=marker,
        operation=operation,
        pid=os.getpid(),
        acquired_at=datetime.now(UTC),
    )

    try:
        _write_owner(handle)
    except BaseException:
        # The marker is ours even though its owner record is incomplete
        shutil.rmtree(marker, ignore_errors=True)
        raise

    logger.info("lock_acquired", lock_path=str(marker), operation=operation)
    return handle


def release_lock(handle: LockHandle) -> None:
    """
    Release a lock. Safe to call more than once.

    A marker that has already disappeared (removed by an operator) is not
    an error. A marker whose owner record names a different acquisition is
    left in place: it belongs to whichever run took the lock after an
    operator cleared ours.
    """
    if handle.released:
        return

    if not handle.path.exists():
        handle.released = True
        logger.warning("lock_already_removed", lock_path=str(handle.path))
        return

    owner = read_lock_owner(handle.root)
    if not _owned_by(handle, owner):
        handle.released = True
        logger.warning(
            "lock_not_owned",
            lock_path=str(handle.path),
            operation=handle.operation,
            owner=owner,
        )
        return

    try:
        shutil.rmtree(handle.path)
    except FileNotFoundError:
        logger.warning("lock_already_removed", lock_path=str(handle.path))

    handle.released = True
    logger.info("lock_released", lock_path=str(handle.path), operation=handle.operation)


def _owned_by(handle: LockHandle, owner: dict | None) -> bool:
    if not owner:
        return False
    return (
        owner.get("pid") == handle.pid
        and owner.get("acquired_at") == handle.acquired_at.isoformat()
    )


@contextmanager
def job_lock(root: Path, operation: str = "backup") -> Generator[LockHandle, None, None]:
    """Hold the root lock for the duration of a with-block."""
    handle = acquire_lock(root, operation)
    try:
        yield handle
    finally:
        release_lock(handle)


def read_lock_owner(root: Path) -> dict | None:
    """Read who holds the lock, or None if unheld or unreadable."""
    owner_file = lock_path(root) / OWNER_FILE_NAME
    try:
        return json.loads(owner_file.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def _write_owner(handle: LockHandle) -> None:
    payload = {
        "operation": handle.operation,
        "pid": handle.pid,
        "hostname": socket.gethostname(),
        "acquired_at": handle.acquired_at.isoformat(),
    }
    (handle.path / OWNER_FILE_NAME).write_text(
        json.dumps(payload, indent=2), encoding="utf-8"
    )
