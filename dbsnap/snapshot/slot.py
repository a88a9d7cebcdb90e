# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Local snapshot slot management.

There is exactly one local snapshot, at <root>/latest. Backup destroys and
recreates it; restore only ever reads it.
"""

import shutil
from pathlib import Path

import structlog

from dbsnap.exceptions import SlotPreparationError, SnapshotNotFoundError

logger = structlog.get_logger()

SLOT_DIR_NAME = "latest"


def slot_path(root: Path) -> Path:
    return Path(root) / SLOT_DIR_NAME


def prepare_for_backup(slot: Path) -> Path:
    """
    Empty the slot so the dump producer starts from nothing.

    Args:
        slot: Slot directory (need not exist)

    Returns:
        The slot path, now an empty directory

    Raises:
        SlotPreparationError: If the old contents cannot be removed or the
            directory cannot be created
    """
    slot = Path(slot)

    try:
        if slot.is_symlink() or slot.is_file():
            slot.unlink()
        elif slot.exists():
            shutil.rmtree(slot)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise SlotPreparationError(
            f"Failed to clear snapshot slot: {e}",
            details={"slot": str(slot)},
        )

    try:
        slot.mkdir(parents=True)
    except OSError as e:
        raise SlotPreparationError(
            f"Failed to create snapshot slot: {e}",
            details={"slot": str(slot)},
        )

    logger.info("slot_prepared", slot=str(slot))
    return slot


def resolve_for_restore(slot: Path, override: Path | None = None) -> Path:
    """
    Pick the directory to restore from and check that it exists.

    An explicit override is used verbatim; otherwise the slot is used.

    Raises:
        SnapshotNotFoundError: If the resolved path is missing or not a
            directory
    """
    resolved = Path(override) if override is not None else Path(slot)

    if not resolved.is_dir():
        raise SnapshotNotFoundError(
            f"Snapshot not found: {resolved}",
            details={"snapshot_dir": str(resolved)},
        )

    return resolved
