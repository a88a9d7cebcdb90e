# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Retention Sweeper - Age-based pruning of remote snapshots.

Only immediate children of the base path whose names parse as snapshot
timestamps are considered; anything else under the base path is left
alone. A snapshot is deleted when it is strictly older than the horizon,
so one exactly at the boundary survives. Deletions are independent: one
failing does not stop the others.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import List

import structlog

from dbsnap.exceptions import MalformedNameError
from dbsnap.remote.transport import BlobTransport
from dbsnap.snapshot.naming import join_remote, parse_snapshot_name

logger = structlog.get_logger()


@dataclass
class SweepResult:
    """Outcome of one retention sweep."""

    retention_days: int
    dry_run: bool = False
    examined: int = 0
    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


def is_expired(snapshot_ts: datetime, now: datetime, retention_days: int) -> bool:
    """Strictly older than the horizon; the boundary itself is kept."""
    return now - snapshot_ts > timedelta(days=retention_days)


async def sweep_expired_snapshots(
    transport: BlobTransport,
    base_path: str,
    retention_days: int,
    now: datetime | None = None,
    dry_run: bool = False,
) -> SweepResult:
    """
    Delete remote snapshots older than retention_days.

    Args:
        transport: Blob transport with an authenticated session
        base_path: Remote base path holding timestamp-named snapshots
        retention_days: Horizon in days; 0 or less disables the sweep
        now: Reference instant (default: current UTC time)
        dry_run: If True, only report what would be deleted

    Returns:
        SweepResult; deletion failures are recorded, not raised
    """
    result = SweepResult(retention_days=retention_days, dry_run=dry_run)

    if retention_days <= 0:
        logger.info("sweep_disabled", retention_days=retention_days)
        return result

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    children = await transport.list_children(base_path)

    for child in children:
        result.examined += 1
        try:
            snapshot_ts = parse_snapshot_name(child.name)
        except MalformedNameError:
            result.skipped.append(child.name)
            logger.debug("sweep_entry_skipped", name=child.name)
            continue

        if not is_expired(snapshot_ts, now, retention_days):
            result.kept.append(child.name)
            continue

        remote_path = join_remote(base_path, child.name)
        try:
            if not dry_run:
                await transport.delete_tree(remote_path)
            result.deleted.append(child.name)
            logger.info(
                "snapshot_pruned" if not dry_run else "snapshot_would_prune",
                remote_path=remote_path,
                age_days=(now - snapshot_ts).days,
            )
        except Exception as e:
            result.errors.append(f"{child.name}: {e}")
            logger.error(
                "snapshot_prune_failed",
                remote_path=remote_path,
                error=str(e),
            )

    logger.info(
        "sweep_complete",
        base_path=base_path,
        retention_days=retention_days,
        examined=result.examined,
        deleted=len(result.deleted),
        kept=len(result.kept),
        skipped=len(result.skipped),
        errors=len(result.errors),
        dry_run=dry_run,
    )

    return result
