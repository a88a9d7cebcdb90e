# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Core - Backup and restore orchestration.

Backup:  lock -> prepare -> dump -> manifest -> auth -> upload -> metadata
         -> sweep -> release
Restore: lock -> validate -> load -> release

The lock is released on every exit path, including failures and
cancellation. Nothing else is cleaned up on failure: the slot stays as the
failing stage left it, and the next backup's prepare stage clears it.
"""

import json
from contextlib import AsyncExitStack, nullcontext
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, AsyncContextManager, Callable, List, Sequence

import structlog

from dbsnap.config import BackupConfig, RestoreConfig, StorageTarget
from dbsnap.dump import DumpConsumer, DumpProducer, DumpRequest, LoadRequest
from dbsnap.errors import explain_missing_executable
from dbsnap.events import EventSink, StageRecorder
from dbsnap.exceptions import (
    ConfigurationError,
    DBSnapError,
    DumpFailure,
    LoadFailure,
    ManifestError,
    SlotPreparationError,
    TransportError,
    UploadFailure,
)
from dbsnap.lock import LockHandle, acquire_lock, release_lock
from dbsnap.process import find_missing_executables
from dbsnap.remote.transport import BlobTransport
from dbsnap.snapshot.manifest import generate_manifest, verify_manifest
from dbsnap.snapshot.naming import format_snapshot_name, join_remote
from dbsnap.snapshot.retention import SweepResult, sweep_expired_snapshots
from dbsnap.snapshot.slot import prepare_for_backup, resolve_for_restore

logger = structlog.get_logger()

METADATA_OBJECT_NAME = "snapshot-metadata.json"


@dataclass
class BackupResult:
    """Result of a backup run."""

    run_id: str
    snapshot_name: str
    remote_path: str
    slot: Path
    manifest_files: int
    duration_seconds: float
    sweep: SweepResult | None = None
    stages: List[str] = field(default_factory=list)


@dataclass
class RestoreResult:
    """Result of a restore run."""

    run_id: str
    snapshot_dir: Path
    target_host: str
    duration_seconds: float
    manifest_verified: bool = False
    stages: List[str] = field(default_factory=list)


def check_executables(names: Sequence[str]) -> None:
    """
    Fail before any side effect if a required tool is not installed.

    Raises:
        ConfigurationError: Listing every missing executable
    """
    missing = find_missing_executables(names)
    if missing:
        raise ConfigurationError(
            explain_missing_executable(missing[0]),
            details={"missing": missing},
            stage="preflight",
        )


def build_snapshot_metadata(config: BackupConfig, snapshot_ts: datetime) -> dict:
    """Metadata object published next to each remote snapshot."""
    utc = snapshot_ts.astimezone(UTC).replace(tzinfo=None)
    return {
        "timestamp": utc.isoformat(timespec="seconds") + "Z",
        "source_host": config.source.host,
        "threads": config.threads,
        "chunk_mb": config.chunk_mb,
    }


def render_snapshot_metadata(metadata: dict) -> bytes:
    return (json.dumps(metadata, indent=2, sort_keys=True) + "\n").encode("utf-8")


def _open_transport(
    storage: StorageTarget,
    transport: BlobTransport | None,
    azcopy_path: str,
) -> AsyncContextManager[Any]:
    """An authenticated azcopy session, or the injected transport as-is."""
    if transport is not None:
        return nullcontext(transport)

    from dbsnap.remote.azcopy import transport_session

    return transport_session(storage.auth, executable=azcopy_path)


def _release_after_failure(recorder: StageRecorder, handle: LockHandle) -> None:
    """
    Release the lock while another error is propagating.

    A release failure is logged so it cannot replace the error that ended
    the run.
    """
    try:
        with recorder.stage("release"):
            release_lock(handle)
    except DBSnapError as e:
        logger.error(
            "lock_release_failed",
            run_id=recorder.run_id,
            lock_path=str(handle.path),
            error=str(e),
        )


async def run_backup(
    config: BackupConfig,
    *,
    producer: DumpProducer | None = None,
    transport: BlobTransport | None = None,
    now: datetime | None = None,
    clock: Callable[[], datetime] | None = None,
    sink: EventSink | None = None,
) -> BackupResult:
    """
    Run one complete backup.

    This is the main entry point for backups. It:
    1. Takes the root lock
    2. Empties the local snapshot slot
    3. Dumps the source database into the slot
    4. Writes the checksum manifest
    5. Uploads the slot to <base>/<YYYYMMDDThhmmssZ> and publishes metadata
    6. Prunes remote snapshots older than the retention horizon

    Args:
        config: Backup configuration
        producer: Dump producer (default: mydumper)
        transport: Authenticated blob transport (default: azcopy session)
        now: Snapshot instant (default: current UTC time)
        clock: Source of the instant retention ages are measured against,
            read when the sweep starts (default: frozen at now if given,
            otherwise the wall clock)
        sink: Optional receiver for stage events

    Returns:
        BackupResult with run details

    Raises:
        DBSnapError: Any fatal error, tagged with the stage it occurred in
    """
    required = []
    if producer is None:
        required.append(config.mydumper_path)
    if transport is None:
        required.append(config.azcopy_path)
    check_executables(required)

    from dbsnap.dump.mydumper import MydumperProducer

    producer = producer or MydumperProducer(config.mydumper_path)
    if clock is None:
        clock = (lambda: now) if now is not None else (lambda: datetime.now(UTC))
    snapshot_ts = (now or clock()).replace(microsecond=0)
    if snapshot_ts.tzinfo is None:
        snapshot_ts = snapshot_ts.replace(tzinfo=UTC)

    base_path = config.storage.base_url
    snapshot_name = format_snapshot_name(snapshot_ts)
    remote_path = join_remote(base_path, snapshot_name)

    recorder = StageRecorder("backup", sink=sink)
    start_time = datetime.now(UTC)

    logger.info(
        "backup_started",
        run_id=recorder.run_id,
        root=str(config.root),
        source_host=config.source.host,
        remote_path=remote_path,
    )

    with recorder.stage("lock"):
        handle = acquire_lock(config.root, "backup")

    try:
        with recorder.stage("prepare", SlotPreparationError):
            slot = prepare_for_backup(config.slot_path)

        with recorder.stage("dump", DumpFailure):
            await producer.dump(
                DumpRequest(
                    source=config.source,
                    output_dir=slot,
                    threads=config.threads,
                    chunk_mb=config.chunk_mb,
                    regex=config.regex,
                    databases=list(config.databases),
                    tables=list(config.tables),
                )
            )

        with recorder.stage("manifest", ManifestError):
            manifest = await generate_manifest(slot)

        async with AsyncExitStack() as stack:
            with recorder.stage("auth", UploadFailure):
                try:
                    remote = await stack.enter_async_context(
                        _open_transport(config.storage, transport, config.azcopy_path)
                    )
                except TransportError as e:
                    raise UploadFailure(f"Storage login failed: {e.message}", details=e.details) from e

            with recorder.stage("upload", UploadFailure):
                try:
                    await remote.upload_directory(slot, remote_path)
                except TransportError as e:
                    raise UploadFailure(f"Snapshot upload failed: {e.message}", details=e.details) from e

            with recorder.stage("metadata", UploadFailure):
                metadata = build_snapshot_metadata(config, snapshot_ts)
                try:
                    await remote.write_object(
                        join_remote(remote_path, METADATA_OBJECT_NAME),
                        render_snapshot_metadata(metadata),
                    )
                except TransportError as e:
                    raise UploadFailure(f"Metadata upload failed: {e.message}", details=e.details) from e

            with recorder.stage("sweep"):
                try:
                    sweep = await sweep_expired_snapshots(
                        remote, base_path, config.retention_days, now=clock()
                    )
                except Exception as e:
                    # Retention never decides the outcome of a backup
                    sweep = SweepResult(
                        retention_days=config.retention_days,
                        errors=[f"listing failed: {e}"],
                    )
                    logger.error("sweep_failed", base_path=base_path, error=str(e))

    except BaseException:
        _release_after_failure(recorder, handle)
        raise

    with recorder.stage("release"):
        release_lock(handle)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    result = BackupResult(
        run_id=recorder.run_id,
        snapshot_name=snapshot_name,
        remote_path=remote_path,
        slot=slot,
        manifest_files=manifest.file_count,
        duration_seconds=duration,
        sweep=sweep,
        stages=list(recorder.completed_stages),
    )

    logger.info(
        "backup_completed",
        run_id=recorder.run_id,
        remote_path=remote_path,
        manifest_files=manifest.file_count,
        pruned=len(sweep.deleted),
        sweep_errors=len(sweep.errors),
        duration=duration,
    )

    return result


async def run_restore(
    config: RestoreConfig,
    *,
    consumer: DumpConsumer | None = None,
    sink: EventSink | None = None,
) -> RestoreResult:
    """
    Load the local snapshot into the target database.

    The snapshot directory is only read; restore never clears or rewrites
    the slot.

    Args:
        config: Restore configuration
        consumer: Dump consumer (default: myloader)
        sink: Optional receiver for stage events

    Returns:
        RestoreResult with run details
    """
    if consumer is None:
        check_executables([config.myloader_path])

    from dbsnap.dump.mydumper import MyloaderConsumer

    consumer = consumer or MyloaderConsumer(config.myloader_path)
    recorder = StageRecorder("restore", sink=sink)
    start_time = datetime.now(UTC)

    logger.info(
        "restore_started",
        run_id=recorder.run_id,
        root=str(config.root),
        target_host=config.target.host,
    )

    with recorder.stage("lock"):
        handle = acquire_lock(config.root, "restore")

    try:
        with recorder.stage("validate"):
            snapshot_dir = resolve_for_restore(config.slot_path, config.snapshot_dir)

            if config.verify_manifest:
                verification = await verify_manifest(snapshot_dir)
                if not verification.ok:
                    raise ManifestError(
                        "Snapshot does not match its manifest",
                        details={
                            "missing": verification.missing,
                            "mismatched": verification.mismatched,
                            "unlisted": verification.unlisted,
                        },
                    )

        with recorder.stage("load", LoadFailure):
            await consumer.load(
                LoadRequest(
                    target=config.target,
                    input_dir=snapshot_dir,
                    threads=config.threads,
                    overwrite_tables=config.overwrite_tables,
                )
            )

    except BaseException:
        _release_after_failure(recorder, handle)
        raise

    with recorder.stage("release"):
        release_lock(handle)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "restore_completed",
        run_id=recorder.run_id,
        snapshot_dir=str(snapshot_dir),
        duration=duration,
    )

    return RestoreResult(
        run_id=recorder.run_id,
        snapshot_dir=snapshot_dir,
        target_host=config.target.host,
        duration_seconds=duration,
        manifest_verified=config.verify_manifest,
        stages=list(recorder.completed_stages),
    )


async def run_sweep(
    storage: StorageTarget,
    root: Path,
    retention_days: int,
    *,
    transport: BlobTransport | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
    azcopy_path: str = "azcopy",
    sink: EventSink | None = None,
) -> SweepResult:
    """
    Run the retention sweep on its own, under the root lock.

    Unlike the sweep at the end of a backup, a listing failure here is
    fatal. Individual deletion failures are still only recorded.
    """
    if transport is None:
        check_executables([azcopy_path])

    recorder = StageRecorder("sweep", sink=sink)

    with recorder.stage("lock"):
        handle = acquire_lock(root, "sweep")

    try:
        async with AsyncExitStack() as stack:
            with recorder.stage("auth"):
                remote = await stack.enter_async_context(
                    _open_transport(storage, transport, azcopy_path)
                )
            with recorder.stage("sweep"):
                result = await sweep_expired_snapshots(
                    remote, storage.base_url, retention_days, now=now, dry_run=dry_run
                )
    except BaseException:
        _release_after_failure(recorder, handle)
        raise

    with recorder.stage("release"):
        release_lock(handle)

    return result
