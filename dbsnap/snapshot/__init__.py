# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Engine - Local slot, checksum manifest, remote naming and retention.
"""

from dbsnap.snapshot.naming import (
    format_snapshot_name,
    parse_snapshot_name,
    remote_snapshot_path,
)

from dbsnap.snapshot.slot import (
    slot_path,
    prepare_for_backup,
    resolve_for_restore,
)

from dbsnap.snapshot.manifest import (
    generate_manifest,
    read_manifest,
    verify_manifest,
    Manifest,
    ManifestVerification,
)

from dbsnap.snapshot.retention import (
    sweep_expired_snapshots,
    SweepResult,
)

__all__ = [
    # Naming
    "format_snapshot_name",
    "parse_snapshot_name",
    "remote_snapshot_path",
    # Slot
    "slot_path",
    "prepare_for_backup",
    "resolve_for_restore",
    # Manifest
    "generate_manifest",
    "read_manifest",
    "verify_manifest",
    "Manifest",
    "ManifestVerification",
    # Retention
    "sweep_expired_snapshots",
    "SweepResult",
]
