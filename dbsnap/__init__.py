# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap - Logical MySQL backups to Azure Blob Storage.

Dumps a database into a single local snapshot slot, records a SHA-256
manifest, uploads the slot under a timestamp-named remote directory and
prunes remote snapshots past their retention horizon. Restore loads the
local slot back into a database. A marker-directory lock keeps backup and
restore from ever running at the same time against one root.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from dbsnap.builder import create_backup_config, create_restore_config

# Core functions
from dbsnap.core import (
    run_backup,
    run_restore,
    run_sweep,
    BackupResult,
    RestoreResult,
)

# Environment-based configuration
from dbsnap.env import backup_config_from_env, restore_config_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_backup_config",
    "create_restore_config",
    "backup_config_from_env",
    "restore_config_from_env",
    # Core orchestration functions
    "run_backup",
    "run_restore",
    "run_sweep",
    "BackupResult",
    "RestoreResult",
]
