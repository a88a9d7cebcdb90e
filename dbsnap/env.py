# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These build backup and restore configurations from DBSNAP_* environment
variables, which is how the timer-driven deployments pass credentials
without putting them on a command line.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from dbsnap.builder import (
    build_backup_config,
    create_empty_backup_config,
    create_restore_config,
)
from dbsnap.config import DEFAULT_EXCLUDE_REGEX, BackupConfig, RestoreConfig
from dbsnap.errors import explain_invalid_integer_env
from dbsnap.exceptions import ConfigurationError


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_integer_env(name, value)) from exc


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def backup_config_from_env(env: Mapping[str, str] | None = None) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Required:
        - DBSNAP_SRC_HOST, DBSNAP_SRC_USER
        - DBSNAP_STORAGE_ACCOUNT, DBSNAP_STORAGE_CONTAINER
        - DBSNAP_AUTH_MODE: 'sas' | 'service_principal' | 'managed_identity'

    Optional:
        - DBSNAP_SRC_PORT (default 3306), DBSNAP_SRC_PASSWORD
        - DBSNAP_SSL_MODE (default REQUIRED)
        - DBSNAP_STORAGE_PREFIX
        - DBSNAP_SAS_TOKEN, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID
        - DBSNAP_ROOT (default /backups)
        - DBSNAP_THREADS (default 12), DBSNAP_CHUNK_MB (default 512)
        - DBSNAP_REGEX (default excludes system schemas)
        - DBSNAP_DATABASES, DBSNAP_TABLES: comma-separated
        - DBSNAP_RETENTION_DAYS (default 30)
    """
    env = os.environ if env is None else env

    config_dict = create_empty_backup_config()
    config_dict.update(
        {
            "src_host": env.get("DBSNAP_SRC_HOST", ""),
            "src_user": env.get("DBSNAP_SRC_USER", ""),
            "src_port": _parse_int(env, "DBSNAP_SRC_PORT", 3306),
            "src_password": env.get("DBSNAP_SRC_PASSWORD", ""),
            "ssl_mode": env.get("DBSNAP_SSL_MODE", "REQUIRED").upper(),
            "account": env.get("DBSNAP_STORAGE_ACCOUNT", ""),
            "container": env.get("DBSNAP_STORAGE_CONTAINER", ""),
            "prefix": env.get("DBSNAP_STORAGE_PREFIX", ""),
            "auth_mode": env.get("DBSNAP_AUTH_MODE"),
            "sas_token": env.get("DBSNAP_SAS_TOKEN"),
            "client_id": env.get("AZURE_CLIENT_ID"),
            "client_secret": env.get("AZURE_CLIENT_SECRET"),
            "tenant_id": env.get("AZURE_TENANT_ID"),
            "root": Path(env.get("DBSNAP_ROOT") or "/backups"),
            "threads": _parse_int(env, "DBSNAP_THREADS", 12),
            "chunk_mb": _parse_int(env, "DBSNAP_CHUNK_MB", 512),
            "regex": env.get("DBSNAP_REGEX", DEFAULT_EXCLUDE_REGEX) or None,
            "databases": _parse_list(env.get("DBSNAP_DATABASES")),
            "tables": _parse_list(env.get("DBSNAP_TABLES")),
            "retention_days": _parse_int(env, "DBSNAP_RETENTION_DAYS", 30),
        }
    )

    return build_backup_config(config_dict)


def restore_config_from_env(env: Mapping[str, str] | None = None) -> RestoreConfig:
    """
    Create a RestoreConfig from environment variables.

    Required:
        - DBSNAP_DEST_HOST, DBSNAP_DEST_USER

    Optional:
        - DBSNAP_DEST_PORT (default 3306), DBSNAP_DEST_PASSWORD
        - DBSNAP_SSL_MODE (default REQUIRED)
        - DBSNAP_ROOT (default /backups), DBSNAP_SNAPSHOT_DIR
        - DBSNAP_THREADS (default 12)
        - DBSNAP_VERIFY_MANIFEST (default false)
    """
    env = os.environ if env is None else env

    return create_restore_config(
        env.get("DBSNAP_DEST_HOST", ""),
        env.get("DBSNAP_DEST_USER", ""),
        dest_port=_parse_int(env, "DBSNAP_DEST_PORT", 3306),
        dest_password=env.get("DBSNAP_DEST_PASSWORD", ""),
        ssl_mode=env.get("DBSNAP_SSL_MODE", "REQUIRED"),
        root=env.get("DBSNAP_ROOT") or "/backups",
        snapshot_dir=env.get("DBSNAP_SNAPSHOT_DIR") or None,
        threads=_parse_int(env, "DBSNAP_THREADS", 12),
        verify_manifest=_parse_bool(env, "DBSNAP_VERIFY_MANIFEST", False),
    )
