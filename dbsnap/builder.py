# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Builder - Functional builder pattern for configuration.

Each function takes a flat config dict and returns a new dict with the
modification applied. build_backup_config() assembles and validates the
nested, immutable BackupConfig at the end.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List

from dbsnap.config import (
    DEFAULT_EXCLUDE_REGEX,
    DEFAULT_ROOT,
    AuthMode,
    AzureAuth,
    BackupConfig,
    DatabaseEndpoint,
    RestoreConfig,
    StorageTarget,
    parse_auth_mode,
)
from dbsnap.errors import (
    explain_invalid_auth_mode,
    explain_missing_destination,
    explain_missing_source,
    explain_missing_storage,
)
from dbsnap.exceptions import ConfigurationError


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_backup_config() -> ConfigDict:
    """
    Create an initial backup configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "src_host": "",
        "src_port": 3306,
        "src_user": "",
        "src_password": "",
        "ssl_mode": "REQUIRED",
        "account": "",
        "container": "",
        "prefix": "",
        "auth_mode": None,
        "sas_token": None,
        "client_id": None,
        "client_secret": None,
        "tenant_id": None,
        "root": DEFAULT_ROOT,
        "threads": 12,
        "chunk_mb": 512,
        "regex": DEFAULT_EXCLUDE_REGEX,
        "databases": [],
        "tables": [],
        "retention_days": 30,
        "mydumper_path": "mydumper",
        "azcopy_path": "azcopy",
    }


def with_source(
    config: ConfigDict,
    host: str,
    user: str,
    port: int = 3306,
    password: str = "",
) -> ConfigDict:
    """
    Set the database to dump.

    Args:
        config: Current configuration dictionary
        host: Source MySQL host
        user: Source MySQL user
        port: Source MySQL port
        password: Source MySQL password (passed to mydumper via MYSQL_PWD)

    Returns:
        New configuration dictionary with source set
    """
    return {
        **config,
        "src_host": host,
        "src_user": user,
        "src_port": port,
        "src_password": password,
    }


def with_ssl_mode(config: ConfigDict, ssl_mode: str) -> ConfigDict:
    """Set the --ssl-mode passed to mydumper (e.g. REQUIRED, VERIFY_CA)."""
    return {**config, "ssl_mode": ssl_mode.upper()}


def with_storage(
    config: ConfigDict,
    account: str,
    container: str,
    prefix: str = "",
) -> ConfigDict:
    """
    Set the Azure storage location snapshots are uploaded under.

    Args:
        config: Current configuration dictionary
        account: Storage account name
        container: Blob container name
        prefix: Optional virtual directory inside the container

    Returns:
        New configuration dictionary with storage set
    """
    return {**config, "account": account, "container": container, "prefix": prefix}


def with_sas_token(config: ConfigDict, sas_token: str) -> ConfigDict:
    """Authenticate with a pre-shared SAS token appended to every URL."""
    return {**config, "auth_mode": AuthMode.SAS, "sas_token": sas_token}


def with_service_principal(
    config: ConfigDict,
    client_id: str,
    client_secret: str,
    tenant_id: str,
) -> ConfigDict:
    """Authenticate by logging in as an application (service principal)."""
    return {
        **config,
        "auth_mode": AuthMode.SERVICE_PRINCIPAL,
        "client_id": client_id,
        "client_secret": client_secret,
        "tenant_id": tenant_id,
    }


def with_managed_identity(config: ConfigDict, client_id: str | None = None) -> ConfigDict:
    """
    Authenticate with the host's managed identity.

    Args:
        config: Current configuration dictionary
        client_id: Client id of a user-assigned identity; omit for the
            system-assigned identity
    """
    return {**config, "auth_mode": AuthMode.MANAGED_IDENTITY, "client_id": client_id}


def with_root(config: ConfigDict, root: Path | str) -> ConfigDict:
    """Set the directory holding the lock and the local snapshot slot."""
    return {**config, "root": Path(root)}


def with_tuning(
    config: ConfigDict,
    threads: int | None = None,
    chunk_mb: int | None = None,
) -> ConfigDict:
    """
    Set mydumper parallelism and file split size.

    Raises:
        ValueError: If a value is below 1
    """
    updated = dict(config)
    if threads is not None:
        if threads < 1:
            raise ValueError(f"threads must be >= 1, got {threads}")
        updated["threads"] = threads
    if chunk_mb is not None:
        if chunk_mb < 1:
            raise ValueError(f"chunk_mb must be >= 1, got {chunk_mb}")
        updated["chunk_mb"] = chunk_mb
    return updated


def with_regex(config: ConfigDict, regex: str | None) -> ConfigDict:
    """Set the mydumper --regex filter; None dumps every schema."""
    return {**config, "regex": regex}


def only_databases(config: ConfigDict, databases: List[str]) -> ConfigDict:
    """Restrict the dump to the given databases (mydumper -B)."""
    return {**config, "databases": list(config["databases"]) + list(databases)}


def only_tables(config: ConfigDict, tables: List[str]) -> ConfigDict:
    """Restrict the dump to the given tables (mydumper -T)."""
    return {**config, "tables": list(config["tables"]) + list(tables)}


def retain_remote_snapshots_for(config: ConfigDict, days: int) -> ConfigDict:
    """
    Set how many days remote snapshots are kept.

    0 disables pruning entirely.
    """
    if days < 0:
        raise ValueError(f"retention days must be >= 0, got {days}")
    return {**config, "retention_days": days}


def build_azure_auth(config_dict: ConfigDict) -> AzureAuth:
    """Build the auth section; the mode must be one of the three literals."""
    if not config_dict.get("auth_mode"):
        raise ConfigurationError(explain_invalid_auth_mode(config_dict.get("auth_mode")))

    return AzureAuth(
        mode=parse_auth_mode(config_dict["auth_mode"]),
        sas_token=config_dict.get("sas_token"),
        client_id=config_dict.get("client_id"),
        client_secret=config_dict.get("client_secret"),
        tenant_id=config_dict.get("tenant_id"),
    )


def build_storage_target(config_dict: ConfigDict) -> StorageTarget:
    if not config_dict.get("account") or not config_dict.get("container"):
        raise ConfigurationError(explain_missing_storage())

    return StorageTarget(
        account=config_dict["account"],
        container=config_dict["container"],
        prefix=config_dict.get("prefix") or "",
        auth=build_azure_auth(config_dict),
    )


def build_backup_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Validate and build an immutable BackupConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable BackupConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("src_host") or not config_dict.get("src_user"):
        raise ConfigurationError(explain_missing_source())

    source = DatabaseEndpoint(
        host=config_dict["src_host"],
        user=config_dict["src_user"],
        port=int(config_dict.get("src_port") or 3306),
        password=config_dict.get("src_password") or "",
        ssl_mode=config_dict.get("ssl_mode") or "REQUIRED",
    )

    return BackupConfig(
        source=source,
        storage=build_storage_target(config_dict),
        root=Path(config_dict["root"]),
        threads=config_dict["threads"],
        chunk_mb=config_dict["chunk_mb"],
        regex=config_dict.get("regex"),
        databases=list(config_dict.get("databases") or []),
        tables=list(config_dict.get("tables") or []),
        retention_days=config_dict["retention_days"],
        mydumper_path=config_dict["mydumper_path"],
        azcopy_path=config_dict["azcopy_path"],
    )


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        config = pipe(
            lambda c: with_source(c, "db.internal", "backup"),
            lambda c: with_storage(c, "prodbackups", "mysql-backups"),
            with_managed_identity,
        )(create_empty_backup_config())
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """Apply builder functions to the defaults and build the config."""
    return build_backup_config(pipe(*steps)(create_empty_backup_config()))


def create_backup_config(
    src_host: str,
    src_user: str,
    *,
    account: str,
    container: str,
    auth_mode: str | AuthMode,
    src_port: int = 3306,
    src_password: str = "",
    prefix: str = "",
    sas_token: str | None = None,
    client_id: str | None = None,
    client_secret: str | None = None,
    tenant_id: str | None = None,
    root: str | Path = DEFAULT_ROOT,
    threads: int = 12,
    chunk_mb: int = 512,
    retention_days: int = 30,
    **kwargs: Any,
) -> BackupConfig:
    """
    Create a backup configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Example:
        config = create_backup_config(
            "mysql.internal",
            "backup",
            src_password=os.environ["MYSQL_PWD"],
            account="prodmysqlbackups",
            container="mysql-backups",
            auth_mode="managed_identity",
            retention_days=14,
        )
    """
    mode = parse_auth_mode(auth_mode)

    config_dict = create_empty_backup_config()
    config_dict = with_source(config_dict, src_host, src_user, src_port, src_password)
    config_dict = with_storage(config_dict, account, container, prefix)

    if mode == AuthMode.SAS:
        config_dict = with_sas_token(config_dict, sas_token or "")
    elif mode == AuthMode.SERVICE_PRINCIPAL:
        config_dict = with_service_principal(
            config_dict, client_id or "", client_secret or "", tenant_id or ""
        )
    else:
        config_dict = with_managed_identity(config_dict, client_id)

    config_dict = with_root(config_dict, root)
    config_dict = with_tuning(config_dict, threads=threads, chunk_mb=chunk_mb)
    config_dict = retain_remote_snapshots_for(config_dict, retention_days)

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_backup_config(config_dict)


def create_restore_config(
    dest_host: str,
    dest_user: str,
    *,
    dest_port: int = 3306,
    dest_password: str = "",
    ssl_mode: str = "REQUIRED",
    root: str | Path = DEFAULT_ROOT,
    snapshot_dir: str | Path | None = None,
    threads: int = 12,
    overwrite_tables: bool = True,
    verify_manifest: bool = False,
    myloader_path: str = "myloader",
) -> RestoreConfig:
    """Create a restore configuration from simple parameters."""
    if not dest_host or not dest_user:
        raise ConfigurationError(explain_missing_destination())

    return RestoreConfig(
        target=DatabaseEndpoint(
            host=dest_host,
            user=dest_user,
            port=dest_port,
            password=dest_password,
            ssl_mode=ssl_mode.upper(),
        ),
        root=Path(root),
        snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
        threads=threads,
        overwrite_tables=overwrite_tables,
        verify_manifest=verify_manifest,
        myloader_path=myloader_path,
    )
