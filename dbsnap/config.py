# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that a run
cannot change its own parameters halfway through. Validation happens in
__post_init__ and reports every problem at once, before any side effect.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List
import re

from dbsnap.errors import explain_invalid_auth_mode


# Excludes the MySQL system schemas from logical dumps
DEFAULT_EXCLUDE_REGEX = r"^(?!(mysql|sys|performance_schema|information_schema))"

DEFAULT_ROOT = Path("/backups")


class AuthMode(str, Enum):
    """How the blob transport authenticates against Azure Storage."""

    SAS = "sas"  # Pre-shared token appended to every URL
    SERVICE_PRINCIPAL = "service_principal"  # Application identity login
    MANAGED_IDENTITY = "managed_identity"  # Host-managed identity login

    @property
    def requires_login(self) -> bool:
        return self is not AuthMode.SAS


def parse_auth_mode(value: "AuthMode | str | None") -> AuthMode:
    """
    Resolve an auth mode from its literal.

    Only the three known literals are accepted; there is no default.
    """
    from dbsnap.exceptions import ConfigurationError

    if isinstance(value, AuthMode):
        return value
    try:
        return AuthMode((value or "").strip().lower())
    except (ValueError, AttributeError) as exc:
        raise ConfigurationError(explain_invalid_auth_mode(value)) from exc


def _validate_account_name(account: str) -> bool:
    """Azure storage account names: 3-24 lowercase letters and digits."""
    return bool(re.match(r"^[a-z0-9]{3,24}$", account or ""))


def _validate_container_name(container: str) -> bool:
    """
    Validate an Azure blob container name.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive hyphens
    """
    if not container or len(container) < 3 or len(container) > 63:
        return False
    if not re.match(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$", container):
        return False
    return "--" not in container


def _raise_if_errors(errors: List[str]) -> None:
    if errors:
        from dbsnap.exceptions import ConfigurationError

        raise ConfigurationError(
            "Configuration validation failed",
            details={"errors": errors},
        )


@dataclass(frozen=True)
class DatabaseEndpoint:
    """Connection parameters passed through to mydumper/myloader."""

    host: str
    user: str
    port: int = 3306
    password: str = field(default="", repr=False)

    # Passed as --ssl-mode to the dump tools
    ssl_mode: str = "REQUIRED"

    def __post_init__(self) -> None:
        errors: List[str] = []
        if not self.host:
            errors.append("host is required")
        if not self.user:
            errors.append("user is required")
        if not 0 < self.port < 65536:
            errors.append(f"port must be between 1 and 65535, got {self.port}")
        _raise_if_errors(errors)


@dataclass(frozen=True)
class AzureAuth:
    """Credentials for one of the three authentication modes."""

    mode: AuthMode
    sas_token: str | None = field(default=None, repr=False)

    # Application id for service_principal, optional user-assigned
    # identity client id for managed_identity
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    tenant_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", parse_auth_mode(self.mode))

        errors: List[str] = []
        if self.mode == AuthMode.SAS and not self.sas_token:
            errors.append("sas_token required when auth mode is 'sas'")
        if self.mode == AuthMode.SERVICE_PRINCIPAL:
            if not self.client_id:
                errors.append("client_id required when auth mode is 'service_principal'")
            if not self.client_secret:
                errors.append("client_secret required when auth mode is 'service_principal'")
            if not self.tenant_id:
                errors.append("tenant_id required when auth mode is 'service_principal'")
        _raise_if_errors(errors)

    @property
    def query_string(self) -> str:
        """SAS token without its leading '?', empty for login modes."""
        if self.mode != AuthMode.SAS or not self.sas_token:
            return ""
        return self.sas_token.lstrip("?")


@dataclass(frozen=True)
class StorageTarget:
    """Remote base path for snapshots: account, container and optional prefix."""

    account: str
    container: str
    auth: AzureAuth
    prefix: str = ""
    endpoint_suffix: str = "blob.core.windows.net"

    def __post_init__(self) -> None:
        errors: List[str] = []
        if not _validate_account_name(self.account):
            errors.append(f"Invalid storage account name: {self.account}")
        if not _validate_container_name(self.container):
            errors.append(f"Invalid container name: {self.container}")
        _raise_if_errors(errors)

    @property
    def base_url(self) -> str:
        """Base remote path under which snapshots are named by timestamp."""
        url = f"https://{self.account}.{self.endpoint_suffix}/{self.container}"
        prefix = self.prefix.strip("/")
        if prefix:
            url = f"{url}/{prefix}"
        return url


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for one backup run.

    Defaults mirror what the backup has always been run with in production.
    """

    # Required: database to dump
    source: DatabaseEndpoint

    # Required: where snapshots are uploaded
    storage: StorageTarget

    # Directory holding the lock marker and the single local snapshot slot
    root: Path = DEFAULT_ROOT

    # mydumper tuning
    threads: int = 12
    chunk_mb: int = 512
    regex: str | None = DEFAULT_EXCLUDE_REGEX
    databases: List[str] = field(default_factory=list)
    tables: List[str] = field(default_factory=list)

    # Remote snapshots older than this many days are deleted after upload
    retention_days: int = 30

    # External tool locations
    mydumper_path: str = "mydumper"
    azcopy_path: str = "azcopy"

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        object.__setattr__(self, "root", Path(self.root))
        errors: List[str] = []

        if self.threads < 1:
            errors.append(f"threads must be >= 1, got {self.threads}")

        if self.chunk_mb < 1:
            errors.append(f"chunk_mb must be >= 1, got {self.chunk_mb}")

        if self.retention_days < 0:
            errors.append(f"retention_days must be >= 0, got {self.retention_days}")

        if self.regex:
            try:
                # mydumper uses PCRE; lookaheads compile fine in re as well
                re.compile(self.regex)
            except re.error as e:
                errors.append(f"Invalid regex {self.regex!r}: {e}")

        _raise_if_errors(errors)

    @property
    def slot_path(self) -> Path:
        from dbsnap.snapshot.slot import slot_path

        return slot_path(self.root)

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        return replace(self, **kwargs)


@dataclass(frozen=True)
class RestoreConfig:
    """Immutable configuration for one restore run."""

    # Required: database to load into
    target: DatabaseEndpoint

    root: Path = DEFAULT_ROOT

    # Explicit snapshot directory; defaults to the slot under root
    snapshot_dir: Path | None = None

    threads: int = 12

    # Passed as -o (drop and recreate existing tables)
    overwrite_tables: bool = True

    # Check MANIFEST.sha256 before handing the slot to myloader
    verify_manifest: bool = False

    myloader_path: str = "myloader"

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root))
        if self.snapshot_dir is not None:
            object.__setattr__(self, "snapshot_dir", Path(self.snapshot_dir))

        errors: List[str] = []
        if self.threads < 1:
            errors.append(f"threads must be >= 1, got {self.threads}")
        _raise_if_errors(errors)

    @property
    def slot_path(self) -> Path:
        from dbsnap.snapshot.slot import slot_path

        return slot_path(self.root)

    def with_updates(self, **kwargs) -> "RestoreConfig":
        return replace(self, **kwargs)
