# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Exceptions - Custom exceptions for the dbsnap package.

Every fatal error carries the name of the stage it failed in once the
orchestrator has seen it, so the CLI can print a single-line diagnostic.
"""


class DBSnapError(Exception):
    """Base exception for all dbsnap errors."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        stage: str | None = None,
    ):
        self.message = message
        self.details = details or {}
        self.stage = stage
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(DBSnapError):
    """Raised when configuration is invalid."""

    pass


class LockContentionError(DBSnapError):
    """Raised when another backup or restore already holds the root lock."""

    pass


class SlotPreparationError(DBSnapError):
    """Raised when the local snapshot slot cannot be cleared or created."""

    pass


class SnapshotNotFoundError(DBSnapError):
    """Raised when the snapshot to restore does not exist."""

    pass


class DumpFailure(DBSnapError):
    """Raised when the dump producer exits unsuccessfully."""

    pass


class LoadFailure(DBSnapError):
    """Raised when the dump consumer exits unsuccessfully."""

    pass


class ManifestError(DBSnapError):
    """Raised when the checksum manifest cannot be generated or verified."""

    pass


class UploadFailure(DBSnapError):
    """Raised when the snapshot or its metadata cannot be uploaded."""

    pass


class TransportError(DBSnapError):
    """Raised when a blob transport command fails."""

    pass


class MalformedNameError(DBSnapError):
    """Raised when a name is not a remote snapshot timestamp."""

    pass
