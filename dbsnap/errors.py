# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for dbsnap.

These helpers centralize wording for common configuration errors so that
the config layer, the environment loader and the CLI all present the same
actionable messages.
"""


def explain_missing_source() -> str:
    """
    Explain that the source database endpoint is incomplete.
    """

    return (
        "Source database is not configured. "
        "Pass --src-host and --src-user, or set DBSNAP_SRC_HOST and DBSNAP_SRC_USER."
    )


def explain_missing_destination() -> str:
    """
    Explain that the restore target endpoint is incomplete.
    """

    return (
        "Restore target is not configured. "
        "Pass --dest-host and --dest-user, or set DBSNAP_DEST_HOST and DBSNAP_DEST_USER."
    )


def explain_missing_storage() -> str:
    """
    Explain that the storage account or container is missing.
    """

    return (
        "Azure storage target is not configured. "
        "Pass --account and --container, or set DBSNAP_STORAGE_ACCOUNT and "
        "DBSNAP_STORAGE_CONTAINER."
    )


def explain_invalid_auth_mode(value: str | None) -> str:
    """
    Explain that the storage authentication mode is not recognized.
    """

    return (
        f"Invalid storage auth mode: {value!r}. "
        "Expected one of: 'sas', 'service_principal', or 'managed_identity'."
    )


def explain_invalid_integer_env(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable could not be parsed.
    """

    return f"Invalid {name} value: {value!r}. It must be an integer."


def explain_missing_executable(name: str) -> str:
    """
    Explain that a required external tool is not installed.
    """

    return (
        f"Missing: {name}. "
        f"Install {name} and make sure it is on PATH before running dbsnap."
    )


def explain_lock_held(lock_path: str, owner: dict | None) -> str:
    """
    Explain that another job holds the root lock.
    """

    message = f"Another job is running (backup/restore): {lock_path} exists."
    if owner:
        message += (
            f" Held by {owner.get('operation', 'unknown')} "
            f"pid={owner.get('pid')} on {owner.get('hostname')} "
            f"since {owner.get('acquired_at')}."
        )
    return message + " Remove the lock directory by hand only if no job is running."
