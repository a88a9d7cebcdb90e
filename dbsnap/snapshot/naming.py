# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote snapshot naming.

Remote snapshots are directories named by the UTC instant of the run,
YYYYMMDDThhmmssZ. Retention has no other source of age information than
the listing, so parsing is strict: a name either round-trips exactly or is
rejected.
"""

import re
from datetime import datetime, UTC

from dbsnap.exceptions import MalformedNameError

SNAPSHOT_NAME_FORMAT = "%Y%m%dT%H%M%SZ"

_SNAPSHOT_NAME_RE = re.compile(r"[0-9]{8}T[0-9]{6}Z")


def format_snapshot_name(ts: datetime) -> str:
    """
    Render an instant as a snapshot name.

    Naive datetimes are taken to be UTC; sub-second precision is dropped.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    ts = ts.astimezone(UTC)
    # strftime does not zero-pad years below 1000 on every platform
    return (
        f"{ts.year:04d}{ts.month:02d}{ts.day:02d}"
        f"T{ts.hour:02d}{ts.minute:02d}{ts.second:02d}Z"
    )


def parse_snapshot_name(name: str) -> datetime:
    """
    Parse a snapshot name back into an aware UTC datetime.

    Raises:
        MalformedNameError: If name is not exactly YYYYMMDDThhmmssZ or
            is not a real calendar instant
    """
    if not isinstance(name, str) or not _SNAPSHOT_NAME_RE.fullmatch(name):
        raise MalformedNameError(
            f"Not a snapshot name: {name!r}",
            details={"expected": "YYYYMMDDThhmmssZ"},
        )
    try:
        return datetime.strptime(name, SNAPSHOT_NAME_FORMAT).replace(tzinfo=UTC)
    except ValueError as e:
        raise MalformedNameError(f"Not a valid timestamp: {name!r}: {e}")


def join_remote(base: str, *parts: str) -> str:
    """Join remote path segments with single slashes."""
    segments = [base.rstrip("/")]
    segments.extend(p.strip("/") for p in parts if p.strip("/"))
    return "/".join(segments)


def remote_snapshot_path(base: str, ts: datetime) -> str:
    """Canonical remote location of the snapshot taken at ts."""
    return join_remote(base, format_snapshot_name(ts))
