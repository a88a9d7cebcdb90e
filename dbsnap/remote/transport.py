# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Blob transport contract.

The orchestrator and the retention sweeper only talk to remote storage
through this interface. Remote paths are plain URLs without credentials;
the transport adds whatever its authentication mode needs.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol


@dataclass(frozen=True)
class RemoteEntry:
    """An immediate child of a remote path."""

    name: str  # Final path segment, no trailing slash
    is_directory: bool


class BlobTransport(Protocol):
    """Operations the core needs from remote object storage."""

    async def upload_directory(self, local_dir: Path, remote_path: str) -> None:
        """Recursively copy local_dir's contents to remote_path."""
        ...

    async def write_object(self, remote_path: str, payload: bytes) -> None:
        """Write a single object from an in-memory payload."""
        ...

    async def list_children(self, remote_path: str) -> List[RemoteEntry]:
        """List immediate children of remote_path (non-recursive)."""
        ...

    async def delete_tree(self, remote_path: str) -> None:
        """Recursively delete remote_path and everything beneath it."""
        ...
