# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote Storage - Blob transport contract and the azcopy implementation.
"""

from dbsnap.remote.transport import BlobTransport, RemoteEntry

__all__ = [
    "BlobTransport",
    "RemoteEntry",
]
