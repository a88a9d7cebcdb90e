# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Dump Engine - Interfaces to the external logical dump/load tools.

The core treats dumping and loading as opaque: a producer either fills the
output directory and returns, or raises DumpFailure; a consumer either
applies the input directory or raises LoadFailure.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Protocol

from dbsnap.config import DatabaseEndpoint


@dataclass(frozen=True)
class DumpRequest:
    """Everything the dump producer is given for one run."""

    source: DatabaseEndpoint
    output_dir: Path
    threads: int
    chunk_mb: int
    regex: str | None = None
    databases: List[str] = field(default_factory=list)
    tables: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LoadRequest:
    """Everything the dump consumer is given for one run."""

    target: DatabaseEndpoint
    input_dir: Path
    threads: int
    overwrite_tables: bool = True


class DumpProducer(Protocol):
    async def dump(self, request: DumpRequest) -> None:
        ...


class DumpConsumer(Protocol):
    async def load(self, request: LoadRequest) -> None:
        ...


__all__ = [
    "DumpRequest",
    "LoadRequest",
    "DumpProducer",
    "DumpConsumer",
]
