# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Async subprocess helper shared by the mydumper/myloader and azcopy adapters.
"""

import asyncio
import os
import shutil
from dataclasses import dataclass
from typing import Dict, List, Sequence

import structlog

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Exit status and captured output of one external command."""

    argv: List[str]
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, lines: int = 20) -> str:
        text = self.stderr.decode(errors="ignore").strip()
        return "\n".join(text.splitlines()[-lines:])


def redact_argv(argv: Sequence[str]) -> List[str]:
    """Strip query strings (SAS tokens) from URLs before logging."""
    redacted = []
    for arg in argv:
        if arg.startswith(("https://", "http://")) and "?" in arg:
            arg = arg.split("?", 1)[0] + "?<redacted>"
        redacted.append(arg)
    return redacted


def build_env(extra: Dict[str, str] | None = None) -> Dict[str, str]:
    """Current environment plus overrides for the child process."""
    env = os.environ.copy()
    if extra:
        env.update(extra)
    return env


def find_missing_executables(names: Sequence[str]) -> List[str]:
    return [name for name in names if shutil.which(name) is None]


async def run_command(
    argv: Sequence[str],
    env: Dict[str, str] | None = None,
    input_bytes: bytes | None = None,
) -> CommandResult:
    """
    Run an external command to completion.

    The child is terminated if the awaiting task is cancelled.

    Raises:
        OSError: If the executable cannot be started
    """
    argv = [str(a) for a in argv]
    logger.debug("command_started", command=redact_argv(argv))

    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE if input_bytes is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )

    try:
        stdout_data, stderr_data = await proc.communicate(input_bytes)
    except asyncio.CancelledError:
        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            await proc.wait()
        logger.warning("command_cancelled", command=redact_argv(argv)[:1])
        raise

    result = CommandResult(
        argv=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout_data or b"",
        stderr=stderr_data or b"",
    )

    logger.debug(
        "command_finished",
        command=redact_argv(argv)[:1],
        returncode=result.returncode,
    )

    return result
