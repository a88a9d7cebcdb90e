# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
mydumper / myloader adapters.

Both tools are run as child processes with a fixed argument list. The
password never appears on the command line; it is passed through the
MYSQL_PWD environment variable.
"""

from pathlib import Path
from typing import List

import structlog

from dbsnap.config import DatabaseEndpoint
from dbsnap.dump import DumpRequest, LoadRequest
from dbsnap.exceptions import DumpFailure, LoadFailure
from dbsnap.process import build_env, run_command

logger = structlog.get_logger()

DUMP_LOG_NAME = "mydumper.log"


def _connection_args(endpoint: DatabaseEndpoint) -> List[str]:
    return ["-h", endpoint.host, "-P", str(endpoint.port), "-u", endpoint.user]


def build_mydumper_argv(request: DumpRequest, executable: str = "mydumper") -> List[str]:
    """
    Build the mydumper command line.

    Compressed output, split into chunk_mb files, with triggers (-G),
    routines (-R) and events (-E), logging into the output directory.
    """
    output_dir = Path(request.output_dir)
    argv = [executable, *_connection_args(request.source)]
    argv += [
        "-o", str(output_dir),
        "-t", str(request.threads),
        "--compress",
        "-F", str(request.chunk_mb),
        "-G", "-R", "-E",
        "-L", str(output_dir / DUMP_LOG_NAME),
    ]

    if request.regex:
        argv += ["--regex", request.regex]
    if request.databases:
        argv += ["-B", ",".join(request.databases)]
    if request.tables:
        argv += ["-T", ",".join(request.tables)]

    ssl_mode = request.source.ssl_mode.upper()
    if ssl_mode != "DISABLED":
        argv.append("--ssl")
    argv.append(f"--ssl-mode={ssl_mode}")

    return argv


def build_myloader_argv(request: LoadRequest, executable: str = "myloader") -> List[str]:
    """Build the myloader command line."""
    argv = [executable, *_connection_args(request.target)]
    argv += ["-d", str(request.input_dir), "-t", str(request.threads)]
    if request.overwrite_tables:
        argv.append("-o")
    argv += ["--verbose=2", f"--ssl-mode={request.target.ssl_mode.upper()}"]
    return argv


class MydumperProducer:
    """Dump producer backed by mydumper."""

    def __init__(self, executable: str = "mydumper") -> None:
        self.executable = executable

    async def dump(self, request: DumpRequest) -> None:
        argv = build_mydumper_argv(request, self.executable)

        logger.info(
            "mydumper_started",
            host=request.source.host,
            port=request.source.port,
            output_dir=str(request.output_dir),
            threads=request.threads,
        )

        try:
            result = await run_command(
                argv, env=build_env({"MYSQL_PWD": request.source.password})
            )
        except OSError as e:
            raise DumpFailure(
                f"Failed to start {self.executable}: {e}",
                details={"executable": self.executable},
            )

        if not result.ok:
            raise DumpFailure(
                f"mydumper exited with status {result.returncode}",
                details={"returncode": result.returncode, "stderr": result.stderr_tail()},
            )

        logger.info("mydumper_completed", output_dir=str(request.output_dir))


class MyloaderConsumer:
    """Dump consumer backed by myloader."""

    def __init__(self, executable: str = "myloader") -> None:
        self.executable = executable

    async def load(self, request: LoadRequest) -> None:
        argv = build_myloader_argv(request, self.executable)

        logger.info(
            "myloader_started",
            host=request.target.host,
            port=request.target.port,
            input_dir=str(request.input_dir),
            threads=request.threads,
        )

        try:
            result = await run_command(
                argv, env=build_env({"MYSQL_PWD": request.target.password})
            )
        except OSError as e:
            raise LoadFailure(
                f"Failed to start {self.executable}: {e}",
                details={"executable": self.executable},
            )

        if not result.ok:
            raise LoadFailure(
                f"myloader exited with status {result.returncode}",
                details={"returncode": result.returncode, "stderr": result.stderr_tail()},
            )

        logger.info("myloader_completed", input_dir=str(request.input_dir))
