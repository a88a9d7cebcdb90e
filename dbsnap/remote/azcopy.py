# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
azcopy blob transport.

Authentication is set up once per run by transport_session():

- sas: no login; the token is appended to every URL
- service_principal: azcopy login with an application id, the secret is
  passed in AZCOPY_SPA_CLIENT_SECRET
- managed_identity: azcopy login --identity

The two login modes are logged out when the session ends, whatever the
outcome of the run.
"""

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable, Dict, List

import structlog

from dbsnap.config import AuthMode, AzureAuth
from dbsnap.exceptions import ConfigurationError, TransportError
from dbsnap.process import CommandResult, build_env, redact_argv, run_command
from dbsnap.remote.transport import RemoteEntry

logger = structlog.get_logger()

CommandRunner = Callable[..., Awaitable[CommandResult]]

# Messages of `azcopy list --output-type json` that describe an object
_LIST_MESSAGE_TYPES = ("ListObject", "Info")


def parse_list_output(output: str) -> List[RemoteEntry]:
    """
    Collapse azcopy's recursive listing into immediate children.

    Each object path is relative to the listed location; its first segment
    is the child name, and the child is a directory if anything follows.
    """
    children: Dict[str, bool] = {}

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except ValueError:
            continue
        if not isinstance(message, dict) or message.get("MessageType") not in _LIST_MESSAGE_TYPES:
            continue

        content = message.get("MessageContent")
        try:
            item = json.loads(content) if isinstance(content, str) else content
        except ValueError:
            continue
        if not isinstance(item, dict) or not item.get("Path"):
            continue

        path = str(item["Path"]).strip("/")
        name, sep, _ = path.partition("/")
        children[name] = children.get(name, False) or bool(sep)

    return [RemoteEntry(name=name, is_directory=is_dir) for name, is_dir in sorted(children.items())]


class AzCopyTransport:
    """BlobTransport implementation that shells out to azcopy."""

    def __init__(
        self,
        auth: AzureAuth,
        executable: str = "azcopy",
        runner: CommandRunner = run_command,
    ) -> None:
        self.auth = auth
        self.executable = executable
        self._runner = runner
        self._logged_in = False

    def _url(self, remote_path: str) -> str:
        token = self.auth.query_string
        if not token:
            return remote_path
        separator = "&" if "?" in remote_path else "?"
        return f"{remote_path}{separator}{token}"

    async def _run(
        self,
        action: str,
        argv: List[str],
        input_bytes: bytes | None = None,
        extra_env: Dict[str, str] | None = None,
    ) -> CommandResult:
        try:
            result = await self._runner(
                argv, env=build_env(extra_env), input_bytes=input_bytes
            )
        except OSError as e:
            raise TransportError(
                f"Failed to start {self.executable}: {e}",
                details={"action": action},
            )

        if not result.ok:
            raise TransportError(
                f"azcopy {action} failed with status {result.returncode}",
                details={
                    "command": " ".join(redact_argv(argv)),
                    "stderr": result.stderr_tail() or result.stdout.decode(errors="ignore")[-2000:],
                },
            )
        return result

    async def login(self) -> None:
        """Establish credentials for the configured mode."""
        mode = self.auth.mode

        if mode == AuthMode.SAS:
            logger.debug("transport_auth_sas")
            return
        elif mode == AuthMode.SERVICE_PRINCIPAL:
            argv = [
                self.executable, "login", "--service-principal",
                "--application-id", self.auth.client_id or "",
                "--tenant-id", self.auth.tenant_id or "",
            ]
            await self._run(
                "login",
                argv,
                extra_env={"AZCOPY_SPA_CLIENT_SECRET": self.auth.client_secret or ""},
            )
        elif mode == AuthMode.MANAGED_IDENTITY:
            argv = [self.executable, "login", "--identity"]
            if self.auth.client_id:
                argv += ["--identity-client-id", self.auth.client_id]
            await self._run("login", argv)
        else:
            raise ConfigurationError(f"Unsupported auth mode: {mode!r}")

        self._logged_in = True
        logger.info("transport_logged_in", mode=mode.value)

    async def logout(self) -> None:
        """Drop credentials established by login(). Never raises TransportError."""
        if not self._logged_in:
            return
        try:
            await self._run("logout", [self.executable, "logout"])
            logger.info("transport_logged_out", mode=self.auth.mode.value)
        except TransportError as e:
            logger.warning("transport_logout_failed", error=str(e))
        finally:
            self._logged_in = False

    async def upload_directory(self, local_dir: Path, remote_path: str) -> None:
        # Trailing /* copies the directory's contents rather than the directory
        source = f"{Path(local_dir)}/*"
        argv = [
            self.executable, "copy", source, self._url(remote_path),
            "--recursive", "--overwrite=ifSourceNewer",
        ]
        await self._run("copy", argv)
        logger.info("directory_uploaded", local_dir=str(local_dir), remote_path=remote_path)

    async def write_object(self, remote_path: str, payload: bytes) -> None:
        argv = [self.executable, "copy", self._url(remote_path), "--from-to", "PipeBlob"]
        await self._run("copy", argv, input_bytes=payload)
        logger.info("object_written", remote_path=remote_path, size=len(payload))

    async def list_children(self, remote_path: str) -> List[RemoteEntry]:
        argv = [
            self.executable, "list", self._url(remote_path.rstrip("/") + "/"),
            "--output-type", "json",
        ]
        result = await self._run("list", argv)
        return parse_list_output(result.stdout.decode(errors="replace"))

    async def delete_tree(self, remote_path: str) -> None:
        argv = [self.executable, "remove", self._url(remote_path), "--recursive"]
        await self._run("remove", argv)


@asynccontextmanager
async def transport_session(
    auth: AzureAuth,
    executable: str = "azcopy",
    runner: CommandRunner = run_command,
) -> AsyncGenerator[AzCopyTransport, None]:
    """Authenticate once, yield the transport, and always log out."""
    transport = AzCopyTransport(auth, executable=executable, runner=runner)
    await transport.login()
    try:
        yield transport
    finally:
        await transport.logout()
