# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap command line.

    dbsnap backup  --src-host H --src-user U --account A --container C --auth-mode M
    dbsnap restore --dest-host H --dest-user U [--snapshot-dir DIR]
    dbsnap sweep   --account A --container C --auth-mode M --retention-days N
    dbsnap verify  [--snapshot-dir DIR]

Every command exits 0 on success and 1 on any failure, printing one line
that names the stage that failed. Secrets can come from the environment
(DBSNAP_SRC_PASSWORD, DBSNAP_DEST_PASSWORD, DBSNAP_SAS_TOKEN,
AZURE_CLIENT_SECRET) instead of flags.
"""

import argparse
import asyncio
import getpass
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, List

import structlog

from dbsnap.builder import (
    build_backup_config,
    build_storage_target,
    create_empty_backup_config,
    create_restore_config,
)
from dbsnap.config import DEFAULT_EXCLUDE_REGEX
from dbsnap.core import run_backup, run_restore, run_sweep
from dbsnap.env import backup_config_from_env, restore_config_from_env
from dbsnap.exceptions import DBSnapError
from dbsnap.snapshot.manifest import verify_manifest
from dbsnap.snapshot.slot import resolve_for_restore, slot_path

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Route structlog output to stderr, as JSON lines or human-readable."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _add_storage_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--account", help="Azure storage account name")
    parser.add_argument("--container", help="Blob container name")
    parser.add_argument("--prefix", default="", help="Virtual directory inside the container")
    parser.add_argument(
        "--auth-mode",
        help="sas | service_principal | managed_identity",
    )
    parser.add_argument(
        "--sas-token",
        default=os.environ.get("DBSNAP_SAS_TOKEN"),
        help="SAS token (default: $DBSNAP_SAS_TOKEN)",
    )
    parser.add_argument(
        "--client-id",
        default=os.environ.get("AZURE_CLIENT_ID"),
        help="Application id, or user-assigned identity client id",
    )
    parser.add_argument(
        "--client-secret",
        default=os.environ.get("AZURE_CLIENT_SECRET"),
        help="Application secret (default: $AZURE_CLIENT_SECRET)",
    )
    parser.add_argument(
        "--tenant-id",
        default=os.environ.get("AZURE_TENANT_ID"),
        help="Directory (tenant) id for service_principal",
    )
    parser.add_argument("--azcopy", default="azcopy", help="azcopy executable")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbsnap",
        description="Logical MySQL backups to Azure Blob Storage with a single local snapshot",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("--log-json", action="store_true", help="Log JSON lines to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # backup
    backup = subparsers.add_parser("backup", help="Dump, upload and prune")
    backup.add_argument("--from-env", action="store_true", help="Read all settings from DBSNAP_* variables")
    backup.add_argument("--src-host", help="Source MySQL host")
    backup.add_argument("--src-port", type=int, default=3306)
    backup.add_argument("--src-user", help="Source MySQL user")
    backup.add_argument("--src-pass", default=os.environ.get("DBSNAP_SRC_PASSWORD", ""))
    backup.add_argument("--src-pass-prompt", action="store_true", help="Prompt for the source password")
    backup.add_argument("--ssl-mode", default="REQUIRED")
    backup.add_argument("--root", "--backup-root", dest="root", type=Path, default=Path("/backups"), help="Lock and snapshot root")
    backup.add_argument("--threads", type=int, default=12)
    backup.add_argument("--chunk-mb", type=int, default=512)
    backup.add_argument("--regex-exclude", default=DEFAULT_EXCLUDE_REGEX, help="mydumper --regex filter")
    backup.add_argument("--database", action="append", default=[], help="Only dump this database (repeatable)")
    backup.add_argument("--table", action="append", default=[], help="Only dump this table (repeatable)")
    backup.add_argument("--retention-days", type=int, default=30, help="0 disables pruning")
    backup.add_argument("--mydumper", default="mydumper", help="mydumper executable")
    _add_storage_arguments(backup)

    # restore
    restore = subparsers.add_parser("restore", help="Load the local snapshot into a database")
    restore.add_argument("--from-env", action="store_true", help="Read all settings from DBSNAP_* variables")
    restore.add_argument("--dest-host", help="Target MySQL host")
    restore.add_argument("--dest-port", type=int, default=3306)
    restore.add_argument("--dest-user", help="Target MySQL user")
    restore.add_argument("--dest-pass", default=os.environ.get("DBSNAP_DEST_PASSWORD", ""))
    restore.add_argument("--dest-pass-prompt", action="store_true", help="Prompt for the target password")
    restore.add_argument("--root", "--backup-root", dest="root", type=Path, default=Path("/backups"))
    restore.add_argument("--snapshot-dir", type=Path, help="Restore from here instead of <root>/latest")
    restore.add_argument("--threads", type=int, default=12)
    restore.add_argument("--ssl-mode", default="REQUIRED")
    restore.add_argument("--verify-manifest", action="store_true", help="Check MANIFEST.sha256 first")
    restore.add_argument("--no-overwrite", action="store_true", help="Do not drop existing tables")
    restore.add_argument("--myloader", default="myloader", help="myloader executable")

    # sweep
    sweep = subparsers.add_parser("sweep", help="Prune expired remote snapshots only")
    sweep.add_argument("--root", "--backup-root", dest="root", type=Path, default=Path("/backups"))
    sweep.add_argument("--retention-days", type=int, required=True)
    sweep.add_argument("--dry-run", action="store_true", help="Report only, delete nothing")
    _add_storage_arguments(sweep)

    # verify
    verify = subparsers.add_parser("verify", help="Check a local snapshot against its manifest")
    verify.add_argument("--root", "--backup-root", dest="root", type=Path, default=Path("/backups"))
    verify.add_argument("--snapshot-dir", type=Path)

    return parser


def _storage_dict(args: argparse.Namespace) -> dict:
    return {
        "account": args.account or "",
        "container": args.container or "",
        "prefix": args.prefix,
        "auth_mode": args.auth_mode,
        "sas_token": args.sas_token,
        "client_id": args.client_id,
        "client_secret": args.client_secret,
        "tenant_id": args.tenant_id,
    }


def _backup_config(args: argparse.Namespace):
    if args.from_env:
        return backup_config_from_env()

    password = args.src_pass
    if args.src_pass_prompt:
        password = getpass.getpass("Source MySQL password: ")

    config_dict = create_empty_backup_config()
    config_dict.update(_storage_dict(args))
    config_dict.update(
        {
            "src_host": args.src_host or "",
            "src_port": args.src_port,
            "src_user": args.src_user or "",
            "src_password": password,
            "ssl_mode": args.ssl_mode.upper(),
            "root": args.root,
            "threads": args.threads,
            "chunk_mb": args.chunk_mb,
            "regex": args.regex_exclude or None,
            "databases": args.database,
            "tables": args.table,
            "retention_days": args.retention_days,
            "mydumper_path": args.mydumper,
            "azcopy_path": args.azcopy,
        }
    )
    return build_backup_config(config_dict)


def _restore_config(args: argparse.Namespace):
    if args.from_env:
        return restore_config_from_env()

    password = args.dest_pass
    if args.dest_pass_prompt:
        password = getpass.getpass("Restore MySQL password: ")

    return create_restore_config(
        args.dest_host or "",
        args.dest_user or "",
        dest_port=args.dest_port,
        dest_password=password,
        ssl_mode=args.ssl_mode,
        root=args.root,
        snapshot_dir=args.snapshot_dir,
        threads=args.threads,
        overwrite_tables=not args.no_overwrite,
        verify_manifest=args.verify_manifest,
        myloader_path=args.myloader,
    )


async def _with_termination(awaitable: Awaitable[Any]) -> Any:
    """Turn SIGTERM into task cancellation so finally-blocks release the lock."""
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except (NotImplementedError, RuntimeError):
        pass
    try:
        return await awaitable
    finally:
        try:
            loop.remove_signal_handler(signal.SIGTERM)
        except (NotImplementedError, RuntimeError):
            pass


def _diagnostic(command: str, error: BaseException) -> str:
    # Errors raised outside the orchestrator come from building the config,
    # except for verify, which has no config of its own
    stage = getattr(error, "stage", None) or ("verify" if command == "verify" else "config")
    message = " ".join(str(error).split())
    return f"{command} failed at stage '{stage}': {message}"


def _cmd_backup(args: argparse.Namespace) -> int:
    config = _backup_config(args)
    result = asyncio.run(_with_termination(run_backup(config)))

    print("Backup completed successfully")
    print(f"  Snapshot: {result.remote_path}")
    print(f"  Manifest files: {result.manifest_files}")
    if result.sweep is not None:
        print(f"  Pruned: {len(result.sweep.deleted)}")
        for error in result.sweep.errors:
            print(f"  Prune error: {error}")
    print(f"  Duration: {result.duration_seconds:.1f}s")
    return EXIT_OK


def _cmd_restore(args: argparse.Namespace) -> int:
    config = _restore_config(args)
    result = asyncio.run(_with_termination(run_restore(config)))

    print("Restore completed successfully")
    print(f"  Snapshot: {result.snapshot_dir}")
    print(f"  Target: {result.target_host}")
    print(f"  Duration: {result.duration_seconds:.1f}s")
    return EXIT_OK


def _cmd_sweep(args: argparse.Namespace) -> int:
    storage = build_storage_target(_storage_dict(args))
    result = asyncio.run(
        _with_termination(
            run_sweep(
                storage,
                args.root,
                args.retention_days,
                dry_run=args.dry_run,
                azcopy_path=args.azcopy,
            )
        )
    )

    verb = "Would prune" if result.dry_run else "Pruned"
    print(f"{verb}: {len(result.deleted)}, kept: {len(result.kept)}, skipped: {len(result.skipped)}")
    for name in result.deleted:
        print(f"  {name}")
    for error in result.errors:
        print(f"  Prune error: {error}", file=sys.stderr)
    return EXIT_FAILURE if result.errors else EXIT_OK


def _cmd_verify(args: argparse.Namespace) -> int:
    snapshot_dir = resolve_for_restore(slot_path(args.root), args.snapshot_dir)
    result = asyncio.run(verify_manifest(snapshot_dir))

    print(f"Checked {result.checked} files in {snapshot_dir}")
    for label, paths in (
        ("missing", result.missing),
        ("mismatched", result.mismatched),
        ("unlisted", result.unlisted),
    ):
        for path in paths:
            print(f"  {label}: {path}")
    print("OK" if result.ok else "FAILED")
    return EXIT_OK if result.ok else EXIT_FAILURE


_COMMANDS = {
    "backup": _cmd_backup,
    "restore": _cmd_restore,
    "sweep": _cmd_sweep,
    "verify": _cmd_verify,
}


def main(argv: List[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_json)

    try:
        return _COMMANDS[args.command](args)
    except DBSnapError as e:
        print(_diagnostic(args.command, e), file=sys.stderr)
        return EXIT_FAILURE
    except ValueError as e:
        print(_diagnostic(args.command, e), file=sys.stderr)
        return EXIT_FAILURE
    except (KeyboardInterrupt, asyncio.CancelledError):
        print(f"{args.command} interrupted; lock released", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
