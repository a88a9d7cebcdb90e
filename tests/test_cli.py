# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command line tests: exit codes and the single-line failure diagnostic.
"""

import hashlib
from pathlib import Path

import pytest
import structlog

from dbsnap import cli
from dbsnap.core import BackupResult, RestoreResult
from dbsnap.exceptions import DumpFailure
from dbsnap.snapshot.retention import SweepResult


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


def _backup_args(root: Path):
    return [
        "--log-level", "ERROR",
        "backup",
        "--src-host", "mysql.internal",
        "--src-user", "backup",
        "--account", "prodbackups",
        "--container", "mysql-backups",
        "--auth-mode", "sas",
        "--sas-token", "sv=1&sig=x",
        "--root", str(root),
    ]


def test_backup_success(temp_dir: Path, monkeypatch, capsys):
    seen = {}

    async def fake_run_backup(config):
        seen["config"] = config
        return BackupResult(
            run_id="01J",
            snapshot_name="20261017T120000Z",
            remote_path="https://prodbackups.blob.core.windows.net/mysql-backups/20261017T120000Z",
            slot=config.slot_path,
            manifest_files=3,
            duration_seconds=1.5,
            sweep=SweepResult(retention_days=30),
        )

    monkeypatch.setattr(cli, "run_backup", fake_run_backup)

    assert cli.main(_backup_args(temp_dir) + ["--threads", "4", "--database", "app"]) == 0

    out = capsys.readouterr().out
    assert "20261017T120000Z" in out
    assert seen["config"].threads == 4
    assert seen["config"].databases == ["app"]
    assert seen["config"].root == temp_dir


def test_backup_failure_names_stage(temp_dir: Path, monkeypatch, capsys):
    async def failing_run_backup(config):
        raise DumpFailure("mydumper exited with status 2", stage="dump")

    monkeypatch.setattr(cli, "run_backup", failing_run_backup)

    assert cli.main(_backup_args(temp_dir)) == 1

    err = capsys.readouterr().err.strip().splitlines()
    assert err[-1] == "backup failed at stage 'dump': mydumper exited with status 2"


def test_backup_config_error(temp_dir: Path, capsys):
    args = _backup_args(temp_dir)
    args[args.index("sas")] = "account_key"

    assert cli.main(args) == 1
    assert "backup failed at stage 'config'" in capsys.readouterr().err


def test_restore_missing_tool(temp_dir: Path, capsys):
    code = cli.main(
        [
            "--log-level", "ERROR",
            "restore",
            "--dest-host", "restore.internal",
            "--dest-user", "root",
            "--root", str(temp_dir),
            "--myloader", "no-such-myloader-xyz",
        ]
    )

    assert code == 1
    assert "restore failed at stage 'preflight'" in capsys.readouterr().err


def test_sweep_exit_code_reflects_errors(temp_dir: Path, monkeypatch, capsys):
    async def fake_run_sweep(storage, root, retention_days, **kwargs):
        return SweepResult(
            retention_days=retention_days,
            deleted=["20250101T000000Z"],
            errors=["20240101T000000Z: remove refused"],
        )

    monkeypatch.setattr(cli, "run_sweep", fake_run_sweep)

    args = [
        "--log-level", "ERROR",
        "sweep",
        "--account", "prodbackups",
        "--container", "mysql-backups",
        "--auth-mode", "managed_identity",
        "--root", str(temp_dir),
        "--retention-days", "30",
    ]

    assert cli.main(args) == 1
    captured = capsys.readouterr()
    assert "20250101T000000Z" in captured.out
    assert "remove refused" in captured.err


def _write_verified_slot(root: Path) -> Path:
    slot = root / "latest"
    slot.mkdir()
    (slot / "db1.t1.00000.sql.gz").write_bytes(b"a" * 10)
    digest = hashlib.sha256(b"a" * 10).hexdigest()
    (slot / "MANIFEST.sha256").write_text(f"{digest}  db1.t1.00000.sql.gz\n")
    return slot


def test_verify_ok(temp_dir: Path, capsys):
    _write_verified_slot(temp_dir)

    assert cli.main(["--log-level", "ERROR", "verify", "--root", str(temp_dir)]) == 0
    assert capsys.readouterr().out.strip().endswith("OK")


def test_verify_detects_tampering(temp_dir: Path, capsys):
    slot = _write_verified_slot(temp_dir)
    (slot / "db1.t1.00000.sql.gz").write_bytes(b"tampered")

    assert cli.main(["--log-level", "ERROR", "verify", "--root", str(temp_dir)]) == 1
    assert "mismatched: db1.t1.00000.sql.gz" in capsys.readouterr().out


def test_verify_missing_snapshot(temp_dir: Path, capsys):
    assert cli.main(["--log-level", "ERROR", "verify", "--root", str(temp_dir)]) == 1
    assert "verify failed at stage 'verify'" in capsys.readouterr().err


def test_restore_accepts_backup_root(temp_dir: Path, monkeypatch, capsys):
    seen = {}

    async def fake_run_restore(config):
        seen["config"] = config
        return RestoreResult(
            run_id="01J",
            snapshot_dir=config.slot_path,
            target_host=config.target.host,
            duration_seconds=0.5,
        )

    monkeypatch.setattr(cli, "run_restore", fake_run_restore)

    code = cli.main(
        [
            "--log-level", "ERROR",
            "restore",
            "--dest-host", "restore.internal",
            "--dest-user", "root",
            "--backup-root", str(temp_dir),
            "--threads", "16",
        ]
    )

    assert code == 0
    assert seen["config"].root == temp_dir
    assert seen["config"].slot_path == temp_dir / "latest"
    assert seen["config"].threads == 16
    assert "Restore completed successfully" in capsys.readouterr().out
