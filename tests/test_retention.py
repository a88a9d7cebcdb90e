# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retention sweep tests.

These tests verify the pruning guarantees:
1. Only snapshots strictly older than the horizon are deleted
2. Names that are not snapshot timestamps are never touched
3. A horizon of zero disables pruning
4. One failed deletion does not stop the others
5. Dry-run never deletes anything
"""

from datetime import datetime, timedelta, UTC

import pytest

from dbsnap.exceptions import TransportError
from dbsnap.snapshot.naming import format_snapshot_name
from dbsnap.snapshot.retention import is_expired, sweep_expired_snapshots

from conftest import BASE_URL, FakeTransport

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=UTC)


def _name(age: timedelta) -> str:
    return format_snapshot_name(NOW - age)


# ============================================================================
# Test 1: HORIZON
# ============================================================================

def test_boundary_is_kept():
    assert not is_expired(NOW - timedelta(days=30), NOW, 30)
    assert is_expired(NOW - timedelta(days=30, seconds=1), NOW, 30)


@pytest.mark.asyncio
async def test_sweep_deletes_only_expired(fake_transport: FakeTransport):
    """
    CRITICAL: A snapshot at exactly the horizon survives; one second older
    does not.
    """
    fresh = _name(timedelta(days=1))
    boundary = _name(timedelta(days=30))
    expired = _name(timedelta(days=30, seconds=1))
    ancient = _name(timedelta(days=400))
    for name in (fresh, boundary, expired, ancient):
        fake_transport.seed_snapshot(BASE_URL, name)

    result = await sweep_expired_snapshots(fake_transport, BASE_URL, 30, now=NOW)

    assert sorted(result.deleted) == sorted([expired, ancient])
    assert sorted(result.kept) == sorted([fresh, boundary])
    assert fake_transport.snapshot_names() == sorted([fresh, boundary])
    assert result.examined == 4


@pytest.mark.asyncio
async def test_future_snapshots_are_kept(fake_transport: FakeTransport):
    future = _name(-timedelta(days=2))
    fake_transport.seed_snapshot(BASE_URL, future)

    result = await sweep_expired_snapshots(fake_transport, BASE_URL, 1, now=NOW)

    assert result.kept == [future]
    assert result.deleted == []


# ============================================================================
# Test 2: FOREIGN ENTRIES
# ============================================================================

@pytest.mark.asyncio
async def test_non_snapshot_names_are_skipped(fake_transport: FakeTransport):
    expired = _name(timedelta(days=90))
    fake_transport.seed_snapshot(BASE_URL, expired)
    fake_transport.seed_snapshot(BASE_URL, "manual-export")
    fake_transport.seed_snapshot(BASE_URL, "2020-01-01")
    fake_transport.objects[f"{BASE_URL}/README.txt"] = b"hands off"

    result = await sweep_expired_snapshots(fake_transport, BASE_URL, 7, now=NOW)

    assert result.deleted == [expired]
    assert sorted(result.skipped) == ["2020-01-01", "README.txt", "manual-export"]
    assert f"{BASE_URL}/README.txt" in fake_transport.objects
    assert "manual-export" in fake_transport.snapshot_names()


# ============================================================================
# Test 3: DISABLED
# ============================================================================

@pytest.mark.asyncio
async def test_zero_horizon_disables_sweep(fake_transport: FakeTransport):
    fake_transport.seed_snapshot(BASE_URL, _name(timedelta(days=1000)))
    fake_transport.fail_list = True

    result = await sweep_expired_snapshots(fake_transport, BASE_URL, 0, now=NOW)

    assert result.examined == 0
    assert result.deleted == []
    assert len(fake_transport.snapshot_names()) == 1


# ============================================================================
# Test 4: PARTIAL FAILURE
# ============================================================================

@pytest.mark.asyncio
async def test_failed_deletion_does_not_stop_others(fake_transport: FakeTransport):
    first = _name(timedelta(days=60))
    second = _name(timedelta(days=61))
    third = _name(timedelta(days=62))
    for name in (first, second, third):
        fake_transport.seed_snapshot(BASE_URL, name)
    fake_transport.fail_delete = {second}

    result = await sweep_expired_snapshots(fake_transport, BASE_URL, 30, now=NOW)

    assert sorted(result.deleted) == sorted([first, third])
    assert result.failed_count == 1
    assert second in result.errors[0]
    assert fake_transport.snapshot_names() == [second]


@pytest.mark.asyncio
async def test_listing_failure_propagates(fake_transport: FakeTransport):
    fake_transport.fail_list = True

    with pytest.raises(TransportError):
        await sweep_expired_snapshots(fake_transport, BASE_URL, 30, now=NOW)


# ============================================================================
# Test 5: DRY RUN
# ============================================================================

@pytest.mark.asyncio
async def test_dry_run_deletes_nothing(fake_transport: FakeTransport):
    expired = _name(timedelta(days=45))
    fake_transport.seed_snapshot(BASE_URL, expired)

    result = await sweep_expired_snapshots(
        fake_transport, BASE_URL, 30, now=NOW, dry_run=True
    )

    assert result.dry_run
    assert result.deleted == [expired]
    assert fake_transport.deleted == []
    assert fake_transport.snapshot_names() == [expired]
