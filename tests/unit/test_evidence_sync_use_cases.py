"""
Tests del caso de uso de sync por evidencia (incremental / completo).
"""
import asyncio
from datetime import datetime, timezone

import pytest

from flexisync.application.use_cases.evidence_sync_use_cases import (
    SKIPPED_BY_SHUTDOWN,
    build_incremental_filter,
    sync_evidence,
)
from flexisync.domain.entities.evidence import EvidenceDescriptor, SyncCheckpoint
from flexisync.infrastructure.database.schema import ColumnRegistry, SchemaManager
from flexisync.infrastructure.repositories.record_repository import RecordRepository
from flexisync.shared.constants.sync_constants import SyncStatus
from flexisync.shared.exceptions.sync import CancellationError, PermanentRemoteError

ITEMS = EvidenceDescriptor(slug="items", table="flexibee_items")
W = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
NOW = datetime(2024, 1, 2, 12, 30, 15, 123456, tzinfo=timezone.utc)


def _clock():
    return NOW


def test_incremental_filter_format():
    assert build_incremental_filter(W) == "lastUpdate > '2024-01-01T00:00:00Z'"
    assert build_incremental_filter(W, lookback_s=60) == "lastUpdate > '2023-12-31T23:59:00Z'"


@pytest.mark.asyncio
async def test_first_sync_is_full_and_sets_watermark(fake_flexibee, fake_store):
    fake_flexibee.data["items"] = [{"id": i} for i in range(1, 4)]

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=2, clock=_clock)

    assert result.ok
    assert result.upserted == 3
    assert fake_store.upsert_calls == [("flexibee_items", 2), ("flexibee_items", 1)]
    assert fake_flexibee.fetches[0][1].filter == ""
    assert fake_flexibee.fetches[0][1].detail == "full"

    checkpoint = fake_store.checkpoints["items"]
    assert checkpoint.status == SyncStatus.OK
    assert checkpoint.cumulative_row_count == 3
    assert checkpoint.watermark == NOW
    assert checkpoint.error_message is None


@pytest.mark.asyncio
async def test_incremental_sync_uses_watermark_filter(fake_flexibee, fake_store):
    fake_store.checkpoints["items"] = SyncCheckpoint(
        evidence="items", watermark=W, last_attempt=W, cumulative_row_count=10
    )
    fake_flexibee.data["items"] = [{"id": 1}]

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=50, clock=_clock)

    assert result.ok
    options = fake_flexibee.fetches[0][1]
    assert options.filter == "lastUpdate > '2024-01-01T00:00:00Z'"
    assert options.limit == 50
    assert fake_store.checkpoints["items"].cumulative_row_count == 11


@pytest.mark.asyncio
async def test_permanent_error_keeps_watermark_and_count(fake_flexibee, fake_store):
    fake_store.checkpoints["items"] = SyncCheckpoint(
        evidence="items", watermark=W, last_attempt=W, cumulative_row_count=10
    )
    fake_flexibee.errors["items"] = PermanentRemoteError("status inesperado 401", status_code=401)

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=2, clock=_clock)

    assert not result.ok
    checkpoint = fake_store.checkpoints["items"]
    assert checkpoint.status == SyncStatus.ERROR
    assert checkpoint.watermark == W
    assert checkpoint.cumulative_row_count == 10
    assert checkpoint.last_attempt == NOW
    assert "401" in checkpoint.error_message
    assert fake_store.upsert_calls == []


@pytest.mark.asyncio
async def test_upsert_error_mid_stream_keeps_written_pages(fake_flexibee, fake_store):
    fake_flexibee.data["items"] = [{"id": i} for i in range(1, 6)]
    fake_store.fail_upsert_on_call = 2

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=2, clock=_clock)

    assert result.status == SyncStatus.ERROR
    assert result.upserted == 2
    assert result.error.startswith("upsert:")
    assert sorted(fake_store.tables["flexibee_items"]) == [1, 2]
    checkpoint = fake_store.checkpoints["items"]
    assert checkpoint.watermark is None
    assert checkpoint.cumulative_row_count == 0


@pytest.mark.asyncio
async def test_cancellation_is_recorded_as_error(fake_flexibee, fake_store):
    fake_flexibee.errors["items"] = CancellationError()

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=2, clock=_clock)

    assert result.status == SyncStatus.ERROR
    assert fake_store.checkpoints["items"].status == SyncStatus.ERROR


@pytest.mark.asyncio
async def test_cumulative_count_over_passes(fake_flexibee, fake_store):
    fake_flexibee.data["items"] = [{"id": 1}, {"id": 2}]

    for _ in range(3):
        await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=10, clock=_clock)

    assert fake_store.checkpoints["items"].cumulative_row_count == 6


@pytest.mark.asyncio
async def test_empty_evidence_still_advances_watermark(fake_flexibee, fake_store):
    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=10, clock=_clock)

    assert result.ok
    assert result.upserted == 0
    assert fake_store.upsert_calls == []
    assert fake_store.checkpoints["items"].watermark == NOW


@pytest.mark.asyncio
async def test_checkpoint_write_failure_is_reported(fake_flexibee, fake_store):
    fake_flexibee.data["items"] = [{"id": 1}]
    fake_store.fail_set_checkpoint = True

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=10, clock=_clock)

    assert result.status == SyncStatus.ERROR
    assert result.upserted == 1
    assert "checkpoint" in result.error


@pytest.mark.asyncio
async def test_shutdown_before_start_leaves_checkpoint_untouched(fake_flexibee, fake_store):
    previous = SyncCheckpoint(evidence="items", watermark=W, last_attempt=W, cumulative_row_count=4)
    fake_store.checkpoints["items"] = previous
    shutdown = asyncio.Event()
    shutdown.set()

    result = await sync_evidence(
        fake_flexibee, fake_store, ITEMS, batch_size=10, clock=_clock, shutdown_event=shutdown
    )

    assert not result.ok
    assert result.error == SKIPPED_BY_SHUTDOWN
    assert fake_flexibee.fetches == []
    assert fake_store.checkpoints["items"] is previous


@pytest.mark.asyncio
async def test_page_with_no_persisted_record_keeps_watermark(fake_flexibee, fake_store, fake_engine):
    columns = ColumnRegistry()
    await SchemaManager(fake_engine, columns).ensure_table(ITEMS.table, [])
    fake_store.upsert_records = RecordRepository(fake_engine, columns).upsert
    fake_store.checkpoints["items"] = SyncCheckpoint(
        evidence="items", watermark=W, last_attempt=W, cumulative_row_count=7
    )
    fake_flexibee.data["items"] = [{"id": i} for i in (1, 2, 3)]
    fake_engine.fail_ids.update({1, 2, 3})

    result = await sync_evidence(fake_flexibee, fake_store, ITEMS, batch_size=2, clock=_clock)

    assert result.status == SyncStatus.ERROR
    assert result.error.startswith("upsert:")
    checkpoint = fake_store.checkpoints["items"]
    assert checkpoint.status == SyncStatus.ERROR
    assert checkpoint.watermark == W
    assert checkpoint.cumulative_row_count == 7
    assert fake_engine.rows[ITEMS.table] == {}
