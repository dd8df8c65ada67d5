"""Repository tests against a temporary SQLite database.

Tests focus on:
- get_or_create idempotency (no duplicate rows, no mutation)
- Stage persistence helpers and their status transitions
- Retry candidate selection (budget, recency window, ordering)
- Listing and statistics queries
- Watcher checkpoint upsert
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select, update

from fishit.core.timezone import UTCDateTime, utcnow
from fishit.models.mint_record import InvalidStateTransition, MintRecord, MintStatus
from fishit.models.watcher_checkpoint import WatcherCheckpoint
from fishit.repositories.mint_record import MintRecordRepository
from fishit.repositories.watcher_checkpoint import WatcherCheckpointRepository
from fishit.services.exceptions import MintRecordNotFoundError
from fishit.services.interfaces import StorageRefs

REFS = StorageRefs(
    image_ref="bafyimage",
    metadata_ref="bafymeta",
    metadata_uri="ipfs://bafymeta",
)


async def _count(session) -> int:
    result = await session.execute(select(func.count()).select_from(MintRecord))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(session, make_event):
    """Second call with the same item returns the existing row and changes nothing."""
    repo = MintRecordRepository(session)

    record, created = await repo.get_or_create(make_event(42))
    await session.commit()
    assert created is True
    assert record.status == MintStatus.PENDING
    assert record.retry_count == 0

    # Same item, different attributes: must not overwrite
    duplicate, created_again = await repo.get_or_create(make_event(42, tier="Legendary"))
    await session.commit()

    assert created_again is False
    assert duplicate.id == record.id
    assert duplicate.tier == "Rare"
    assert duplicate.updated_at == record.updated_at
    assert await _count(session) == 1


@pytest.mark.asyncio
async def test_get_or_create_keeps_progress_of_existing_record(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(7))
    await repo.update_status(7, MintStatus.GENERATING)
    await repo.save_image_artifact(7, b"png-bytes")
    await session.commit()

    record, created = await repo.get_or_create(make_event(7))

    assert created is False
    assert record.status == MintStatus.GENERATED
    assert record.image_data == b"png-bytes"


@pytest.mark.asyncio
async def test_get_raises_when_missing(session):
    repo = MintRecordRepository(session)

    assert await repo.get_by_item_id(999) is None
    with pytest.raises(MintRecordNotFoundError) as exc_info:
        await repo.get(999)
    assert exc_info.value.item_id == 999


@pytest.mark.asyncio
async def test_stage_helpers_walk_the_lifecycle(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(42))

    await repo.update_status(42, MintStatus.GENERATING)
    record = await repo.save_image_artifact(42, b"png-bytes")
    assert record.status == MintStatus.GENERATED
    assert record.image_data == b"png-bytes"

    await repo.update_status(42, MintStatus.UPLOADING)
    record = await repo.save_storage_refs(42, REFS)
    assert record.status == MintStatus.UPLOADED
    assert record.storage_image_ref == "bafyimage"
    assert record.storage_metadata_ref == "bafymeta"
    assert record.storage_metadata_uri == "ipfs://bafymeta"
    assert record.image_data is None  # cleared together with the refs

    await repo.update_status(42, MintStatus.FINALIZING)
    record = await repo.mark_completed(42, "0xfinal")
    assert record.status == MintStatus.COMPLETED
    assert record.finalize_tx_ref == "0xfinal"
    assert record.completed_at is not None


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_aware_utc(uow_factory, make_event):
    async with await uow_factory() as uow:
        await uow.mint_records.get_or_create(make_event(42))
        await uow.mint_records.update_status(42, MintStatus.GENERATING)
        await uow.mint_records.save_image_artifact(42, b"png-bytes")
        await uow.mint_records.update_status(42, MintStatus.UPLOADING)
        await uow.mint_records.save_storage_refs(42, REFS)
        await uow.mint_records.update_status(42, MintStatus.FINALIZING)
        written = await uow.mint_records.mark_completed(42, "0xfinal")
        written_times = (written.created_at, written.updated_at, written.completed_at)
        await uow.checkpoints.raise_to("fish_caught", 100)

    async with await uow_factory() as uow:
        stored = await uow.mint_records.get(42)
        checkpoint = await uow.session.get(WatcherCheckpoint, "fish_caught")

    assert (stored.created_at, stored.updated_at, stored.completed_at) == written_times
    for value in (*written_times, checkpoint.updated_at):
        assert value.utcoffset() == timedelta(0)
    assert stored.created_at <= stored.updated_at
    assert stored.created_at <= stored.completed_at


def test_naive_datetime_is_rejected_on_bind():
    with pytest.raises(ValueError, match="Naive datetime"):
        UTCDateTime().process_bind_param(datetime(2026, 1, 1), None)


@pytest.mark.asyncio
async def test_update_status_rejects_invalid_transition(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(42))

    with pytest.raises(InvalidStateTransition):
        await repo.update_status(42, MintStatus.COMPLETED)


@pytest.mark.asyncio
async def test_save_image_artifact_rejects_empty_image(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(42))
    await repo.update_status(42, MintStatus.GENERATING)

    with pytest.raises(ValueError, match="empty"):
        await repo.save_image_artifact(42, b"")


@pytest.mark.asyncio
async def test_record_failure_sets_failed_error_and_increments(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(42))
    await repo.update_status(42, MintStatus.GENERATING)

    record = await repo.record_failure(42, "x" * 1500)

    assert record.status == MintStatus.FAILED
    assert record.retry_count == 1
    assert len(record.last_error) == 1000


@pytest.mark.asyncio
async def test_increment_retry(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(42))

    assert await repo.increment_retry(42) == 1
    assert await repo.increment_retry(42) == 2

    with pytest.raises(MintRecordNotFoundError):
        await repo.increment_retry(999)


@pytest.mark.asyncio
async def test_select_retry_candidates_respects_budget_and_window(session, make_event):
    repo = MintRecordRepository(session)
    for item_id in (1, 2, 3, 4, 5):
        await repo.get_or_create(make_event(item_id))

    # 2: completed, never a candidate
    for status in (
        MintStatus.GENERATING,
        MintStatus.GENERATED,
        MintStatus.UPLOADING,
        MintStatus.UPLOADED,
        MintStatus.FINALIZING,
        MintStatus.COMPLETED,
    ):
        await repo.update_status(2, status)

    # 3: retry budget exhausted (retry_count == max_retries)
    await repo.update_status(3, MintStatus.GENERATING)
    await repo.record_failure(3, "boom")
    await session.execute(
        update(MintRecord).where(MintRecord.item_id == 3).values(retry_count=5)
    )

    # 4: failed but within budget
    await repo.update_status(4, MintStatus.GENERATING)
    await repo.record_failure(4, "boom")

    # 5: too old
    await session.execute(
        update(MintRecord)
        .where(MintRecord.item_id == 5)
        .values(created_at=utcnow() - timedelta(hours=25))
    )

    # 1 oldest of the remaining candidates
    await session.execute(
        update(MintRecord)
        .where(MintRecord.item_id == 1)
        .values(created_at=utcnow() - timedelta(hours=2))
    )
    await session.commit()

    candidates = await repo.select_retry_candidates(5, timedelta(hours=24))

    assert [record.item_id for record in candidates] == [1, 4]


@pytest.mark.asyncio
async def test_select_retry_candidates_includes_in_progress_statuses(session, make_event):
    """A crash leaves records in-progress, the sweep must pick them up."""
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(10))
    await repo.update_status(10, MintStatus.GENERATING)
    await session.commit()

    candidates = await repo.select_retry_candidates(5, timedelta(hours=24))

    assert [(r.item_id, r.status) for r in candidates] == [(10, MintStatus.GENERATING)]


@pytest.mark.asyncio
async def test_list_by_owner_is_case_insensitive(session, make_event):
    repo = MintRecordRepository(session)
    owner = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0"
    await repo.get_or_create(make_event(1, owner_address=owner))
    await repo.get_or_create(make_event(2, owner_address=owner))
    await repo.get_or_create(
        make_event(3, owner_address="0x0000000000000000000000000000000000000001")
    )
    await session.commit()

    records = await repo.list_by_owner(owner.lower(), limit=10)

    assert {record.item_id for record in records} == {1, 2}


@pytest.mark.asyncio
async def test_list_by_owner_filters_status_before_limit(session, make_event):
    repo = MintRecordRepository(session)
    for item_id in (1, 2, 3):
        await repo.get_or_create(make_event(item_id))
    await repo.update_status(1, MintStatus.GENERATING)
    await session.commit()

    records = await repo.list_by_owner(
        make_event().owner_address, limit=1, status=MintStatus.GENERATING
    )

    assert [record.item_id for record in records] == [1]
    assert len(await repo.list_by_owner(make_event().owner_address, limit=2)) == 2


@pytest.mark.asyncio
async def test_list_by_status_and_stats(session, make_event):
    repo = MintRecordRepository(session)
    await repo.get_or_create(make_event(1, tier="Rare"))
    await repo.get_or_create(make_event(2, tier="Rare"))
    await repo.get_or_create(make_event(3, tier="Epic"))
    await repo.update_status(3, MintStatus.GENERATING)
    await session.commit()

    pending = await repo.list_by_status(MintStatus.PENDING)
    assert {record.item_id for record in pending} == {1, 2}

    stats = await repo.get_stats()
    assert {"status": "pending", "tier": "Rare", "count": 2} in stats
    assert {"status": "generating", "tier": "Epic", "count": 1} in stats
    assert sum(row["count"] for row in stats) == 3


@pytest.mark.asyncio
async def test_watcher_checkpoint_upsert_only_raises(session):
    """raise_to inserts, raises, and never lowers the stored block."""
    repo = WatcherCheckpointRepository(session)

    assert await repo.get_block("fish_caught") is None
    assert await repo.raise_to("fish_caught", 100) == 100
    assert await repo.raise_to("fish_caught", 250) == 250
    assert await repo.raise_to("fish_caught", 90) == 250
    await session.commit()

    assert await repo.get_block("fish_caught") == 250
    assert await repo.get_block("other") is None
