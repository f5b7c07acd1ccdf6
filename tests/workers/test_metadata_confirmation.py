"""Tests for metadata update confirmation and unpinning."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from reply_ledger.models import ContentCacheEntry, MetadataUpdate, UnpinQueueItem
from reply_ledger.services.blockchain import BlockchainGateway
from reply_ledger.services.pinning import PinningError
from reply_ledger.workers.metadata_confirmation import MetadataConfirmationTracker

CHAIN_ID = 5700
OTHER_CHAIN_ID = 57


@pytest.fixture()
def gateway() -> AsyncMock:
    return AsyncMock(spec=BlockchainGateway)


@pytest.fixture()
def tracker(gateway, mock_pinning, session_factory, test_settings) -> MetadataConfirmationTracker:
    return MetadataConfirmationTracker(
        {CHAIN_ID: gateway}, mock_pinning, session_factory, test_settings
    )


def _update(metadata_repo, tx_hash: str = "0xmeta", **overrides) -> MetadataUpdate:
    fields = {
        "chain_id": CHAIN_ID,
        "tx_hash": tx_hash,
        "new_cid": "bafy-new",
        "old_cid": "bafy-old",
        "project_address": "0xproject",
    }
    fields.update(overrides)
    return metadata_repo.record_update(**fields)


@pytest.mark.asyncio
async def test_confirmed_update_queues_old_cid_for_unpin(
    tracker, gateway, mock_pinning, metadata_repo, db_session
) -> None:
    update = _update(metadata_repo)
    gateway.get_transaction_confirmations.return_value = 10
    mock_pinning.is_pinned.return_value = True
    mock_pinning.unpin.return_value = True
    metadata_repo.cache_content("bafy-old", '{"name": "v1"}')

    outcome = await tracker.process()

    row = db_session.get(MetadataUpdate, update.id)
    assert row.confirmed is True
    assert row.confirmations == 10
    mock_pinning.unpin.assert_awaited_once_with("bafy-old")
    assert db_session.query(UnpinQueueItem).count() == 0
    assert db_session.get(ContentCacheEntry, "bafy-old") is None
    assert outcome.counts["confirmed"] == 1
    assert outcome.counts["unpinned"] == 1


@pytest.mark.asyncio
async def test_unpin_reason_depends_on_update_kind(
    gateway, metadata_repo, session_factory, test_settings, db_session
) -> None:
    tracker = MetadataConfirmationTracker({CHAIN_ID: gateway}, None, session_factory, test_settings)
    _update(metadata_repo, "0x1", old_cid="bafy-project")
    _update(metadata_repo, "0x2", old_cid="bafy-iteration", project_address=None, iteration_number=3)
    gateway.get_transaction_confirmations.return_value = 11

    await tracker.process()

    reasons = {item.cid: item.reason for item in db_session.query(UnpinQueueItem).all()}
    assert reasons == {"bafy-project": "project_update", "bafy-iteration": "iteration_update"}


@pytest.mark.asyncio
async def test_below_threshold_only_records_count(
    tracker, gateway, metadata_repo, db_session
) -> None:
    update = _update(metadata_repo)
    gateway.get_transaction_confirmations.return_value = 4

    await tracker.process()

    row = db_session.get(MetadataUpdate, update.id)
    assert (row.confirmed, row.confirmations) == (False, 4)
    assert db_session.query(UnpinQueueItem).count() == 0


@pytest.mark.asyncio
async def test_unknown_chain_rows_do_not_crowd_out_configured_chains(
    tracker, gateway, metadata_repo, db_session
) -> None:
    for index in range(100):
        _update(metadata_repo, f"0xother{index}", chain_id=OTHER_CHAIN_ID)
    tracked = _update(metadata_repo, "0xtracked", old_cid=None)
    gateway.get_transaction_confirmations.return_value = 10

    outcome = await tracker.process()

    gateway.get_transaction_confirmations.assert_awaited_once_with("0xtracked")
    assert db_session.get(MetadataUpdate, tracked.id).confirmed is True
    assert outcome.total == 1
    assert metadata_repo.counts() == (100, 0)


@pytest.mark.asyncio
async def test_nine_confirmations_stay_unconfirmed(
    tracker, gateway, metadata_repo, db_session
) -> None:
    update = _update(metadata_repo)
    gateway.get_transaction_confirmations.return_value = 9

    await tracker.process()

    row = db_session.get(MetadataUpdate, update.id)
    assert (row.confirmed, row.confirmations) == (False, 9)
    assert db_session.query(UnpinQueueItem).count() == 0

    gateway.get_transaction_confirmations.return_value = 10
    await tracker.process()

    assert db_session.get(MetadataUpdate, update.id).confirmed is True


@pytest.mark.asyncio
async def test_tick_checks_at_most_batch_size(tracker, gateway, metadata_repo) -> None:
    for index in range(150):
        _update(metadata_repo, f"0xmeta{index}")
    gateway.get_transaction_confirmations.return_value = 0

    outcome = await tracker.process()

    assert gateway.get_transaction_confirmations.await_count == 100
    assert outcome.total == 100


@pytest.mark.asyncio
async def test_missing_transaction_leaves_update_untouched(
    tracker, gateway, metadata_repo, db_session
) -> None:
    update = _update(metadata_repo)
    gateway.get_transaction_confirmations.return_value = None

    await tracker.process()

    row = db_session.get(MetadataUpdate, update.id)
    assert (row.confirmed, row.confirmations) == (False, 0)


@pytest.mark.asyncio
async def test_already_unpinned_cid_is_dequeued(
    tracker, mock_pinning, metadata_repo, db_session
) -> None:
    metadata_repo.queue_for_unpin("bafy-gone", "project_update")
    mock_pinning.is_pinned.return_value = False

    outcome = await tracker.process()

    mock_pinning.unpin.assert_not_called()
    assert db_session.query(UnpinQueueItem).count() == 0
    assert outcome.counts["already_unpinned"] == 1


@pytest.mark.asyncio
async def test_pinning_error_keeps_entry_queued(
    tracker, mock_pinning, metadata_repo, db_session
) -> None:
    metadata_repo.queue_for_unpin("bafy-stuck")
    mock_pinning.is_pinned.side_effect = PinningError("connection refused")

    outcome = await tracker.process()

    assert [item.cid for item in db_session.query(UnpinQueueItem).all()] == ["bafy-stuck"]
    assert outcome.failed == 1


@pytest.mark.asyncio
async def test_chain_filter_limits_tracked_updates(
    gateway, metadata_repo, session_factory, test_settings
) -> None:
    other_gateway = AsyncMock(spec=BlockchainGateway)
    config = test_settings.model_copy(update={"metadata_chain_id": CHAIN_ID})
    tracker = MetadataConfirmationTracker(
        {CHAIN_ID: gateway, OTHER_CHAIN_ID: other_gateway}, None, session_factory, config
    )
    _update(metadata_repo, "0xa")
    _update(metadata_repo, "0xb", chain_id=OTHER_CHAIN_ID)
    gateway.get_transaction_confirmations.return_value = 1

    outcome = await tracker.process()

    other_gateway.get_transaction_confirmations.assert_not_called()
    assert outcome.total == 1


def test_queue_for_unpin_is_idempotent(metadata_repo) -> None:
    assert metadata_repo.queue_for_unpin("bafy-x") is True
    assert metadata_repo.queue_for_unpin("bafy-x") is False
    assert metadata_repo.counts() == (0, 1)


def test_mark_confirmed_twice_is_a_no_op(metadata_repo, db_session) -> None:
    update = _update(metadata_repo)

    metadata_repo.mark_confirmed(update.id)
    metadata_repo.mark_confirmed(update.id)

    assert db_session.query(UnpinQueueItem).count() == 1
    assert metadata_repo.get_update("0xmeta").confirmed is True
