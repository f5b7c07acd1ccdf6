"""Tests for transaction confirmation tracking and seal replies."""

from __future__ import annotations

import pytest

from reply_ledger.models import PubQueueItem
from reply_ledger.services.social import SocialPosterError
from reply_ledger.workers.tx_confirmation import TxConfirmationTracker, seal_text


@pytest.fixture()
def tracker(mock_chain, mock_poster, session_factory, test_settings) -> TxConfirmationTracker:
    return TxConfirmationTracker(mock_chain, mock_poster, session_factory, test_settings)


@pytest.mark.asyncio
async def test_partial_confirmations_move_row_to_confirmed(
    tracker, mock_chain, mock_poster, make_publication, db_session
) -> None:
    item = make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = 5

    await tracker.process()

    row = db_session.get(PubQueueItem, item.id)
    assert row.status == "confirmed"
    assert row.tx_confirmations == 5
    mock_poster.post_reply.assert_not_called()


@pytest.mark.asyncio
async def test_zero_confirmations_keep_status(
    tracker, mock_chain, make_publication, db_session
) -> None:
    item = make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = 0

    outcome = await tracker.process()

    assert db_session.get(PubQueueItem, item.id).status == "tx_submitted"
    assert outcome.counts["mempool"] == 1


@pytest.mark.asyncio
async def test_threshold_marks_final_and_posts_seal(
    tracker, mock_chain, mock_poster, make_publication, db_session, test_settings
) -> None:
    item = make_publication("confirmed", tx_confirmations=7)
    mock_chain.get_transaction_confirmations.return_value = 10
    mock_poster.post_reply.return_value = "seal-1"

    await tracker.process()

    row = db_session.get(PubQueueItem, item.id)
    assert row.status == "final"
    assert row.tx_confirmations == 10
    assert row.finalized_at is not None
    assert row.seal_post_id == "seal-1"
    mock_poster.post_reply.assert_awaited_once_with(
        item.reply_post_id, f"sealed at: https://explorer.example/tx/{item.tx_hash}"
    )


@pytest.mark.asyncio
async def test_seal_failure_does_not_affect_finality(
    tracker, mock_chain, mock_poster, make_publication, db_session
) -> None:
    item = make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = 12
    mock_poster.post_reply.side_effect = SocialPosterError("rate limited")

    outcome = await tracker.process()

    row = db_session.get(PubQueueItem, item.id)
    assert row.status == "final"
    assert row.seal_post_id is None
    assert outcome.failed == 0


@pytest.mark.asyncio
async def test_missing_transaction_is_left_for_retry_handler(
    tracker, mock_chain, make_publication, db_session
) -> None:
    item = make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = None

    outcome = await tracker.process()

    row = db_session.get(PubQueueItem, item.id)
    assert row.status == "tx_submitted"
    assert row.tx_confirmations == 0
    assert outcome.counts["disappeared"] == 1


@pytest.mark.asyncio
async def test_repeated_count_is_idempotent(
    tracker, mock_chain, make_publication, db_session
) -> None:
    item = make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = 3

    await tracker.process()
    await tracker.process()

    row = db_session.get(PubQueueItem, item.id)
    assert (row.status, row.tx_confirmations) == ("confirmed", 3)


@pytest.mark.asyncio
async def test_tick_checks_at_most_batch_size(
    tracker, mock_chain, make_publication
) -> None:
    for _ in range(150):
        make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = 0

    outcome = await tracker.process()

    assert mock_chain.get_transaction_confirmations.await_count == 100
    assert outcome.total == 100


def test_seal_text_strips_trailing_slash() -> None:
    assert seal_text("https://scan.example/", "0xabc") == "sealed at: https://scan.example/tx/0xabc"


@pytest.mark.asyncio
async def test_nine_confirmations_stay_below_final(
    tracker, mock_chain, mock_poster, make_publication, db_session
) -> None:
    item = make_publication("tx_submitted")
    mock_chain.get_transaction_confirmations.return_value = 9

    await tracker.process()

    row = db_session.get(PubQueueItem, item.id)
    assert (row.status, row.tx_confirmations) == ("confirmed", 9)
    assert row.finalized_at is None
    mock_poster.post_reply.assert_not_called()
