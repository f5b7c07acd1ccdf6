"""Resubmits proof transactions that vanished from the node."""

from __future__ import annotations

import logging

from reply_ledger.core.settings import Settings
from reply_ledger.models.queue import PubQueueItem
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.blockchain import BlockchainGateway
from reply_ledger.workers.base import (
    ItemResult,
    SessionFactory,
    TickOutcome,
    Worker,
    done,
    rejected,
    run_batch,
    skipped,
)
from reply_ledger.workers.publication import duplicate_response_reason

logger = logging.getLogger(__name__)


def max_retries_reason(limit: int) -> str:
    return f"Max retries ({limit}) reached - transaction keeps disappearing"


class TxRetryHandler(Worker):
    """Looks at submitted transactions older than the grace window.

    A transaction the node still knows about is left alone (its count is
    refreshed). An unknown one is resubmitted with the same inputs unless the
    retry ceiling is reached or the contract already holds a response.
    """

    name = "tx_retry"

    def __init__(
        self,
        chain: BlockchainGateway,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        super().__init__(session_factory, config)
        self.chain = chain

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        max_retries = self.config.tx_max_retries
        height = await self.chain.current_block_height()
        with self.session_factory() as db:
            repo = QueueRepository(db)
            items = repo.list_tx_retry_candidates(
                height, self.config.tx_retry_block_delay, self.config.tx_retry_batch_size
            )

            async def retry(item: PubQueueItem) -> ItemResult:
                confirmations = await self.chain.get_transaction_confirmations(item.tx_hash)
                if confirmations is not None:
                    repo.update_tx_confirmations(item.id, confirmations)
                    return skipped("still_known")

                if item.tx_retry_count >= max_retries:
                    reason = max_retries_reason(max_retries)
                    repo.mark_failed(item.id, reason)
                    logger.error("Publication %s: %s", item.id, reason)
                    return rejected("max_retries", reason)

                if await self.chain.has_response(item.source_post_id):
                    existing = await self.chain.get_response(item.source_post_id)
                    if existing == item.reply_post_id:
                        # Our own proof is on-chain; the node is lagging on the tx lookup.
                        logger.info(
                            "Publication %s already recorded on-chain, waiting for tx %s",
                            item.id,
                            item.tx_hash,
                        )
                        return skipped("recorded_on_chain")
                    reason = duplicate_response_reason(existing)
                    repo.mark_failed(item.id, reason)
                    logger.warning("Publication %s: %s", item.id, reason)
                    return rejected("duplicate_on_chain", reason)

                tx_hash = await self.chain.submit_record_response(
                    item.reply_post_id, item.source_post_id, item.content_hash
                )
                retry_number = item.tx_retry_count + 1
                repo.record_tx_retry(item.id, tx_hash, height)
                logger.info(
                    "Publication %s resubmitted as %s (retry %d of %d)",
                    item.id,
                    tx_hash,
                    retry_number,
                    max_retries,
                )
                return done("resubmitted")

            await run_batch(outcome, items, retry, key=lambda item: item.id, session=db)

        if outcome.total:
            logger.info("Tx retry handler: %s", outcome.summary())
        return outcome
