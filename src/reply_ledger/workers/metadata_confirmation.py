"""Confirms metadata CID updates on-chain and releases superseded pins."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from reply_ledger.core.settings import Settings
from reply_ledger.models.metadata import MetadataUpdate, UnpinQueueItem
from reply_ledger.repositories.metadata_repo import MetadataRepository
from reply_ledger.services.blockchain import BlockchainGateway
from reply_ledger.services.pinning import PinningService
from reply_ledger.workers.base import (
    ItemResult,
    SessionFactory,
    TickOutcome,
    Worker,
    done,
    run_batch,
    skipped,
)

logger = logging.getLogger(__name__)


class MetadataConfirmationTracker(Worker):
    """Polls metadata update transactions across every configured chain.

    Only updates on chains with a configured gateway are loaded, so rows for
    unknown chains never crowd out the batch. When an update reaches the
    confirmation threshold its previous CID is queued for unpinning, and the
    unpin queue is drained at the end of each tick.
    """

    name = "metadata"

    def __init__(
        self,
        gateways: Mapping[int, BlockchainGateway],
        pinning: PinningService | None = None,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        super().__init__(session_factory, config)
        self.gateways = dict(gateways)
        self.pinning = pinning

    def tracked_chain_ids(self) -> list[int]:
        """Chains that have a gateway, narrowed to METADATA_CHAIN_ID when it is set."""
        chain_ids = sorted(self.gateways)
        if self.config.metadata_chain_id is not None:
            chain_ids = [c for c in chain_ids if c == self.config.metadata_chain_id]
        return chain_ids

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        threshold = self.config.confirmations_required
        with self.session_factory() as db:
            repo = MetadataRepository(db)
            updates = repo.list_pending_updates(
                self.config.metadata_batch_size, chain_ids=self.tracked_chain_ids()
            )

            async def check(update: MetadataUpdate) -> ItemResult:
                gateway = self.gateways[update.chain_id]
                confirmations = await gateway.get_transaction_confirmations(update.tx_hash)
                if confirmations is None:
                    logger.warning(
                        "Metadata tx %s (update %s) disappeared", update.tx_hash, update.id
                    )
                    return skipped("disappeared")

                repo.update_confirmations(update.id, confirmations)
                if confirmations >= threshold:
                    repo.mark_confirmed(update.id)
                    logger.info(
                        "Metadata update %s confirmed: %s -> %s",
                        update.id,
                        update.old_cid,
                        update.new_cid,
                    )
                    return done("confirmed")
                return done("pending")

            await run_batch(outcome, updates, check, key=lambda u: u.id, session=db)

            if self.pinning is not None:
                await self._drain_unpin_queue(repo, self.pinning, outcome)

        if outcome.total:
            logger.info("Metadata tracker: %s", outcome.summary())
        return outcome

    async def _drain_unpin_queue(
        self, repo: MetadataRepository, pinning: PinningService, outcome: TickOutcome
    ) -> None:
        entries = repo.list_unpin_queue(self.config.unpin_batch_size)

        async def unpin(entry: UnpinQueueItem) -> ItemResult:
            if await pinning.is_pinned(entry.cid):
                await pinning.unpin(entry.cid)
                label = "unpinned"
            else:
                logger.info("CID %s already unpinned", entry.cid)
                label = "already_unpinned"
            repo.complete_unpin(entry.cid)
            return done(label)

        await run_batch(
            outcome, entries, unpin, key=lambda entry: entry.cid, session=repo.session
        )
