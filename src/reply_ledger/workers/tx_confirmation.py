"""Tracks confirmation depth of submitted proof transactions."""

from __future__ import annotations

import logging

from reply_ledger.core.settings import Settings
from reply_ledger.models.queue import PubQueueItem
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.blockchain import BlockchainGateway
from reply_ledger.services.social import SocialPoster, SocialPosterError
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


def seal_text(explorer_url: str, tx_hash: str) -> str:
    return f"sealed at: {explorer_url.rstrip('/')}/tx/{tx_hash}"


class TxConfirmationTracker(Worker):
    """Promotes submitted transactions to confirmed and then final.

    Once a transaction is final a seal reply linking to the block explorer
    is posted under the published reply. Seal failures never affect the
    row's status.
    """

    name = "tx_confirmation"

    def __init__(
        self,
        chain: BlockchainGateway,
        poster: SocialPoster | None = None,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        super().__init__(session_factory, config)
        self.chain = chain
        self.poster = poster

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        threshold = self.config.confirmations_required
        with self.session_factory() as db:
            repo = QueueRepository(db)
            items = repo.list_tx_awaiting_confirmation(self.config.tx_confirmation_batch_size)

            async def track(item: PubQueueItem) -> ItemResult:
                confirmations = await self.chain.get_transaction_confirmations(item.tx_hash)
                if confirmations is None:
                    logger.warning(
                        "Transaction %s for publication %s disappeared", item.tx_hash, item.id
                    )
                    return skipped("disappeared")

                if confirmations >= threshold:
                    repo.mark_final(item.id, confirmations)
                    logger.info(
                        "Publication %s final with %d confirmations", item.id, confirmations
                    )
                    await self._post_seal(repo, item)
                    return done("final")

                repo.update_tx_confirmations(item.id, confirmations)
                return done("confirmed" if confirmations > 0 else "mempool")

            await run_batch(outcome, items, track, key=lambda item: item.id, session=db)

        if outcome.total:
            logger.info("Tx confirmation tracker: %s", outcome.summary())
        return outcome

    async def _post_seal(self, repo: QueueRepository, item: PubQueueItem) -> None:
        if self.poster is None or not self.poster.is_configured() or not item.reply_post_id:
            return
        try:
            seal_id = await self.poster.post_reply(
                item.reply_post_id, seal_text(self.config.explorer_url, item.tx_hash)
            )
        except SocialPosterError as exc:
            logger.warning("Seal reply for publication %s failed: %s", item.id, exc)
            return
        repo.record_seal_post(item.id, seal_id)
