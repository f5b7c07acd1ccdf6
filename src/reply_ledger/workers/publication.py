"""Two-phase publication: post the reply, then record it on-chain.

Phase A publishes pending replies to the social network. Phase B submits the
proof transaction for published replies, guarded by an on-chain duplicate
check so a crash between submission and bookkeeping never leads to a second
value-bearing transaction for the same source post.
"""

from __future__ import annotations

import logging

from reply_ledger.core.settings import Settings
from reply_ledger.models.queue import PUB_STATUS_PENDING, PUB_STATUS_PUBLISHED, PubQueueItem
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.blockchain import BlockchainError, BlockchainGateway
from reply_ledger.services.social import SocialPoster, SocialPosterError
from reply_ledger.utils.hash import content_hash
from reply_ledger.workers.base import (
    ItemResult,
    SessionFactory,
    TickOutcome,
    Worker,
    done,
    rejected,
    run_batch,
)

logger = logging.getLogger(__name__)


def duplicate_response_reason(existing_reply_id: str) -> str:
    return f"Source post already has response on-chain: {existing_reply_id}"


class Publisher(Worker):
    """Moves publication rows from pending through published to tx_submitted."""

    name = "publication"

    def __init__(
        self,
        poster: SocialPoster,
        chain: BlockchainGateway,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        super().__init__(session_factory, config)
        self.poster = poster
        self.chain = chain

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        with self.session_factory() as db:
            repo = QueueRepository(db)
            await self._publish_pending(repo, outcome)
            await self._submit_published(repo, outcome)

        if outcome.total:
            logger.info("Publisher: %s", outcome.summary())
        return outcome

    async def _publish_pending(self, repo: QueueRepository, outcome: TickOutcome) -> None:
        items = repo.list_publications(PUB_STATUS_PENDING, self.config.batch_size)
        if not items:
            return
        if not self.poster.is_configured():
            logger.warning(
                "Social poster not configured; %d replies stay pending", len(items)
            )
            outcome.note("poster_unconfigured")
            return

        async def publish(item: PubQueueItem) -> ItemResult:
            try:
                reply_post_id = await self.poster.post_reply(
                    item.source_post_id, item.reply_content
                )
            except Exception as exc:
                # The post may exist even though the call failed; never post twice.
                detail = exc if isinstance(exc, SocialPosterError) else f"{type(exc).__name__}: {exc}"
                reason = f"X posting failed: {detail}"
                repo.mark_failed(item.id, reason)
                logger.error("Publication %s failed to post: %s", item.id, exc)
                return rejected("post_failed", reason)

            repo.mark_published(item.id, reply_post_id, content_hash(item.reply_content))
            logger.info("Publication %s posted as %s", item.id, reply_post_id)
            return done("published")

        await run_batch(outcome, items, publish, key=lambda item: item.id, session=repo.session)

    async def _submit_published(self, repo: QueueRepository, outcome: TickOutcome) -> None:
        items = repo.list_publications(PUB_STATUS_PUBLISHED, self.config.batch_size)
        if not items:
            return
        if not self.chain.can_submit:
            logger.warning(
                "Recording contract or signing key missing; %d replies wait for submission",
                len(items),
            )
            outcome.note("chain_unconfigured")
            return
        try:
            height = await self.chain.current_block_height()
        except BlockchainError as exc:
            logger.warning("Cannot read block height, skipping submissions: %s", exc)
            outcome.note("height_unavailable")
            return

        async def submit(item: PubQueueItem) -> ItemResult:
            # A failing duplicate check is transient: the row stays published.
            if await self.chain.has_response(item.source_post_id):
                existing = await self.chain.get_response(item.source_post_id)
                reason = duplicate_response_reason(existing)
                repo.mark_failed(item.id, reason)
                logger.warning("Publication %s: %s", item.id, reason)
                return rejected("duplicate_on_chain", reason)

            try:
                tx_hash = await self.chain.submit_record_response(
                    item.reply_post_id, item.source_post_id, item.content_hash
                )
            except BlockchainError as exc:
                reason = f"Blockchain tx failed: {exc}"
                repo.mark_failed(item.id, reason)
                logger.error("Publication %s: %s", item.id, reason)
                return rejected("tx_failed", reason)

            repo.mark_tx_submitted(item.id, tx_hash, height)
            logger.info("Publication %s submitted in tx %s at height %d", item.id, tx_hash, height)
            return done("tx_submitted")

        await run_batch(outcome, items, submit, key=lambda item: item.id, session=repo.session)
