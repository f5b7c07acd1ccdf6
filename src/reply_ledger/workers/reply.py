"""Reply generation stage."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from reply_ledger.core.settings import Settings
from reply_ledger.models.queue import ReplyQueueItem
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.ai_client import AIClient, clamp_reply
from reply_ledger.services.embeddings import EmbeddingService
from reply_ledger.workers.base import (
    ItemResult,
    SessionFactory,
    TickOutcome,
    Worker,
    done,
    relevant_knowledge,
    run_batch,
)

logger = logging.getLogger(__name__)


class ReplyGenerator(Worker):
    """Drafts replies for posts the evaluator chose to answer."""

    name = "reply"

    def __init__(
        self,
        ai: AIClient,
        embeddings: EmbeddingService | None = None,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        super().__init__(session_factory, config)
        self.ai = ai
        self.embeddings = embeddings

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        with self.session_factory() as db:
            repo = QueueRepository(db)
            # Ticks never overlap, so anything still generating was interrupted.
            recovered = repo.reset_stale_generating()
            if recovered:
                logger.warning("Reset %d interrupted reply items to pending", recovered)
                outcome.note("recovered", recovered)

            async def generate(item: ReplyQueueItem) -> ItemResult:
                repo.mark_reply_generating(item.id)
                try:
                    post = repo.get_post(item.post_id)
                    if post is None:
                        raise LookupError(f"post {item.post_id} not found")
                    context = repo.get_thread_context(post.id)
                    knowledge = await relevant_knowledge(
                        repo,
                        self.embeddings,
                        post.content,
                        top_k=self.config.knowledge_top_k,
                        min_similarity=self.config.knowledge_min_similarity,
                    )
                    result = await self.ai.generate_reply(post, context, knowledge)
                    publication = repo.complete_reply(item.id, clamp_reply(result.content))
                except SQLAlchemyError:
                    raise
                except Exception:
                    repo.reset_reply_pending(item.id)
                    raise
                logger.info(
                    "Reply generated for post %s, queued as publication %s",
                    item.post_id,
                    publication.id,
                )
                return done("generated")

            items = repo.list_pending_replies(self.config.batch_size)
            await run_batch(outcome, items, generate, key=lambda item: item.id, session=db)

        if outcome.total:
            logger.info("Reply generator: %s", outcome.summary())
        return outcome
