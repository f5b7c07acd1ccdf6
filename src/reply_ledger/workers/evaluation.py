"""Evaluation stage: decides which posts deserve an AI reply."""

from __future__ import annotations

import logging

from reply_ledger.core.settings import Settings
from reply_ledger.models.post import Post
from reply_ledger.models.queue import DECISION_IGNORE, EvalQueueItem
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.ai_client import AIClient
from reply_ledger.services.embeddings import EmbeddingService
from reply_ledger.workers.base import (
    ItemResult,
    SessionFactory,
    TickOutcome,
    Worker,
    done,
    is_own_post,
    relevant_knowledge,
    run_batch,
    skipped,
)

logger = logging.getLogger(__name__)

OWN_POST_REASONING = "Post authored by the pipeline's own account"


class Evaluator(Worker):
    """Queues new community posts and asks the AI whether to respond.

    Posts written by the bot account, including seal replies, are never
    evaluated so the pipeline cannot end up answering itself.
    """

    name = "evaluation"

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

    def _is_self_authored(self, repo: QueueRepository, post: Post) -> bool:
        return is_own_post(post.author_username, self.config.bot_username) or repo.is_seal_post(
            post.id
        )

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        with self.session_factory() as db:
            repo = QueueRepository(db)

            async def enqueue(post: Post) -> ItemResult:
                if self._is_self_authored(repo, post):
                    repo.mark_post_processed(post.id)
                    return skipped("own_post")
                repo.enqueue_evaluation(post.id)
                repo.mark_post_processed(post.id)
                return done("queued")

            async def evaluate(item: EvalQueueItem) -> ItemResult:
                post = repo.get_post(item.post_id)
                if post is None:
                    raise LookupError(f"post {item.post_id} not found")
                if self._is_self_authored(repo, post):
                    repo.record_evaluation(item.id, DECISION_IGNORE, OWN_POST_REASONING)
                    return skipped("own_post")

                context = repo.get_thread_context(post.id)
                knowledge = await relevant_knowledge(
                    repo,
                    self.embeddings,
                    post.content,
                    top_k=self.config.knowledge_top_k,
                    min_similarity=self.config.knowledge_min_similarity,
                )
                result = await self.ai.evaluate(post, context, knowledge)
                repo.record_evaluation(item.id, result.decision, result.reasoning)
                logger.info("Post %s evaluated: %s", post.id, result.decision)
                return done(result.decision.lower())

            posts = repo.list_unprocessed_posts(trusted=False, limit=self.config.batch_size)
            await run_batch(outcome, posts, enqueue, key=lambda post: post.id, session=db)

            items = repo.list_pending_evaluations(self.config.batch_size)
            await run_batch(outcome, items, evaluate, key=lambda item: item.id, session=db)

        if outcome.total:
            logger.info("Evaluator: %s", outcome.summary())
        return outcome
