"""Copies trusted posts into the knowledge base."""

from __future__ import annotations

import logging

from reply_ledger.models.post import Post
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.workers.base import ItemResult, TickOutcome, Worker, done, run_batch

logger = logging.getLogger(__name__)


class KnowledgeIndexer(Worker):
    """Indexes unprocessed posts from trusted accounts, oldest first."""

    name = "knowledge"

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        with self.session_factory() as db:
            repo = QueueRepository(db)
            posts = repo.list_unprocessed_posts(trusted=True, limit=self.config.batch_size)
            if not posts:
                return outcome

            async def handle(post: Post) -> ItemResult:
                added = repo.add_to_knowledge_base(post.id, post.content)
                repo.mark_post_processed(post.id)
                return done("indexed" if added else "already_indexed")

            await run_batch(outcome, posts, handle, key=lambda post: post.id, session=db)

        logger.info("Knowledge indexer: %s", outcome.summary())
        return outcome
