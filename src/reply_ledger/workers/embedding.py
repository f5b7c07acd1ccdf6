"""Backfills embeddings for knowledge entries that do not have one yet."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from reply_ledger.core.settings import Settings
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.embeddings import EmbeddingService
from reply_ledger.workers.base import SessionFactory, TickOutcome, Worker, done

logger = logging.getLogger(__name__)


class EmbeddingBackfiller(Worker):
    """Embeds knowledge entries in small sub-batches, one API call per sub-batch.

    A failed call counts every entry of its sub-batch as failed; those entries
    keep a NULL embedding and are picked up again next tick.
    """

    name = "embedding"

    def __init__(
        self,
        embeddings: EmbeddingService,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        super().__init__(session_factory, config)
        self.embeddings = embeddings

    async def process(self) -> TickOutcome:
        outcome = self.new_outcome()
        chunk_size = max(1, self.config.embedding_batch_size)
        with self.session_factory() as db:
            repo = QueueRepository(db)
            entries = repo.list_knowledge_without_embeddings(self.config.batch_size)
            for start in range(0, len(entries), chunk_size):
                chunk = entries[start : start + chunk_size]
                try:
                    vectors = await self.embeddings.embed_batch([e.content for e in chunk])
                except Exception as exc:
                    logger.warning(
                        "Embedding sub-batch of %d entries failed: %s", len(chunk), exc
                    )
                    for entry in chunk:
                        outcome.record_error(f"{self.name}:{entry.id}", exc)
                    continue

                try:
                    for entry, vector in zip(chunk, vectors, strict=True):
                        repo.set_knowledge_embedding(entry.id, vector)
                        outcome.record(f"{self.name}:{entry.id}", done("embedded"))
                except SQLAlchemyError:
                    db.rollback()
                    raise

        if outcome.total:
            logger.info("Embedding backfill: %s", outcome.summary())
        return outcome
