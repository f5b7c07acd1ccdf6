"""Data access helpers for the post, knowledge and pipeline queue tables."""
from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reply_ledger.db.time import next_timestamp, now_ms
from reply_ledger.models.post import KnowledgeBaseEntry, Post
from reply_ledger.models.queue import (
    DECISION_RESPOND,
    PUB_STATUS_CONFIRMED,
    PUB_STATUS_FAILED,
    PUB_STATUS_FINAL,
    PUB_STATUS_PENDING,
    PUB_STATUS_PUBLISHED,
    PUB_STATUS_TX_SUBMITTED,
    PUB_STATUSES_IN_FLIGHT,
    QUEUE_STATUS_DONE,
    QUEUE_STATUS_GENERATING,
    QUEUE_STATUS_PENDING,
    EvalQueueItem,
    PubQueueItem,
    ReplyQueueItem,
    VerificationRecord,
)
from reply_ledger.schemas.status import QueueCounts

__all__ = ["QueueRepository", "InvalidTransition"]


class InvalidTransition(RuntimeError):
    """Raised when a publication row is not in the status a transition expects."""


def _touch(row: object) -> None:
    row.updated_at = next_timestamp(row.updated_at)  # type: ignore[attr-defined]


class QueueRepository:
    """Thin wrapper around the pipeline tables.

    Every write method touches a single primary key (plus the row it hands
    off to the next stage) and commits before returning.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    # Posts -----------------------------------------------------------------

    def get_post(self, post_id: str) -> Post | None:
        """Return a post by identifier."""
        return self.session.get(Post, post_id)

    def get_thread_context(self, post_id: str, limit: int = 5) -> list[str]:
        """Return recent messages of the post's conversation, newest first.

        Each entry is formatted as ``@author: content``.
        """
        post = self.get_post(post_id)
        if post is None:
            return []
        rows = self.session.execute(
            select(Post.author_username, Post.content)
            .where(Post.conversation_id == post.conversation_id)
            .order_by(Post.posted_at.desc(), Post.id.desc())
            .limit(limit)
        ).all()
        return [f"@{author}: {content}" for author, content in rows]

    def list_unprocessed_posts(self, *, trusted: bool, limit: int) -> list[Post]:
        """Return posts nobody has routed yet, oldest first."""
        result = self.session.execute(
            select(Post)
            .where(Post.processed_at.is_(None), Post.is_trusted.is_(trusted))
            .order_by(Post.posted_at, Post.id)
            .limit(limit)
        )
        return list(result.scalars())

    def mark_post_processed(self, post_id: str) -> None:
        """Stamp ``processed_at`` so indexers skip the post from now on."""
        post = self.get_post(post_id)
        if post is None or post.processed_at is not None:
            return
        post.processed_at = now_ms()
        self.session.commit()

    def is_seal_post(self, post_id: str) -> bool:
        """Return True when ``post_id`` is a seal reply the pipeline posted itself."""
        stmt = select(PubQueueItem.id).where(PubQueueItem.seal_post_id == post_id).limit(1)
        return self.session.execute(stmt).first() is not None

    # Knowledge base --------------------------------------------------------

    def add_to_knowledge_base(self, post_id: str, content: str) -> bool:
        """Insert a knowledge entry unless the post is already present."""
        existing = self.session.execute(
            select(KnowledgeBaseEntry.id).where(KnowledgeBaseEntry.post_id == post_id)
        ).first()
        if existing is not None:
            return False
        created = now_ms()
        self.session.add(
            KnowledgeBaseEntry(
                post_id=post_id, content=content, created_at=created, updated_at=created
            )
        )
        self.session.commit()
        return True

    def list_knowledge_without_embeddings(self, limit: int) -> list[KnowledgeBaseEntry]:
        result = self.session.execute(
            select(KnowledgeBaseEntry)
            .where(KnowledgeBaseEntry.embedding.is_(None))
            .order_by(KnowledgeBaseEntry.created_at, KnowledgeBaseEntry.id)
            .limit(limit)
        )
        return list(result.scalars())

    def set_knowledge_embedding(self, entry_id: int, embedding: Sequence[float]) -> None:
        entry = self.session.get(KnowledgeBaseEntry, entry_id)
        if entry is None:
            return
        entry.embedding = [float(value) for value in embedding]
        _touch(entry)
        self.session.commit()

    def list_knowledge_with_embeddings(self) -> list[KnowledgeBaseEntry]:
        result = self.session.execute(
            select(KnowledgeBaseEntry)
            .where(KnowledgeBaseEntry.embedding.is_not(None))
            .order_by(KnowledgeBaseEntry.created_at, KnowledgeBaseEntry.id)
        )
        return list(result.scalars())

    def list_recent_knowledge(self, limit: int = 5) -> list[str]:
        """Return the content of the newest knowledge entries."""
        result = self.session.execute(
            select(KnowledgeBaseEntry.content)
            .order_by(KnowledgeBaseEntry.created_at.desc(), KnowledgeBaseEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars())

    # Evaluation queue ------------------------------------------------------

    def enqueue_evaluation(self, post_id: str) -> bool:
        """Queue a post for evaluation; a post is never queued twice."""
        existing = self.session.execute(
            select(EvalQueueItem.id).where(EvalQueueItem.post_id == post_id)
        ).first()
        if existing is not None:
            return False
        created = now_ms()
        self.session.add(
            EvalQueueItem(
                post_id=post_id,
                status=QUEUE_STATUS_PENDING,
                created_at=created,
                updated_at=created,
            )
        )
        self.session.commit()
        return True

    def list_pending_evaluations(self, limit: int) -> list[EvalQueueItem]:
        result = self.session.execute(
            select(EvalQueueItem)
            .where(EvalQueueItem.status == QUEUE_STATUS_PENDING)
            .order_by(EvalQueueItem.created_at, EvalQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars())

    def record_evaluation(self, item_id: int, decision: str, reasoning: str) -> None:
        """Store the decision and, on RESPOND, queue the reply in the same commit."""
        item = self.session.get(EvalQueueItem, item_id)
        if item is None:
            raise LookupError(f"eval_queue item {item_id} not found")
        timestamp = next_timestamp(item.updated_at)
        item.status = QUEUE_STATUS_DONE
        item.decision = decision
        item.reasoning = reasoning
        item.evaluated_at = timestamp
        item.updated_at = timestamp

        if decision == DECISION_RESPOND:
            existing = self.session.execute(
                select(ReplyQueueItem.id).where(ReplyQueueItem.post_id == item.post_id)
            ).first()
            if existing is None:
                created = now_ms()
                self.session.add(
                    ReplyQueueItem(
                        post_id=item.post_id,
                        status=QUEUE_STATUS_PENDING,
                        created_at=created,
                        updated_at=created,
                    )
                )
        self.session.commit()

    # Reply queue -----------------------------------------------------------

    def list_pending_replies(self, limit: int) -> list[ReplyQueueItem]:
        result = self.session.execute(
            select(ReplyQueueItem)
            .where(ReplyQueueItem.status == QUEUE_STATUS_PENDING)
            .order_by(ReplyQueueItem.created_at, ReplyQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars())

    def _get_reply(self, item_id: int) -> ReplyQueueItem:
        item = self.session.get(ReplyQueueItem, item_id)
        if item is None:
            raise LookupError(f"reply_queue item {item_id} not found")
        return item

    def mark_reply_generating(self, item_id: int) -> None:
        item = self._get_reply(item_id)
        item.status = QUEUE_STATUS_GENERATING
        _touch(item)
        self.session.commit()

    def reset_reply_pending(self, item_id: int) -> None:
        item = self._get_reply(item_id)
        item.status = QUEUE_STATUS_PENDING
        _touch(item)
        self.session.commit()

    def reset_stale_generating(self) -> int:
        """Return rows left in ``generating`` by an interrupted tick to ``pending``."""
        stale = list(
            self.session.execute(
                select(ReplyQueueItem).where(ReplyQueueItem.status == QUEUE_STATUS_GENERATING)
            ).scalars()
        )
        for item in stale:
            item.status = QUEUE_STATUS_PENDING
            _touch(item)
        if stale:
            self.session.commit()
        return len(stale)

    def complete_reply(self, item_id: int, content: str) -> PubQueueItem:
        """Store the generated text and queue it for publication in one commit."""
        item = self._get_reply(item_id)
        timestamp = next_timestamp(item.updated_at)
        item.status = QUEUE_STATUS_DONE
        item.reply_content = content
        item.generated_at = timestamp
        item.updated_at = timestamp

        created = now_ms()
        publication = PubQueueItem(
            source_post_id=item.post_id,
            reply_content=content,
            status=PUB_STATUS_PENDING,
            tx_retry_count=0,
            tx_confirmations=0,
            created_at=created,
            updated_at=created,
        )
        self.session.add(publication)
        self.session.commit()
        return publication

    # Publication queue -----------------------------------------------------

    def list_publications(self, status: str, limit: int) -> list[PubQueueItem]:
        result = self.session.execute(
            select(PubQueueItem)
            .where(PubQueueItem.status == status)
            .order_by(PubQueueItem.created_at, PubQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars())

    def get_publication(self, item_id: int) -> PubQueueItem | None:
        return self.session.get(PubQueueItem, item_id)

    def _get_publication(self, item_id: int, *expected: str) -> PubQueueItem:
        item = self.get_publication(item_id)
        if item is None:
            raise LookupError(f"pub_queue item {item_id} not found")
        if expected and item.status not in expected:
            raise InvalidTransition(
                f"pub_queue item {item_id} is {item.status!r}, expected one of {expected}"
            )
        return item

    def mark_published(self, item_id: int, reply_post_id: str, content_hash: str) -> None:
        item = self._get_publication(item_id, PUB_STATUS_PENDING)
        timestamp = next_timestamp(item.updated_at)
        item.status = PUB_STATUS_PUBLISHED
        item.reply_post_id = reply_post_id
        item.content_hash = content_hash
        item.published_at = timestamp
        item.updated_at = timestamp
        self.session.commit()

    def mark_tx_submitted(self, item_id: int, tx_hash: str, tx_sent_height: int | None) -> None:
        """Record the submitted transaction and append its verification record."""
        item = self._get_publication(item_id, PUB_STATUS_PUBLISHED)
        item.status = PUB_STATUS_TX_SUBMITTED
        item.tx_hash = tx_hash
        item.tx_sent_height = tx_sent_height
        _touch(item)
        self.session.add(
            VerificationRecord(
                reply_post_id=item.reply_post_id,
                content_hash=item.content_hash,
                tx_hash=tx_hash,
                created_at=now_ms(),
            )
        )
        self.session.commit()

    def update_tx_confirmations(self, item_id: int, confirmations: int) -> None:
        """Persist a confirmation count; a first confirmation moves the row to confirmed.

        Calling this again with the same count leaves the status unchanged.
        """
        item = self._get_publication(item_id, *PUB_STATUSES_IN_FLIGHT)
        item.tx_confirmations = confirmations
        if confirmations >= 1 and item.status == PUB_STATUS_TX_SUBMITTED:
            item.status = PUB_STATUS_CONFIRMED
        _touch(item)
        self.session.commit()

    def mark_final(self, item_id: int, confirmations: int) -> None:
        item = self._get_publication(item_id, *PUB_STATUSES_IN_FLIGHT)
        timestamp = next_timestamp(item.updated_at)
        item.status = PUB_STATUS_FINAL
        item.tx_confirmations = confirmations
        item.finalized_at = timestamp
        item.updated_at = timestamp
        self.session.commit()

    def record_seal_post(self, item_id: int, seal_post_id: str) -> None:
        item = self._get_publication(item_id, PUB_STATUS_FINAL)
        item.seal_post_id = seal_post_id
        _touch(item)
        self.session.commit()

    def record_tx_retry(self, item_id: int, tx_hash: str, tx_sent_height: int | None) -> None:
        """Replace the transaction of a resubmitted row and bump its retry count."""
        item = self._get_publication(item_id, PUB_STATUS_TX_SUBMITTED)
        item.tx_hash = tx_hash
        item.tx_sent_height = tx_sent_height
        item.tx_retry_count = (item.tx_retry_count or 0) + 1
        _touch(item)
        self.session.add(
            VerificationRecord(
                reply_post_id=item.reply_post_id,
                content_hash=item.content_hash,
                tx_hash=tx_hash,
                created_at=now_ms(),
            )
        )
        self.session.commit()

    def mark_failed(self, item_id: int, reason: str) -> None:
        item = self._get_publication(item_id)
        if item.status in (PUB_STATUS_FINAL, PUB_STATUS_FAILED):
            raise InvalidTransition(f"pub_queue item {item_id} is already {item.status!r}")
        item.status = PUB_STATUS_FAILED
        item.failure_reason = reason
        _touch(item)
        self.session.commit()

    def list_tx_awaiting_confirmation(self, limit: int) -> list[PubQueueItem]:
        """Return rows whose transaction has not reached finality yet."""
        result = self.session.execute(
            select(PubQueueItem)
            .where(PubQueueItem.status.in_(PUB_STATUSES_IN_FLIGHT))
            .order_by(PubQueueItem.created_at, PubQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars())

    def list_tx_retry_candidates(
        self, current_height: int, grace_blocks: int, limit: int
    ) -> list[PubQueueItem]:
        """Return submitted rows whose grace window has elapsed."""
        result = self.session.execute(
            select(PubQueueItem)
            .where(
                PubQueueItem.status == PUB_STATUS_TX_SUBMITTED,
                PubQueueItem.tx_sent_height.is_not(None),
                PubQueueItem.tx_sent_height + grace_blocks <= current_height,
            )
            .order_by(PubQueueItem.created_at, PubQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars())

    # Stats -----------------------------------------------------------------

    def _count_by_status(self, model: type) -> QueueCounts:
        rows = self.session.execute(
            select(model.status, func.count()).group_by(model.status)
        ).all()
        by_status = {status: count for status, count in rows}
        return QueueCounts(total=sum(by_status.values()), by_status=by_status)

    def queue_stats(self) -> dict[str, QueueCounts]:
        """Return row counts per status for each pipeline queue."""
        return {
            "evaluation": self._count_by_status(EvalQueueItem),
            "reply": self._count_by_status(ReplyQueueItem),
            "publication": self._count_by_status(PubQueueItem),
        }

    def verification_records(self, reply_post_ids: Iterable[str]) -> list[VerificationRecord]:
        """Return audit records for the given reply posts in insertion order."""
        result = self.session.execute(
            select(VerificationRecord)
            .where(VerificationRecord.reply_post_id.in_(list(reply_post_ids)))
            .order_by(VerificationRecord.id)
        )
        return list(result.scalars())
