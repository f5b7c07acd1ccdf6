"""Models for the per-stage work queues of the reply pipeline."""

from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from reply_ledger.db.session import Base
from reply_ledger.db.time import now_ms
from reply_ledger.schemas.publication import PublicationState, state_from_row

# Evaluation and reply queue states.
QUEUE_STATUS_PENDING = "pending"
QUEUE_STATUS_EVALUATING = "evaluating"
QUEUE_STATUS_GENERATING = "generating"
QUEUE_STATUS_DONE = "done"

DECISION_RESPOND = "RESPOND"
DECISION_IGNORE = "IGNORE"
DECISION_STOP = "STOP"

# Publication lifecycle. Status only moves forward; failed is terminal.
PUB_STATUS_PENDING = "pending"
PUB_STATUS_PUBLISHED = "published"
PUB_STATUS_TX_SUBMITTED = "tx_submitted"
PUB_STATUS_CONFIRMED = "confirmed"
PUB_STATUS_FINAL = "final"
PUB_STATUS_FAILED = "failed"

PUB_STATUSES = (
    PUB_STATUS_PENDING,
    PUB_STATUS_PUBLISHED,
    PUB_STATUS_TX_SUBMITTED,
    PUB_STATUS_CONFIRMED,
    PUB_STATUS_FINAL,
    PUB_STATUS_FAILED,
)
# Statuses whose transaction is on its way to finality.
PUB_STATUSES_IN_FLIGHT = (PUB_STATUS_TX_SUBMITTED, PUB_STATUS_CONFIRMED)


class EvalQueueItem(Base):
    """A non-trusted post waiting for the AI to decide whether to respond."""

    __tablename__ = "eval_queue"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'evaluating', 'done')", name="ck_eval_queue_status"
        ),
        CheckConstraint(
            "decision IS NULL OR decision IN ('RESPOND', 'IGNORE', 'STOP')",
            name="ck_eval_queue_decision",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(
        Text, ForeignKey("post.id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=QUEUE_STATUS_PENDING, index=True
    )
    decision: Mapped[str | None] = mapped_column(Text, nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    evaluated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class ReplyQueueItem(Base):
    """A post the AI decided to answer, waiting for its reply text."""

    __tablename__ = "reply_queue"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'generating', 'done')", name="ck_reply_queue_status"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(
        Text, ForeignKey("post.id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=QUEUE_STATUS_PENDING, index=True
    )
    reply_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class PubQueueItem(Base):
    """A generated reply on its way to the social network and the chain.

    The nullable columns are only meaningful for some statuses; use ``state``
    to get a typed view carrying exactly the fields valid for the status.
    """

    __tablename__ = "pub_queue"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'published', 'tx_submitted', 'confirmed', 'final', 'failed')",
            name="ck_pub_queue_status",
        ),
        # reply_post_id/content_hash exist exactly from 'published' onwards.
        CheckConstraint(
            "status = 'failed'"
            " OR (status = 'pending' AND reply_post_id IS NULL AND content_hash IS NULL)"
            " OR (status <> 'pending' AND reply_post_id IS NOT NULL"
            " AND content_hash IS NOT NULL)",
            name="ck_pub_queue_published_fields",
        ),
        # tx_hash exists exactly from 'tx_submitted' onwards.
        CheckConstraint(
            "status = 'failed'"
            " OR (status IN ('pending', 'published') AND tx_hash IS NULL)"
            " OR (status IN ('tx_submitted', 'confirmed', 'final') AND tx_hash IS NOT NULL)",
            name="ck_pub_queue_tx_fields",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_post_id: Mapped[str] = mapped_column(
        Text, ForeignKey("post.id"), nullable=False, index=True
    )
    reply_content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=PUB_STATUS_PENDING, index=True
    )
    reply_post_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    content_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    tx_sent_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    tx_retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tx_confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    seal_post_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    finalized_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    @property
    def state(self) -> PublicationState:
        """Return the typed lifecycle state of this item."""
        return state_from_row(self)


class VerificationRecord(Base):
    """Append-only audit entry written once per on-chain submission."""

    __tablename__ = "verification_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reply_post_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    content_hash: Mapped[str] = mapped_column(Text, nullable=False)
    tx_hash: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
