"""SQLAlchemy models for indexed posts and the knowledge base."""

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from reply_ledger.db.session import Base
from reply_ledger.db.time import now_ms


class Post(Base):
    """A post discovered on the source network.

    Rows are written by the external indexer. The pipeline only reads them and
    stamps ``processed_at`` once a post has been routed to a queue.
    """

    __tablename__ = "post"

    # Identifier assigned by the source network.
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    conversation_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    parent_id: Mapped[str | None] = mapped_column(
        Text,
        ForeignKey("post.id"),
        nullable=True,
        index=True,
    )
    author_username: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    author_display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    posted_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    is_trusted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    indexed_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    # NULL until the post has been handed to the knowledge base or the evaluation queue.
    processed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)


class KnowledgeBaseEntry(Base):
    """Content from a trusted post, used as context for AI calls."""

    __tablename__ = "knowledge_base"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("post.id"),
        nullable=False,
        unique=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Embedding vector, filled in later by the backfill worker.
    embedding: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
