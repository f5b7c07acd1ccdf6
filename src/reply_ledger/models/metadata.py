"""Models tracking off-chain metadata updates anchored on-chain."""

from sqlalchemy import BigInteger, Boolean, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from reply_ledger.db.session import Base
from reply_ledger.db.time import now_ms

UNPIN_REASON_PROJECT = "project_update"
UNPIN_REASON_ITERATION = "iteration_update"


class MetadataUpdate(Base):
    """A metadata CID change submitted on-chain, awaiting confirmation.

    ``project_address`` is NULL for iteration-level updates.
    """

    __tablename__ = "metadata_update"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    contract_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    iteration_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    project_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    old_cid: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_cid: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    tx_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    tx_sent_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class UnpinQueueItem(Base):
    """A superseded CID to remove from the pinning service."""

    __tablename__ = "unpin_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cid: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class ContentCacheEntry(Base):
    """Locally cached copy of pinned content, dropped once the CID is unpinned."""

    __tablename__ = "ipfs_cache"

    cid: Mapped[str] = mapped_column(Text, primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(
        Text, nullable=False, default="application/json"
    )
    fetched_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
