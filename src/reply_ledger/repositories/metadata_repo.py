"""Data access helpers for metadata updates, the unpin queue and cached content."""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from reply_ledger.db.time import next_timestamp, now_ms
from reply_ledger.models.metadata import (
    UNPIN_REASON_ITERATION,
    UNPIN_REASON_PROJECT,
    ContentCacheEntry,
    MetadataUpdate,
    UnpinQueueItem,
)

__all__ = ["MetadataRepository"]


class MetadataRepository:
    """Thin wrapper around the metadata tracking tables."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def record_update(
        self,
        *,
        chain_id: int,
        tx_hash: str,
        new_cid: str,
        old_cid: str | None = None,
        contract_address: str | None = None,
        iteration_number: int | None = None,
        project_address: str | None = None,
        tx_sent_height: int | None = None,
    ) -> MetadataUpdate:
        """Insert a newly submitted metadata update."""
        created = now_ms()
        update = MetadataUpdate(
            chain_id=chain_id,
            contract_address=contract_address,
            iteration_number=iteration_number,
            project_address=project_address,
            old_cid=old_cid,
            new_cid=new_cid,
            tx_hash=tx_hash,
            tx_sent_height=tx_sent_height,
            confirmations=0,
            confirmed=False,
            created_at=created,
            updated_at=created,
        )
        self.session.add(update)
        self.session.commit()
        return update

    def get_update(self, tx_hash: str) -> MetadataUpdate | None:
        return self.session.execute(
            select(MetadataUpdate).where(MetadataUpdate.tx_hash == tx_hash)
        ).scalar_one_or_none()

    def list_pending_updates(
        self, limit: int, chain_ids: Iterable[int] | None = None
    ) -> list[MetadataUpdate]:
        """Return unconfirmed updates, oldest first, optionally limited to ``chain_ids``."""
        stmt = select(MetadataUpdate).where(MetadataUpdate.confirmed.is_(False))
        if chain_ids is not None:
            stmt = stmt.where(MetadataUpdate.chain_id.in_(list(chain_ids)))
        stmt = stmt.order_by(MetadataUpdate.created_at, MetadataUpdate.id).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def update_confirmations(self, update_id: int, confirmations: int) -> None:
        update = self.session.get(MetadataUpdate, update_id)
        if update is None:
            return
        update.confirmations = confirmations
        update.updated_at = next_timestamp(update.updated_at)
        self.session.commit()

    def mark_confirmed(self, update_id: int) -> MetadataUpdate | None:
        """Flag an update as confirmed and queue its superseded CID for unpinning.

        Both writes share one commit. Confirming twice is a no-op.
        """
        update = self.session.get(MetadataUpdate, update_id)
        if update is None or update.confirmed:
            return update
        update.confirmed = True
        update.updated_at = next_timestamp(update.updated_at)
        if update.old_cid:
            reason = UNPIN_REASON_PROJECT if update.project_address else UNPIN_REASON_ITERATION
            self._queue_unpin(update.old_cid, reason)
        self.session.commit()
        return update

    def _queue_unpin(self, cid: str, reason: str | None) -> bool:
        existing = self.session.execute(
            select(UnpinQueueItem.id).where(UnpinQueueItem.cid == cid)
        ).first()
        if existing is not None:
            return False
        self.session.add(UnpinQueueItem(cid=cid, reason=reason, created_at=now_ms()))
        return True

    def queue_for_unpin(self, cid: str, reason: str | None = None) -> bool:
        """Queue a CID for unpinning unless it is already queued."""
        added = self._queue_unpin(cid, reason)
        self.session.commit()
        return added

    def list_unpin_queue(self, limit: int) -> list[UnpinQueueItem]:
        result = self.session.execute(
            select(UnpinQueueItem)
            .order_by(UnpinQueueItem.created_at, UnpinQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars())

    def complete_unpin(self, cid: str) -> None:
        """Drop the cached copy of ``cid`` and remove it from the unpin queue."""
        self.session.execute(delete(ContentCacheEntry).where(ContentCacheEntry.cid == cid))
        self.session.execute(delete(UnpinQueueItem).where(UnpinQueueItem.cid == cid))
        self.session.commit()

    def cache_content(
        self, cid: str, content: str, content_type: str = "application/json"
    ) -> None:
        entry = self.session.get(ContentCacheEntry, cid)
        if entry is None:
            entry = ContentCacheEntry(cid=cid)
            self.session.add(entry)
        entry.content = content
        entry.content_type = content_type
        entry.fetched_at = now_ms()
        self.session.commit()

    def get_cached_content(self, cid: str) -> ContentCacheEntry | None:
        return self.session.get(ContentCacheEntry, cid)

    def counts(self) -> tuple[int, int]:
        """Return (unconfirmed updates, queued unpins)."""
        pending = self.session.execute(
            select(func.count())
            .select_from(MetadataUpdate)
            .where(MetadataUpdate.confirmed.is_(False))
        ).scalar_one()
        unpins = self.session.execute(
            select(func.count()).select_from(UnpinQueueItem)
        ).scalar_one()
        return int(pending), int(unpins)
