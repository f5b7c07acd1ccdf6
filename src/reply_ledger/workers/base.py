"""Shared building blocks for pipeline stage workers.

A worker tick loads a batch of rows, handles each one independently and
folds the per-item results into a :class:`TickOutcome`. An exception raised
while handling one item is recorded against that item only, except for
database errors, which abort the tick.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reply_ledger.core.settings import Settings, settings
from reply_ledger.db.session import SessionLocal
from reply_ledger.repositories.queue_repo import QueueRepository
from reply_ledger.services.ai_client import AIClientError
from reply_ledger.services.embeddings import EmbeddingService

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]

KIND_SUCCEEDED = "succeeded"
KIND_FAILED = "failed"
KIND_SKIPPED = "skipped"

T = TypeVar("T")


@dataclass(frozen=True)
class ItemResult:
    """What happened to one item during a tick."""

    kind: str
    label: str
    reason: str | None = None


def done(label: str) -> ItemResult:
    return ItemResult(KIND_SUCCEEDED, label)


def skipped(label: str) -> ItemResult:
    return ItemResult(KIND_SKIPPED, label)


def rejected(label: str, reason: str) -> ItemResult:
    """Result for an item moved to a terminal failure state on purpose."""
    return ItemResult(KIND_FAILED, label, reason)


@dataclass
class TickOutcome:
    """Summary of a single worker tick."""

    worker: str
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    counts: Counter[str] = field(default_factory=Counter)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def record(self, key: str, result: ItemResult) -> None:
        self.counts[result.label] += 1
        if result.kind == KIND_SUCCEEDED:
            self.succeeded += 1
        elif result.kind == KIND_SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            if result.reason:
                self.errors[key] = result.reason

    def record_error(self, key: str, exc: BaseException) -> None:
        self.failed += 1
        self.counts["error"] += 1
        self.errors[key] = str(exc) or type(exc).__name__

    def note(self, label: str, amount: int = 1) -> None:
        """Count an event that does not belong to a single item."""
        self.counts[label] += amount

    def summary(self) -> str:
        details = ", ".join(f"{label}={count}" for label, count in sorted(self.counts.items()))
        return (
            f"{self.worker}: {self.succeeded} succeeded, {self.failed} failed, "
            f"{self.skipped} skipped" + (f" ({details})" if details else "")
        )


async def run_batch(
    outcome: TickOutcome,
    items: Iterable[T],
    handler: Callable[[T], Awaitable[ItemResult]],
    *,
    key: Callable[[T], object],
    session: Session,
) -> TickOutcome:
    """Apply ``handler`` to each item in order, isolating per-item failures."""
    for item in items:
        item_key = f"{outcome.worker}:{key(item)}"
        try:
            result = await handler(item)
        except SQLAlchemyError:
            session.rollback()
            raise
        except Exception as exc:
            session.rollback()
            logger.warning("%s failed on %s: %s", outcome.worker, item_key, exc, exc_info=True)
            outcome.record_error(item_key, exc)
            continue
        outcome.record(item_key, result)
    return outcome


def is_own_post(author_username: str, bot_username: str) -> bool:
    """Return True when ``author_username`` is the account the pipeline posts as."""
    if not bot_username:
        return False
    return author_username.lstrip("@").lower() == bot_username.lstrip("@").lower()


async def relevant_knowledge(
    repo: QueueRepository,
    embeddings: EmbeddingService | None,
    query: str,
    *,
    top_k: int,
    min_similarity: float,
) -> list[str]:
    """Return knowledge snippets for a prompt.

    Falls back to the most recent entries when nothing has been embedded yet
    or the similarity search fails.
    """
    entries = repo.list_knowledge_with_embeddings()
    if not entries or embeddings is None:
        return repo.list_recent_knowledge(top_k)
    try:
        return await embeddings.search_relevant(
            query, entries, top_k=top_k, min_similarity=min_similarity
        )
    except (AIClientError, ValueError) as exc:
        logger.warning("Semantic search failed, using recent knowledge: %s", exc)
        return repo.list_recent_knowledge(top_k)


class Worker:
    """Base class holding what every stage worker needs."""

    name = "worker"

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        config: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory or SessionLocal
        self.config = config or settings

    def new_outcome(self) -> TickOutcome:
        return TickOutcome(worker=self.name)

    async def process(self) -> TickOutcome:
        raise NotImplementedError
