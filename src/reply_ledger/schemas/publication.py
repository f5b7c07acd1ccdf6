"""Typed lifecycle states for publication queue rows.

Each state carries only the fields that are guaranteed to be present for its
status, so callers can pattern-match instead of null-checking columns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


class _PublicationRow(Protocol):
    id: int
    status: str
    reply_post_id: str | None
    content_hash: str | None
    tx_hash: str | None
    tx_sent_height: int | None
    tx_retry_count: int
    tx_confirmations: int
    seal_post_id: str | None
    failure_reason: str | None


@dataclass(frozen=True)
class Pending:
    item_id: int


@dataclass(frozen=True)
class Published:
    item_id: int
    reply_post_id: str
    content_hash: str


@dataclass(frozen=True)
class TxSubmitted:
    item_id: int
    reply_post_id: str
    content_hash: str
    tx_hash: str
    tx_sent_height: int | None
    tx_retry_count: int


@dataclass(frozen=True)
class Confirmed:
    item_id: int
    reply_post_id: str
    content_hash: str
    tx_hash: str
    tx_confirmations: int


@dataclass(frozen=True)
class Final:
    item_id: int
    reply_post_id: str
    content_hash: str
    tx_hash: str
    tx_confirmations: int
    seal_post_id: str | None


@dataclass(frozen=True)
class Failed:
    item_id: int
    failure_reason: str
    reply_post_id: str | None = None
    tx_hash: str | None = None


PublicationState = Pending | Published | TxSubmitted | Confirmed | Final | Failed


class InvalidPublicationState(ValueError):
    """Raised when a row's columns do not match its status."""


def _require(row: _PublicationRow, *names: str) -> dict[str, Any]:
    values = {name: getattr(row, name) for name in names}
    missing = [name for name, value in values.items() if value is None]
    if missing:
        raise InvalidPublicationState(
            f"pub_queue row {row.id} in status {row.status!r} is missing {', '.join(missing)}"
        )
    return values


def state_from_row(row: _PublicationRow) -> PublicationState:
    """Build the typed state for a publication queue row."""
    status = row.status
    if status == "pending":
        return Pending(item_id=row.id)
    if status == "failed":
        return Failed(
            item_id=row.id,
            failure_reason=row.failure_reason or "",
            reply_post_id=row.reply_post_id,
            tx_hash=row.tx_hash,
        )

    published = _require(row, "reply_post_id", "content_hash")
    if status == "published":
        return Published(item_id=row.id, **published)

    tx_hash = _require(row, "tx_hash")["tx_hash"]
    if status == "tx_submitted":
        return TxSubmitted(
            item_id=row.id,
            tx_hash=tx_hash,
            tx_sent_height=row.tx_sent_height,
            tx_retry_count=row.tx_retry_count,
            **published,
        )
    if status == "confirmed":
        return Confirmed(
            item_id=row.id,
            tx_hash=tx_hash,
            tx_confirmations=row.tx_confirmations,
            **published,
        )
    if status == "final":
        return Final(
            item_id=row.id,
            tx_hash=tx_hash,
            tx_confirmations=row.tx_confirmations,
            seal_post_id=row.seal_post_id,
            **published,
        )
    raise InvalidPublicationState(f"pub_queue row {row.id} has unknown status {status!r}")
