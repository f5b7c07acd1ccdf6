"""Schemas for the read-only pipeline status endpoint."""

from pydantic import BaseModel, Field


class QueueCounts(BaseModel):
    """Row counts keyed by status for one queue table."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)


class PipelineStatus(BaseModel):
    """Snapshot of every queue owned by the pipeline."""

    evaluation: QueueCounts
    reply: QueueCounts
    publication: QueueCounts
    metadata_pending: int = Field(..., description="Unconfirmed metadata updates")
    unpin_pending: int = Field(..., description="CIDs waiting to be unpinned")
    workers: list[str] = Field(default_factory=list, description="Registered worker names")
