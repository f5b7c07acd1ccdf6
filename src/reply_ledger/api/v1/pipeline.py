"""Read-only pipeline status endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from reply_ledger.db.session import get_db
from reply_ledger.repositories import MetadataRepository, QueueRepository
from reply_ledger.schemas.status import PipelineStatus

router = APIRouter(prefix="/pipeline", tags=["pipeline"])

SessionDep = Annotated[Session, Depends(get_db)]


@router.get("/status", response_model=PipelineStatus)
async def get_pipeline_status(request: Request, db: SessionDep) -> PipelineStatus:
    """Return row counts per status for every queue the pipeline owns."""
    stats = QueueRepository(db).queue_stats()
    metadata_pending, unpin_pending = MetadataRepository(db).counts()
    scheduler = getattr(request.app.state, "scheduler", None)
    return PipelineStatus(
        evaluation=stats["evaluation"],
        reply=stats["reply"],
        publication=stats["publication"],
        metadata_pending=metadata_pending,
        unpin_pending=unpin_pending,
        workers=scheduler.job_names if scheduler is not None else [],
    )
