"""
Pydantic schemas and typed state views used across the pipeline.
"""

from .ai import EvaluationResult, ReplyResult
from .publication import (
    Confirmed,
    Failed,
    Final,
    InvalidPublicationState,
    Pending,
    PublicationState,
    Published,
    TxSubmitted,
    state_from_row,
)
from .status import PipelineStatus, QueueCounts

__all__ = [
    "EvaluationResult", "ReplyResult",
    "Confirmed", "Failed", "Final", "InvalidPublicationState", "Pending",
    "PublicationState", "Published", "TxSubmitted", "state_from_row",
    "PipelineStatus", "QueueCounts",
]
