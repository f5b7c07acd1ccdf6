"""Pydantic schemas for AI inference responses."""

from typing import Literal

from pydantic import BaseModel, Field


class EvaluationResult(BaseModel):
    """Decision returned by the evaluation prompt."""

    decision: Literal["RESPOND", "IGNORE", "STOP"] = Field(
        ..., description="Whether the pipeline should answer the post"
    )
    reasoning: str = Field(default="", description="Short explanation from the model")


class ReplyResult(BaseModel):
    """Reply text returned by the generation prompt."""

    content: str = Field(..., min_length=1, description="Reply text to publish")
