"""Repositories wrapping the pipeline's SQLAlchemy tables."""

from .metadata_repo import MetadataRepository
from .queue_repo import InvalidTransition, QueueRepository

__all__ = ["InvalidTransition", "MetadataRepository", "QueueRepository"]
