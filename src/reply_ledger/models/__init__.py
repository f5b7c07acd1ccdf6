"""SQLAlchemy models for the reply pipeline."""

from .metadata import ContentCacheEntry, MetadataUpdate, UnpinQueueItem
from .post import KnowledgeBaseEntry, Post
from .queue import EvalQueueItem, PubQueueItem, ReplyQueueItem, VerificationRecord

__all__ = [
    "ContentCacheEntry", "MetadataUpdate", "UnpinQueueItem",
    "KnowledgeBaseEntry", "Post",
    "EvalQueueItem", "PubQueueItem", "ReplyQueueItem", "VerificationRecord",
]
