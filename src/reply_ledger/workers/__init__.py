"""Pipeline stage workers and their scheduler."""

from .base import TickOutcome, Worker, run_batch
from .embedding import EmbeddingBackfiller
from .evaluation import Evaluator
from .knowledge import KnowledgeIndexer
from .metadata_confirmation import MetadataConfirmationTracker
from .publication import Publisher
from .reply import ReplyGenerator
from .scheduler import PipelineScheduler
from .tx_confirmation import TxConfirmationTracker
from .tx_retry import TxRetryHandler

__all__ = [
    "TickOutcome", "Worker", "run_batch",
    "EmbeddingBackfiller", "Evaluator", "KnowledgeIndexer",
    "MetadataConfirmationTracker", "Publisher", "ReplyGenerator",
    "PipelineScheduler", "TxConfirmationTracker", "TxRetryHandler",
]
