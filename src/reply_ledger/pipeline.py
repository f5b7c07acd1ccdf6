"""Wiring of external clients, stage workers and the scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from reply_ledger.core.settings import Settings, settings
from reply_ledger.services.ai_client import AIClient
from reply_ledger.services.blockchain import BlockchainGateway, build_chain_gateways
from reply_ledger.services.embeddings import EmbeddingService
from reply_ledger.services.pinning import PinningService
from reply_ledger.services.social import SocialPoster
from reply_ledger.workers import (
    EmbeddingBackfiller,
    Evaluator,
    KnowledgeIndexer,
    MetadataConfirmationTracker,
    PipelineScheduler,
    Publisher,
    ReplyGenerator,
    TxConfirmationTracker,
    TxRetryHandler,
)
from reply_ledger.workers.base import SessionFactory

logger = logging.getLogger(__name__)


@dataclass
class PipelineDependencies:
    """External clients shared by every worker, created once per process."""

    ai: AIClient
    embeddings: EmbeddingService
    chain: BlockchainGateway
    poster: SocialPoster
    pinning: PinningService
    chain_gateways: dict[int, BlockchainGateway] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> PipelineDependencies:
        cfg = config or settings
        chain = BlockchainGateway.from_settings(cfg)
        gateways = build_chain_gateways(cfg)
        return cls(
            ai=AIClient(cfg),
            embeddings=EmbeddingService(cfg),
            chain=chain,
            poster=SocialPoster(cfg),
            pinning=PinningService(cfg),
            chain_gateways=gateways,
        )

    async def aclose(self) -> None:
        await self.ai.close()
        await self.embeddings.close()
        await self.pinning.close()
        await self.chain.close()
        for gateway in self.chain_gateways.values():
            await gateway.close()


def build_scheduler(
    deps: PipelineDependencies,
    config: Settings | None = None,
    session_factory: SessionFactory | None = None,
) -> PipelineScheduler:
    """Register every stage worker with its configured interval."""
    cfg = config or settings
    scheduler = PipelineScheduler()
    jobs = (
        (KnowledgeIndexer(session_factory, cfg), cfg.knowledge_interval_seconds),
        (
            EmbeddingBackfiller(deps.embeddings, session_factory, cfg),
            cfg.embedding_interval_seconds,
        ),
        (
            Evaluator(deps.ai, deps.embeddings, session_factory, cfg),
            cfg.evaluation_interval_seconds,
        ),
        (
            ReplyGenerator(deps.ai, deps.embeddings, session_factory, cfg),
            cfg.reply_interval_seconds,
        ),
        (
            Publisher(deps.poster, deps.chain, session_factory, cfg),
            cfg.publication_interval_seconds,
        ),
        (
            TxConfirmationTracker(deps.chain, deps.poster, session_factory, cfg),
            cfg.tx_confirmation_interval_seconds,
        ),
        (TxRetryHandler(deps.chain, session_factory, cfg), cfg.tx_retry_interval_seconds),
        (
            MetadataConfirmationTracker(
                deps.chain_gateways, deps.pinning, session_factory, cfg
            ),
            cfg.metadata_interval_seconds,
        ),
    )
    for worker, interval in jobs:
        scheduler.register(worker.name, worker, interval)
    return scheduler


def build_pipeline(
    config: Settings | None = None,
    session_factory: SessionFactory | None = None,
) -> tuple[PipelineDependencies, PipelineScheduler]:
    """Create the clients once and a scheduler wired to them."""
    deps = PipelineDependencies.from_settings(config)
    scheduler = build_scheduler(deps, config, session_factory)
    logger.info("Pipeline built with workers: %s", ", ".join(scheduler.job_names))
    return deps, scheduler
