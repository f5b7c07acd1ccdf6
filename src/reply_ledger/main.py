# src/reply_ledger/main.py
"""Main entry point for the Reply Ledger service."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from reply_ledger.api.v1 import pipeline_router
from reply_ledger.core.logging import configure_logging
from reply_ledger.core.settings import settings
from reply_ledger.pipeline import PipelineDependencies, build_pipeline
from reply_ledger.workers.scheduler import PipelineScheduler

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="AI reply pipeline with on-chain proof of every reply",
    version=settings.app_version,
)

app.include_router(pipeline_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    app.state.scheduler = None
    app.state.pipeline_deps = None
    if not settings.workers_enabled:
        logger.info("Workers disabled; serving status endpoints only")
        return
    deps, scheduler = build_pipeline(settings)
    await scheduler.start()
    app.state.pipeline_deps = deps
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def on_shutdown() -> None:
    scheduler: PipelineScheduler | None = getattr(app.state, "scheduler", None)
    if scheduler:
        await scheduler.stop()
    deps: PipelineDependencies | None = getattr(app.state, "pipeline_deps", None)
    if deps:
        await deps.aclose()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, object]:
    """Root endpoint with basic information about the service."""
    scheduler: PipelineScheduler | None = getattr(app.state, "scheduler", None)
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "workers_running": bool(scheduler and scheduler.running),
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("reply_ledger.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
