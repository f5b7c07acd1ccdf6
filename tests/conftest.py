# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from contextlib import nullcontext
from itertools import count
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("WORKERS_ENABLED", "false")

from reply_ledger.core.settings import Settings
from reply_ledger.db.session import Base
from reply_ledger.db.session import get_db as app_get_session
from reply_ledger.db.time import now_ms
from reply_ledger.main import app as fastapi_app
from reply_ledger.models import Post, PubQueueItem
from reply_ledger.repositories import MetadataRepository, QueueRepository
from reply_ledger.services.ai_client import AIClient
from reply_ledger.services.blockchain import BlockchainGateway
from reply_ledger.services.embeddings import EmbeddingService
from reply_ledger.services.pinning import PinningService
from reply_ledger.services.social import SocialPoster

TEST_DB_URL = "sqlite://"
BOT_USERNAME = "replybot"
EXPLORER_URL = "https://explorer.example"

_POST_COUNTER = count(1)
_TX_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Ensure each test sees a clean database even though workers commit.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def session_factory(db_session: Session) -> Callable[[], Any]:
    """Hand the test session to workers without letting them close it."""
    return lambda: nullcontext(db_session)


@pytest.fixture()
def repo(db_session: Session) -> QueueRepository:
    return QueueRepository(db_session)


@pytest.fixture()
def metadata_repo(db_session: Session) -> MetadataRepository:
    return MetadataRepository(db_session)


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with small, deterministic values for worker tests."""
    return Settings(
        bot_username=BOT_USERNAME,
        explorer_url=EXPLORER_URL,
        batch_size=10,
        confirmations_required=10,
        tx_confirmation_batch_size=100,
        tx_retry_batch_size=10,
        tx_retry_block_delay=5,
        tx_max_retries=5,
        embedding_batch_size=5,
        metadata_chain_id=None,
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI, db_session: Session) -> Iterator[TestClient]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def mock_ai() -> AsyncMock:
    return AsyncMock(spec=AIClient)


@pytest.fixture()
def mock_embeddings() -> AsyncMock:
    return AsyncMock(spec=EmbeddingService)


@pytest.fixture()
def mock_chain() -> AsyncMock:
    chain = AsyncMock(spec=BlockchainGateway)
    chain.can_submit = True
    chain.current_block_height.return_value = 1_000
    chain.has_response.return_value = False
    return chain


@pytest.fixture()
def mock_poster() -> AsyncMock:
    poster = AsyncMock(spec=SocialPoster)
    poster.is_configured.return_value = True
    return poster


@pytest.fixture()
def mock_pinning() -> AsyncMock:
    return AsyncMock(spec=PinningService)


@pytest.fixture()
def make_post(db_session: Session) -> Callable[..., Post]:
    """Factory persisting posts the way the external indexer would."""

    def _make_post(
        *,
        content: str = "How does the bridge settle withdrawals?",
        author: str = "alice",
        trusted: bool = False,
        conversation_id: str = "conv-1",
        post_id: str | None = None,
        posted_at: int | None = None,
        processed: bool = False,
    ) -> Post:
        number = next(_POST_COUNTER)
        post = Post(
            id=post_id or f"post-{number}",
            conversation_id=conversation_id,
            author_username=author,
            content=content,
            is_trusted=trusted,
            posted_at=posted_at if posted_at is not None else now_ms() + number,
            processed_at=now_ms() if processed else None,
        )
        db_session.add(post)
        db_session.commit()
        return post

    return _make_post


@pytest.fixture()
def make_publication(
    db_session: Session, make_post: Callable[..., Post]
) -> Callable[..., PubQueueItem]:
    """Factory for publication rows already at a given lifecycle status."""

    def _make_publication(
        status: str = "pending",
        *,
        tx_sent_height: int | None = 990,
        tx_retry_count: int = 0,
        tx_confirmations: int = 0,
        content: str = "@alice withdrawals settle after the challenge window.",
    ) -> PubQueueItem:
        post = make_post(processed=True)
        number = next(_TX_COUNTER)
        created = now_ms()
        item = PubQueueItem(
            source_post_id=post.id,
            reply_content=content,
            status=status,
            tx_retry_count=tx_retry_count,
            tx_confirmations=tx_confirmations,
            created_at=created,
            updated_at=created,
        )
        if status != "pending":
            item.reply_post_id = f"reply-{number}"
            item.content_hash = "0x" + "ab" * 32
        if status in ("tx_submitted", "confirmed", "final"):
            item.tx_hash = f"0x{number:064x}"
            item.tx_sent_height = tx_sent_height
        db_session.add(item)
        db_session.commit()
        return item

    return _make_publication
