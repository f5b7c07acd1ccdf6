"""Tests for knowledge indexing and embedding backfill."""

from __future__ import annotations

import pytest

from reply_ledger.models import KnowledgeBaseEntry, Post
from reply_ledger.services.ai_client import AIClientError
from reply_ledger.workers.embedding import EmbeddingBackfiller
from reply_ledger.workers.knowledge import KnowledgeIndexer


@pytest.mark.asyncio
async def test_indexer_copies_trusted_posts_only(
    make_post, session_factory, test_settings, db_session
) -> None:
    trusted = make_post(trusted=True, content="Bridge fees are 0.1%.")
    community = make_post(content="what are the fees?")

    outcome = await KnowledgeIndexer(session_factory, test_settings).process()

    entries = db_session.query(KnowledgeBaseEntry).all()
    assert [(e.post_id, e.content, e.embedding) for e in entries] == [
        (trusted.id, "Bridge fees are 0.1%.", None)
    ]
    assert db_session.get(Post, trusted.id).processed_at is not None
    assert db_session.get(Post, community.id).processed_at is None
    assert outcome.counts["indexed"] == 1


@pytest.mark.asyncio
async def test_indexer_is_a_no_op_when_caught_up(session_factory, test_settings) -> None:
    outcome = await KnowledgeIndexer(session_factory, test_settings).process()

    assert outcome.total == 0


def _seed_knowledge(repo, make_post, count: int) -> list[KnowledgeBaseEntry]:
    for index in range(count):
        post = make_post(trusted=True, content=f"fact {index}", processed=True)
        repo.add_to_knowledge_base(post.id, post.content)
    return repo.list_knowledge_without_embeddings(count)


@pytest.mark.asyncio
async def test_backfill_embeds_in_sub_batches(
    mock_embeddings, repo, make_post, session_factory, test_settings
) -> None:
    _seed_knowledge(repo, make_post, 7)

    async def embed_batch(texts):
        return [[float(len(text)), 1.0] for text in texts]

    mock_embeddings.embed_batch.side_effect = embed_batch

    outcome = await EmbeddingBackfiller(mock_embeddings, session_factory, test_settings).process()

    sizes = [len(call.args[0]) for call in mock_embeddings.embed_batch.await_args_list]
    assert sizes == [5, 2]
    assert outcome.succeeded == 7
    assert repo.list_knowledge_without_embeddings(10) == []
    assert repo.list_knowledge_with_embeddings()[0].embedding == [6.0, 1.0]


@pytest.mark.asyncio
async def test_failed_sub_batch_counts_all_its_entries(
    mock_embeddings, repo, make_post, session_factory, test_settings
) -> None:
    entries = _seed_knowledge(repo, make_post, 7)
    mock_embeddings.embed_batch.side_effect = [
        AIClientError("embeddings returned 500"),
        [[0.5, 0.5], [0.5, 0.5]],
    ]

    outcome = await EmbeddingBackfiller(mock_embeddings, session_factory, test_settings).process()

    assert outcome.failed == 5
    assert outcome.succeeded == 2
    remaining = [entry.id for entry in repo.list_knowledge_without_embeddings(10)]
    assert remaining == [entry.id for entry in entries[:5]]
