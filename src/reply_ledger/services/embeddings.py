"""Embedding generation and similarity search over the knowledge base."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Protocol

import httpx

from reply_ledger.core.settings import Settings, settings
from reply_ledger.services.ai_client import AIClientError

logger = logging.getLogger(__name__)


class EmbeddedEntry(Protocol):
    content: str
    embedding: list[float] | None


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of two equal-length vectors.

    A zero vector has no direction, so its similarity to anything is 0.0.
    """
    if len(a) != len(b):
        raise ValueError(f"Vectors must have the same length ({len(a)} != {len(b)})")
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingService:
    """Calls an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        cfg = config or settings
        self.model = cfg.embedding_model
        self._owns_client = http_client is None
        headers = {"Content-Type": "application/json"}
        if cfg.ai_api_key:
            headers["Authorization"] = f"Bearer {cfg.ai_api_key}"
        self._client = http_client or httpx.AsyncClient(
            base_url=cfg.ai_api_endpoint.rstrip("/"),
            headers=headers,
            timeout=cfg.ai_timeout_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one embedding per input text, in input order."""
        if not texts:
            return []
        try:
            response = await self._client.post(
                "/embeddings", json={"model": self.model, "input": list(texts)}
            )
            response.raise_for_status()
            data = response.json()["data"]
        except httpx.HTTPStatusError as exc:
            raise AIClientError(
                f"Embedding endpoint returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            raise AIClientError(f"Embedding request failed: {exc}") from exc

        if len(data) != len(texts):
            raise AIClientError(f"Expected {len(texts)} embeddings, got {len(data)}")
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        return [[float(v) for v in item["embedding"]] for item in ordered]

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def search_relevant(
        self,
        query: str,
        corpus: Sequence[EmbeddedEntry],
        top_k: int = 5,
        min_similarity: float = 0.7,
    ) -> list[str]:
        """Return the content of the ``top_k`` entries most similar to ``query``.

        Entries below ``min_similarity`` are dropped, so fewer than ``top_k``
        results (or none) may come back.
        """
        candidates = [entry for entry in corpus if entry.embedding]
        if not candidates:
            logger.warning("No knowledge base entries have embeddings")
            return []

        query_vector = await self.embed(query)
        scored = [
            (cosine_similarity(query_vector, entry.embedding or []), entry.content)
            for entry in candidates
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        top = scored[:top_k]
        logger.debug(
            "Knowledge search over %d entries, best similarity %.3f",
            len(candidates),
            top[0][0] if top else 0.0,
        )
        return [content for score, content in top if score >= min_similarity]
