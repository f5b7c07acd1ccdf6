"""AI inference client for post evaluation and reply generation.

This module talks to an OpenAI-compatible chat-completions endpoint over
httpx. Both prompts ask the model for a JSON object which is validated with
the schemas in :mod:`reply_ledger.schemas.ai`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from reply_ledger.core.settings import Settings, settings
from reply_ledger.schemas.ai import EvaluationResult, ReplyResult

logger = logging.getLogger(__name__)

MAX_REPLY_LENGTH = 280
KNOWLEDGE_PROMPT_LIMIT = 5

EVALUATION_SYSTEM_PROMPT = """\
You are an AI evaluator for a decentralized forum system. Your task is to decide if a post \
warrants a response.

Reply with JSON in this exact format:
{
  "decision": "RESPOND" | "IGNORE" | "STOP",
  "reasoning": "brief explanation"
}

RESPOND: Post asks a question related to the thread topic, makes a relevant point, or shows \
genuine interest in the discussion. Default to RESPOND for any on-topic engagement.
IGNORE: ONLY for spam, advertisements, completely off-topic content, or meaningless noise \
(e.g., "lol", "ok", "nice")
STOP: Post is offensive, hateful, or violates community guidelines

IMPORTANT GUIDELINES:
- Trusted users are domain experts contributing knowledge. IGNORE most trusted user posts \
unless they explicitly ask a question.
- Non-trusted users are community members who may need help. RESPOND to their questions and \
engagement attempts.
- Look for question marks, question words (what, how, why, when, where, who), or requests \
for information."""

REPLY_SYSTEM_PROMPT = """\
You are a helpful assistant for a decentralized forum. Generate concise, informative replies.

Rules:
- Keep replies under 280 characters
- Respond in the SAME LANGUAGE as the user's post
- Be respectful and professional
- Reference knowledge base when relevant
- Stay on topic with the thread context
- Use @{author} to address the person

Reply with JSON:
{{
  "content": "your reply text here"
}}"""


class AIClientError(RuntimeError):
    """Raised when the inference endpoint fails or returns an unusable answer."""


class PromptPost(Protocol):
    id: str
    content: str
    author_username: str
    is_trusted: bool


def clamp_reply(text: str, limit: int = MAX_REPLY_LENGTH) -> str:
    """Trim ``text`` to ``limit`` characters, ending with an ellipsis when cut."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def build_evaluation_prompt(
    post: PromptPost, thread_context: Sequence[str], knowledge: Sequence[str]
) -> str:
    user_type = (
        "TRUSTED (domain expert/contributor)"
        if getattr(post, "is_trusted", False)
        else "NON-TRUSTED (community member)"
    )
    prompt = f'Post from @{post.author_username} [{user_type}]:\n"{post.content}"\n\n'
    if thread_context:
        prompt += "Thread context (recent messages):\n" + "\n".join(thread_context) + "\n\n"
    if knowledge:
        prompt += (
            "Knowledge base (relevant info):\n"
            + "\n".join(knowledge[:KNOWLEDGE_PROMPT_LIMIT])
            + "\n\n"
        )
    return prompt + "Should we respond to this post?"


def build_reply_prompt(
    post: PromptPost, thread_context: Sequence[str], knowledge: Sequence[str]
) -> str:
    prompt = (
        f"Generate a helpful reply to this post from @{post.author_username}:\n"
        f'"{post.content}"\n\n'
    )
    if thread_context:
        prompt += "Thread context:\n" + "\n".join(thread_context) + "\n\n"
    if knowledge:
        prompt += (
            "Use this knowledge base:\n" + "\n".join(knowledge[:KNOWLEDGE_PROMPT_LIMIT]) + "\n\n"
        )
    return prompt + "Generate a concise, helpful reply (under 280 chars)."


def _extract_json(content: str) -> dict[str, Any]:
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise AIClientError(f"AI response is not a JSON object: {content[:200]!r}")
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise AIClientError(f"AI response is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AIClientError("AI response JSON must be an object")
    return parsed


class AIClient:
    """Evaluates posts and drafts replies using a chat-completions model."""

    def __init__(
        self,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        cfg = config or settings
        self.model = cfg.ai_model
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

    async def _complete(
        self, system_prompt: str, user_prompt: str, *, temperature: float, max_tokens: int
    ) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise AIClientError(
                f"AI endpoint returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise AIClientError(f"AI request failed: {exc}") from exc

        try:
            return body["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise AIClientError("AI response has no message content") from exc

    async def evaluate(
        self, post: PromptPost, thread_context: Sequence[str], knowledge: Sequence[str]
    ) -> EvaluationResult:
        """Decide whether ``post`` deserves a reply."""
        content = await self._complete(
            EVALUATION_SYSTEM_PROMPT,
            build_evaluation_prompt(post, thread_context, knowledge),
            temperature=0.3,
            max_tokens=200,
        )
        try:
            result = EvaluationResult.model_validate(_extract_json(content))
        except ValidationError as exc:
            raise AIClientError(f"Invalid evaluation result for post {post.id}: {exc}") from exc
        logger.debug("AI evaluation for post %s: %s", post.id, result.decision)
        return result

    async def generate_reply(
        self, post: PromptPost, thread_context: Sequence[str], knowledge: Sequence[str]
    ) -> ReplyResult:
        """Draft a reply to ``post``, clamped to the posting limit."""
        content = await self._complete(
            REPLY_SYSTEM_PROMPT.format(author=post.author_username),
            build_reply_prompt(post, thread_context, knowledge),
            temperature=0.7,
            max_tokens=150,
        )
        try:
            result = ReplyResult.model_validate(_extract_json(content))
        except ValidationError as exc:
            raise AIClientError(f"Invalid reply result for post {post.id}: {exc}") from exc
        result.content = clamp_reply(result.content)
        logger.debug("AI reply for post %s has %d chars", post.id, len(result.content))
        return result
