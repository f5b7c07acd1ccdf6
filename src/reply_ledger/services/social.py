"""Social network poster backed by tweepy's v2 client.

tweepy is synchronous, so calls run in a worker thread to keep the event
loop free while the HTTP request is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests
import tweepy

from reply_ledger.core.settings import Settings, settings

logger = logging.getLogger(__name__)


class SocialPosterError(RuntimeError):
    """Raised when a post cannot be published."""


class SocialPoster:
    """Publishes replies with OAuth 1.0a user credentials."""

    def __init__(self, config: Settings | None = None, client: Any | None = None) -> None:
        cfg = config or settings
        self._client = client
        if self._client is None and all(
            (cfg.x_api_key, cfg.x_api_secret, cfg.x_access_token, cfg.x_access_token_secret)
        ):
            self._client = tweepy.Client(
                consumer_key=cfg.x_api_key,
                consumer_secret=cfg.x_api_secret,
                access_token=cfg.x_access_token,
                access_token_secret=cfg.x_access_token_secret,
            )
        if self._client is None:
            logger.warning("X credentials missing; SocialPoster is not configured")

    def is_configured(self) -> bool:
        return self._client is not None

    async def post_reply(self, target_post_id: str, text: str) -> str:
        """Reply to ``target_post_id`` and return the id of the new post."""
        if self._client is None:
            raise SocialPosterError("X credentials are not configured")
        try:
            response = await asyncio.to_thread(
                self._client.create_tweet,
                text=text,
                in_reply_to_tweet_id=target_post_id,
            )
        except tweepy.TweepyException as exc:
            raise SocialPosterError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            # The request may have reached X before failing, so callers must not retry.
            raise SocialPosterError(f"{type(exc).__name__}: {exc}") from exc

        data = getattr(response, "data", None) or {}
        post_id = data.get("id")
        if not post_id:
            raise SocialPosterError(f"X returned no post id for reply to {target_post_id}")
        logger.info("Posted reply %s to %s", post_id, target_post_id)
        return str(post_id)
