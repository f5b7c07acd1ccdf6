"""Client for the IPFS (Kubo) pinning API used to release superseded metadata."""

from __future__ import annotations

import logging

import httpx

from reply_ledger.core.settings import Settings, settings

logger = logging.getLogger(__name__)

HTTP_OK = 200
NOT_PINNED_MARKER = "not pinned"


class PinningError(RuntimeError):
    """Raised when the pinning API cannot answer."""


def _error_message(response: httpx.Response) -> str:
    try:
        return str(response.json().get("Message", ""))
    except ValueError:
        return response.text


class PinningService:
    """Queries and removes pins through the Kubo RPC API."""

    def __init__(
        self,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        cfg = config or settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=cfg.ipfs_api_url.rstrip("/"),
            timeout=cfg.ipfs_timeout_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, path: str, cid: str) -> httpx.Response:
        try:
            return await self._client.post(path, params={"arg": cid})
        except httpx.HTTPError as exc:
            raise PinningError(f"{path} for {cid} failed: {exc}") from exc

    async def is_pinned(self, cid: str) -> bool:
        response = await self._post("/api/v0/pin/ls", cid)
        if response.status_code == HTTP_OK:
            keys = response.json().get("Keys") or {}
            return bool(keys)
        message = _error_message(response)
        if NOT_PINNED_MARKER in message:
            return False
        raise PinningError(f"pin/ls {cid} returned {response.status_code}: {message}")

    async def unpin(self, cid: str) -> bool:
        """Remove the pin for ``cid``; returns False when it was not pinned."""
        response = await self._post("/api/v0/pin/rm", cid)
        if response.status_code == HTTP_OK:
            logger.info("Unpinned %s", cid)
            return True
        message = _error_message(response)
        if NOT_PINNED_MARKER in message:
            logger.info("CID %s was already unpinned", cid)
            return False
        raise PinningError(f"pin/rm {cid} returned {response.status_code}: {message}")
