"""Tests for the Kubo pinning client."""

from __future__ import annotations

import httpx
import pytest

from reply_ledger.services.pinning import PinningError, PinningService


def _service(handler, test_settings) -> PinningService:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://ipfs.local:5001"
    )
    return PinningService(test_settings, http_client=http_client)


@pytest.mark.asyncio
async def test_is_pinned(test_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v0/pin/ls"
        assert request.url.params["arg"] == "bafy-1"
        return httpx.Response(200, json={"Keys": {"bafy-1": {"Type": "recursive"}}})

    assert await _service(handler, test_settings).is_pinned("bafy-1") is True


@pytest.mark.asyncio
async def test_not_pinned_answer_is_false(test_settings) -> None:
    service = _service(
        lambda request: httpx.Response(
            500, json={"Message": "path 'bafy-2' is not pinned", "Code": 0}
        ),
        test_settings,
    )

    assert await service.is_pinned("bafy-2") is False
    assert await service.unpin("bafy-2") is False


@pytest.mark.asyncio
async def test_unpin(test_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v0/pin/rm"
        return httpx.Response(200, json={"Pins": ["bafy-3"]})

    assert await _service(handler, test_settings).unpin("bafy-3") is True


@pytest.mark.asyncio
async def test_other_errors_raise(test_settings) -> None:
    service = _service(
        lambda request: httpx.Response(500, json={"Message": "repo locked"}), test_settings
    )

    with pytest.raises(PinningError, match="repo locked"):
        await service.unpin("bafy-4")


@pytest.mark.asyncio
async def test_transport_errors_raise(test_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PinningError):
        await _service(handler, test_settings).is_pinned("bafy-5")
