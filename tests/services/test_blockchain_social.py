"""Tests for the blockchain gateway and the social poster."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests
import tweepy
from web3.exceptions import TransactionNotFound

from reply_ledger.services.blockchain import (
    BlockchainError,
    BlockchainGateway,
    build_chain_gateways,
    content_hash_bytes,
)
from reply_ledger.services.social import SocialPoster, SocialPosterError
from reply_ledger.utils.hash import content_hash


class FakeEth:
    def __init__(self, height: int) -> None:
        self.height = height
        self.get_transaction = AsyncMock()

    async def _block_number(self) -> int:
        return self.height

    @property
    def block_number(self):
        return self._block_number()


def _gateway(eth: FakeEth) -> BlockchainGateway:
    return BlockchainGateway("http://rpc.local", w3=SimpleNamespace(eth=eth))


def test_content_hash_bytes() -> None:
    assert len(content_hash_bytes(content_hash("hello"))) == 32
    with pytest.raises(BlockchainError):
        content_hash_bytes("0x1234")
    with pytest.raises(BlockchainError):
        content_hash_bytes("0xzz")


@pytest.mark.asyncio
async def test_confirmations_for_mined_transaction() -> None:
    eth = FakeEth(height=1_009)
    eth.get_transaction.return_value = {"blockNumber": 1_000}

    assert await _gateway(eth).get_transaction_confirmations("0xabc") == 10


@pytest.mark.asyncio
async def test_confirmations_for_pending_and_missing_transactions() -> None:
    eth = FakeEth(height=1_000)
    gateway = _gateway(eth)

    eth.get_transaction.return_value = {"blockNumber": None}
    assert await gateway.get_transaction_confirmations("0xabc") == 0

    eth.get_transaction.side_effect = TransactionNotFound("unknown")
    assert await gateway.get_transaction_confirmations("0xabc") is None


@pytest.mark.asyncio
async def test_rpc_failure_raises() -> None:
    eth = FakeEth(height=1_000)
    eth.get_transaction.side_effect = ConnectionError("refused")

    with pytest.raises(BlockchainError):
        await _gateway(eth).get_transaction_confirmations("0xabc")


@pytest.mark.asyncio
async def test_gateway_without_contract_cannot_submit() -> None:
    gateway = _gateway(FakeEth(height=1))

    assert gateway.can_submit is False
    with pytest.raises(BlockchainError):
        await gateway.has_response("post-1")


def test_zero_contract_address_is_not_configured(test_settings) -> None:
    config = test_settings.model_copy(
        update={"contract_address": "0x" + "0" * 40, "private_key": None}
    )

    assert BlockchainGateway.from_settings(config).can_submit is False


def test_chain_gateways_follow_metadata_filter(test_settings) -> None:
    config = test_settings.model_copy(
        update={"chain_rpc_urls": {57: "https://a", 5700: "https://b"}, "metadata_chain_id": 57}
    )

    gateways = build_chain_gateways(config)

    assert list(gateways) == [57]
    assert gateways[57].rpc_url == "https://a"


@pytest.mark.asyncio
async def test_post_reply_returns_new_post_id(test_settings) -> None:
    client = MagicMock()
    client.create_tweet.return_value = SimpleNamespace(data={"id": "1789"})
    poster = SocialPoster(test_settings, client=client)

    assert poster.is_configured()
    assert await poster.post_reply("1700", "@alice hi") == "1789"
    client.create_tweet.assert_called_once_with(text="@alice hi", in_reply_to_tweet_id="1700")


@pytest.mark.asyncio
async def test_post_reply_wraps_tweepy_errors(test_settings) -> None:
    client = MagicMock()
    client.create_tweet.side_effect = tweepy.TweepyException("duplicate content")
    poster = SocialPoster(test_settings, client=client)

    with pytest.raises(SocialPosterError, match="duplicate content"):
        await poster.post_reply("1700", "@alice hi")


@pytest.mark.asyncio
async def test_unconfigured_poster(test_settings) -> None:
    poster = SocialPoster(test_settings)

    assert poster.is_configured() is False
    with pytest.raises(SocialPosterError):
        await poster.post_reply("1700", "text")


@pytest.mark.asyncio
async def test_post_reply_wraps_transport_errors(test_settings) -> None:
    client = MagicMock()
    client.create_tweet.side_effect = requests.exceptions.ConnectionError("connection reset")
    poster = SocialPoster(test_settings, client=client)

    with pytest.raises(SocialPosterError, match="ConnectionError: connection reset"):
        await poster.post_reply("1700", "@alice hi")
