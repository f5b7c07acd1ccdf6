"""Blockchain gateway for the response-recording contract.

Writes are fire-and-forget: ``submit_record_response`` returns as soon as the
signed transaction is accepted by the RPC node, and confirmation depth is
polled separately by the tracker workers.
"""

from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from reply_ledger.core.settings import Settings, settings

logger = logging.getLogger(__name__)

RESPONSE_REGISTRY_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"name": "replyPostId", "type": "string"},
            {"name": "sourcePostId", "type": "string"},
            {"name": "contentHash", "type": "bytes32"},
        ],
        "name": "recordResponse",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "sourcePostId", "type": "string"}],
        "name": "hasResponse",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "sourcePostId", "type": "string"}],
        "name": "getResponse",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class BlockchainError(RuntimeError):
    """Raised when an RPC call or a transaction submission fails."""


def content_hash_bytes(content_hash: str) -> bytes:
    """Convert a ``0x``-prefixed SHA-256 hex string into ``bytes32``."""
    raw = content_hash[2:] if content_hash.lower().startswith("0x") else content_hash
    try:
        value = bytes.fromhex(raw)
    except ValueError as exc:
        raise BlockchainError(f"Invalid content hash {content_hash!r}") from exc
    if len(value) != 32:
        raise BlockchainError(f"Content hash must be 32 bytes, got {len(value)}")
    return value


class BlockchainGateway:
    """Submit/query primitives for one deployment of the recording contract."""

    def __init__(
        self,
        rpc_url: str,
        *,
        contract_address: str | None = None,
        private_key: str | None = None,
        chain_id: int | None = None,
        timeout_seconds: float = 30.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds})
        )
        self._account: LocalAccount | None = (
            Account.from_key(private_key) if private_key else None
        )
        self._contract: Any = None
        if contract_address:
            self._contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=RESPONSE_REGISTRY_ABI,
            )

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> BlockchainGateway:
        cfg = config or settings
        address = cfg.contract_address
        if not address or int(address, 16) == 0:
            address = None
        return cls(
            cfg.rpc_url,
            contract_address=address,
            private_key=cfg.private_key,
            chain_id=cfg.chain_id,
            timeout_seconds=cfg.rpc_timeout_seconds,
        )

    @property
    def can_submit(self) -> bool:
        return self._contract is not None and self._account is not None

    async def close(self) -> None:
        provider = self._w3.provider
        if hasattr(provider, "disconnect"):
            await provider.disconnect()

    def _require_contract(self) -> Any:
        if self._contract is None:
            raise BlockchainError("No recording contract configured")
        return self._contract

    async def current_block_height(self) -> int:
        try:
            return int(await self._w3.eth.block_number)
        except Exception as exc:
            raise BlockchainError(f"Failed to read block height from {self.rpc_url}: {exc}") from exc

    async def has_response(self, source_post_id: str) -> bool:
        """Return True when the contract already holds a reply for ``source_post_id``."""
        contract = self._require_contract()
        try:
            return bool(await contract.functions.hasResponse(source_post_id).call())
        except Exception as exc:
            raise BlockchainError(f"hasResponse({source_post_id}) failed: {exc}") from exc

    async def get_response(self, source_post_id: str) -> str:
        """Return the reply post id recorded for ``source_post_id``."""
        contract = self._require_contract()
        try:
            return str(await contract.functions.getResponse(source_post_id).call())
        except Exception as exc:
            raise BlockchainError(f"getResponse({source_post_id}) failed: {exc}") from exc

    async def submit_record_response(
        self, reply_post_id: str, source_post_id: str, content_hash: str
    ) -> str:
        """Sign and broadcast ``recordResponse`` and return the transaction hash."""
        contract = self._require_contract()
        if self._account is None:
            raise BlockchainError("No signing key configured")
        digest = content_hash_bytes(content_hash)

        try:
            nonce = await self._w3.eth.get_transaction_count(self._account.address, "pending")
            tx_params: dict[str, Any] = {"from": self._account.address, "nonce": nonce}
            if self.chain_id is not None:
                tx_params["chainId"] = self.chain_id
            tx = await contract.functions.recordResponse(
                reply_post_id, source_post_id, digest
            ).build_transaction(tx_params)
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise BlockchainError(
                f"recordResponse({reply_post_id}, {source_post_id}) failed: {exc}"
            ) from exc

        hex_hash = Web3.to_hex(tx_hash)
        logger.info(
            "Submitted response record for reply %s (source %s): %s",
            reply_post_id,
            source_post_id,
            hex_hash,
        )
        return hex_hash

    async def get_transaction_confirmations(self, tx_hash: str) -> int | None:
        """Return the confirmation depth of ``tx_hash``.

        ``0`` means the transaction is known but not mined yet and ``None``
        means the node does not know it at all. Other failures raise.
        """
        try:
            tx = await self._w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            logger.debug("Transaction %s not found", tx_hash)
            return None
        except Exception as exc:
            raise BlockchainError(f"get_transaction({tx_hash}) failed: {exc}") from exc
        if tx is None:
            return None

        mined_in = tx.get("blockNumber")
        if mined_in is None:
            return 0
        current = await self.current_block_height()
        return max(0, current - int(mined_in) + 1)


def build_chain_gateways(config: Settings | None = None) -> dict[int, BlockchainGateway]:
    """Create a read-only gateway per chain the metadata tracker watches."""
    cfg = config or settings
    return {
        chain_id: BlockchainGateway(
            url, chain_id=chain_id, timeout_seconds=cfg.rpc_timeout_seconds
        )
        for chain_id, url in cfg.metadata_rpc_urls.items()
    }
