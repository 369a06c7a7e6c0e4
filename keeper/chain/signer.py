"""Keeper signer and transaction sender (chain-write interface)."""

import asyncio
import logging

from eth_account import Account
from eth_utils import to_checksum_address

from keeper.chain.rpc_client import RpcClient
from keeper.config.schema import GasConfig
from keeper.models.common import gwei_to_wei

logger = logging.getLogger(__name__)


class KeeperSigner:
    """Opaque signing capability backed by a local private key."""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, tx: dict) -> bytes:
        return bytes(self._account.sign_transaction(tx).raw_transaction)

    def __repr__(self) -> str:
        return f"KeeperSigner(address={self.address})"


class TransactionSender:
    """Builds, signs and broadcasts EIP-1559 transactions for one account.

    Submissions from concurrent fills are serialised under a lock so each
    gets a distinct nonce. Only the broadcast is serialised; confirmation
    waits happen outside.
    """

    def __init__(
        self,
        rpc: RpcClient,
        signer: KeeperSigner,
        chain_id: int,
        gas_config: GasConfig | None = None,
    ):
        self.rpc = rpc
        self.signer = signer
        self.chain_id = chain_id
        self.gas_config = gas_config or GasConfig()
        self._lock = asyncio.Lock()
        self._nonce: int | None = None

    @property
    def address(self) -> str:
        return self.signer.address

    async def submit(self, to: str, data: str) -> str:
        """Sign and broadcast a call to `to` with calldata `data`. Returns the tx hash."""
        async with self._lock:
            gas = await self.rpc.estimate_gas(to, data, self.address)
            gas_limit = int(gas * self.gas_config.gas_limit_buffer)

            max_fee, priority = await self.rpc.estimate_fee_params()
            if max_fee is None:
                max_fee = gwei_to_wei(self.gas_config.max_fee_floor_gwei)
            if priority is None:
                priority = gwei_to_wei(self.gas_config.priority_fee_floor_gwei)
            max_fee = max(max_fee, priority)

            nonce = await self._next_nonce()
            tx = {
                "type": 2,
                "chainId": self.chain_id,
                "nonce": nonce,
                "to": to_checksum_address(to),
                "value": 0,
                "data": data,
                "gas": gas_limit,
                "maxFeePerGas": max_fee,
                "maxPriorityFeePerGas": priority,
            }
            raw = self.signer.sign(tx)
            try:
                tx_hash = await self.rpc.send_raw_transaction(raw)
            except Exception:
                # Resync from the node on the next submission
                self._nonce = None
                raise
            self._nonce = nonce + 1
            logger.debug(
                "Broadcast tx=%s nonce=%d gas=%d maxFee=%d", tx_hash, nonce, gas_limit, max_fee
            )
            return tx_hash

    async def _next_nonce(self) -> int:
        chain_nonce = await self.rpc.get_transaction_count(self.address, "pending")
        if self._nonce is None:
            return chain_nonce
        return max(chain_nonce, self._nonce)
