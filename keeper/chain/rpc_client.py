"""Async Ethereum RPC client (chain-read and broadcast) over web3's AsyncHTTPProvider."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction
from web3.exceptions import BadFunctionCallOutput, TimeExhausted, Web3Exception

from keeper.chain.abi import AbiDecodeError
from keeper.chain.log_watcher import LogWatcher
from keeper.models.execution import Confirmation, ConfirmationStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

METHOD_NOT_FOUND = -32601

# Everything the provider can raise for a failed round trip
TRANSPORT_ERRORS = (
    Web3Exception,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
    ValueError,
)


class RpcClientError(Exception):
    """Raised when the RPC endpoint is unreachable or returns an error."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ConfirmationTimeoutError(RpcClientError):
    """Raised when a transaction receipt does not appear in time."""


def _error_code(error: Exception) -> int | None:
    """Pull the JSON-RPC error code out of a web3 error, if the node sent one."""
    response = getattr(error, "rpc_response", None)
    body = response.get("error") if isinstance(response, dict) else None
    code = body.get("code") if isinstance(body, dict) else None
    return code if isinstance(code, int) else None


def _status_code(error: Exception) -> int | None:
    return error.status if isinstance(error, aiohttp.ClientResponseError) else None


class RpcClient:
    """Thin wrapper around the AsyncWeb3 calls the keeper needs.

    Every network call is a suspension point. Methods raise RpcClientError on
    failure; degraded behaviour is decided by the callers.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        receipt_poll_interval: float = 1.0,
        log_poll_interval: float = 2.0,
        base_fee_multiplier: float = 1.2,
        max_log_block_range: int = 2000,
        w3: AsyncWeb3 | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.receipt_poll_interval = receipt_poll_interval
        self.log_poll_interval = log_poll_interval
        self.base_fee_multiplier = base_fee_multiplier
        self.max_log_block_range = max_log_block_range
        if w3 is None:
            w3 = AsyncWeb3(
                AsyncHTTPProvider(
                    url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)}
                )
            )
        self.w3 = w3

    async def aclose(self) -> None:
        await self.w3.provider.disconnect()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, pending: Awaitable[T]) -> T:
        try:
            return await pending
        except TRANSPORT_ERRORS as e:
            logger.error("RPC request failed: %s -> %s", method, e)
            raise RpcClientError(
                f"{method}: {e}", code=_error_code(e), status_code=_status_code(e)
            ) from e

    # --- Contracts ---

    def contract(self, address: str, abi: list[dict]) -> AsyncContract:
        return self.w3.eth.contract(address=to_checksum_address(address), abi=abi)

    async def call_function(self, function: AsyncContractFunction, label: str) -> Any:
        """Run a view call. Undecodable return data raises AbiDecodeError."""
        try:
            return await function.call()
        except (BadFunctionCallOutput, DecodingError) as e:
            raise AbiDecodeError(f"{label}: {e}") from e
        except TRANSPORT_ERRORS as e:
            logger.error("RPC request failed: %s -> %s", label, e)
            raise RpcClientError(
                f"{label}: {e}", code=_error_code(e), status_code=_status_code(e)
            ) from e

    # --- Reads ---

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        result = await self._request(
            "eth_call", self.w3.eth.call({"to": to_checksum_address(to), "data": data}, block)
        )
        return encode_hex(result)

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict]:
        params = dict(log_filter)
        if params.get("address"):
            params["address"] = to_checksum_address(params["address"])
        result = await self._request("eth_getLogs", self.w3.eth.get_logs(params))
        return list(result or [])

    async def get_block_number(self) -> int:
        return await self._request("eth_blockNumber", self.w3.eth.block_number)

    async def get_chain_id(self) -> int:
        return await self._request("eth_chainId", self.w3.eth.chain_id)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return await self._request(
            "eth_getBalance", self.w3.eth.get_balance(to_checksum_address(address), block)
        )

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return await self._request(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count(to_checksum_address(address), block),
        )

    # --- Gas ---

    async def estimate_gas(self, to: str, data: str, sender: str | None = None) -> int:
        tx: dict[str, str] = {"to": to_checksum_address(to), "data": data}
        if sender:
            tx["from"] = to_checksum_address(sender)
        return await self._request("eth_estimateGas", self.w3.eth.estimate_gas(tx))

    async def get_gas_price(self) -> int:
        return await self._request("eth_gasPrice", self.w3.eth.gas_price)

    async def get_max_priority_fee(self) -> int | None:
        try:
            return await self._request("eth_maxPriorityFeePerGas", self.w3.eth.max_priority_fee)
        except RpcClientError as e:
            if e.code == METHOD_NOT_FOUND:
                return None
            raise

    async def get_latest_base_fee(self) -> int | None:
        block = await self._request("eth_getBlockByNumber", self.w3.eth.get_block("latest"))
        if not block:
            return None
        return block.get("baseFeePerGas")

    async def estimate_fee_params(self) -> tuple[int | None, int | None]:
        """Return (max_fee_per_gas, max_priority_fee_per_gas) in wei.

        Either component is None when the chain does not report it.
        """
        base_fee = await self.get_latest_base_fee()
        priority = await self.get_max_priority_fee()
        if base_fee is None:
            return None, priority
        max_fee = int(base_fee * self.base_fee_multiplier) + (priority or 0)
        return max_fee, priority

    # --- Transactions ---

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        tx_hash = await self._request(
            "eth_sendRawTransaction", self.w3.eth.send_raw_transaction(raw_tx)
        )
        return encode_hex(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return await self._request(
            "eth_getTransactionReceipt", self.w3.eth.get_transaction_receipt(tx_hash)
        )

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> Confirmation:
        """Wait for the receipt of `tx_hash` for up to `timeout` seconds.

        Raises ConfirmationTimeoutError on timeout and RpcClientError if the
        node errors while being polled.
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.receipt_poll_interval
            )
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"Timed out after {timeout:.0f}s waiting for {tx_hash}"
            ) from e
        except TRANSPORT_ERRORS as e:
            logger.warning("Receipt wait failed for %s: %s", tx_hash, e)
            raise RpcClientError(
                f"eth_getTransactionReceipt: {e}", code=_error_code(e)
            ) from e

        status = (
            ConfirmationStatus.SUCCESS
            if receipt.get("status") == 1
            else ConfirmationStatus.REVERTED
        )
        return Confirmation(
            status=status,
            transaction_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    # --- Subscriptions ---

    def subscribe_to_logs(
        self,
        log_filter: dict[str, Any],
        on_logs: Callable[[list[dict]], Awaitable[None]],
        on_error: Callable[[Exception], None],
        from_block: int | None = None,
    ) -> LogWatcher:
        """Start polling for logs matching `log_filter`.

        The returned watcher is the unsubscribe token: call `cancel()` on it.
        """
        watcher = LogWatcher(
            self,
            log_filter,
            on_logs=on_logs,
            on_error=on_error,
            poll_interval=self.log_poll_interval,
            max_block_range=self.max_log_block_range,
            from_block=from_block,
        )
        watcher.start()
        return watcher
