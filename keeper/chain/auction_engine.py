"""Liquidation engine contract bindings: reads, fill submission and event parsing."""

import logging
from collections.abc import Awaitable, Callable

from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex
from web3.exceptions import Web3Exception

from keeper.chain.abi import (
    AUCTION_FILLED_TOPIC,
    LIQUIDATION_ENGINE_ABI,
    LIQUIDATION_STARTED_TOPIC,
    AbiDecodeError,
    bytes32,
    normalize_log,
)
from keeper.chain.log_watcher import LogWatcher
from keeper.chain.rpc_client import RpcClient
from keeper.chain.signer import TransactionSender
from keeper.models.auction import Auction, AuctionFilledEvent, LiquidationStartedEvent

logger = logging.getLogger(__name__)

# Anything a malformed log can raise while being normalized or decoded
LOG_DECODE_ERRORS = (
    Web3Exception,
    DecodingError,
    KeyError,
    ValueError,
    TypeError,
    AttributeError,
)


class AuctionEngine:
    def __init__(
        self,
        rpc: RpcClient,
        address: str,
        sender: TransactionSender | None = None,
    ):
        self.rpc = rpc
        self.address = address
        self.sender = sender
        self.contract = rpc.contract(address, LIQUIDATION_ENGINE_ABI)

    # --- Reads ---

    async def list_active_auction_ids(self) -> list[str]:
        ids = await self.rpc.call_function(
            self.contract.functions.getAllActiveAuctions(), "getAllActiveAuctions"
        )
        return [encode_hex(i) for i in ids]

    async def get_auction(self, auction_id: str) -> Auction:
        """Fetch one auction. Raises AbiDecodeError on malformed return data."""
        raw = await self.rpc.call_function(
            self.contract.functions.getAuction(bytes32(auction_id)), "getAuction"
        )
        try:
            (
                a_id, position_id, trader, market_id, original_size, remaining_size,
                start_price, end_price, start_time, duration, is_active,
            ) = raw
        except (TypeError, ValueError) as e:
            raise AbiDecodeError(f"getAuction: unexpected shape: {e}") from e
        auction = Auction(
            auction_id=encode_hex(a_id),
            position_id=encode_hex(position_id),
            trader=trader,
            market_id=encode_hex(market_id),
            original_size=original_size,
            remaining_size=remaining_size,
            start_price=start_price,
            end_price=end_price,
            start_time=start_time,
            duration=duration,
            is_active=bool(is_active),
        )
        if abs(auction.remaining_size) > abs(auction.original_size):
            raise AbiDecodeError(
                f"getAuction: remaining size exceeds original for {auction.auction_id}"
            )
        return auction

    async def calculate_keeper_profit(self, auction_id: str, fill_size: int) -> tuple[int, int]:
        """Return (gross_profit_wad, fill_price_wad) as quoted by the engine."""
        profit, fill_price = await self.rpc.call_function(
            self.contract.functions.calculateKeeperProfit(bytes32(auction_id), fill_size),
            "calculateKeeperProfit",
        )
        return profit, fill_price

    # --- Writes ---

    def encode_fill(self, auction_id: str, fill_size: int) -> str:
        return self.contract.encode_abi("fillAuction", args=[bytes32(auction_id), fill_size])

    async def submit_fill(self, auction_id: str, fill_size: int) -> str:
        if self.sender is None:
            raise RuntimeError("No signer configured, cannot submit fills")
        return await self.sender.submit(self.address, self.encode_fill(auction_id, fill_size))

    # --- Events ---

    def event_filter(self, *topics: str) -> dict:
        return {"address": self.address, "topics": [list(topics)]}

    async def get_liquidation_started_logs(
        self, from_block: int, to_block: int | str = "latest"
    ) -> list[dict]:
        return await self.rpc.get_logs(
            {
                **self.event_filter(LIQUIDATION_STARTED_TOPIC),
                "fromBlock": from_block,
                "toBlock": to_block,
            }
        )

    def watch_events(
        self,
        on_logs: Callable[[list[dict]], Awaitable[None]],
        on_error: Callable[[Exception], None],
        from_block: int | None = None,
    ) -> LogWatcher:
        """Subscribe to LiquidationStarted and AuctionFilled logs from this engine."""
        return self.rpc.subscribe_to_logs(
            self.event_filter(LIQUIDATION_STARTED_TOPIC, AUCTION_FILLED_TOPIC),
            on_logs=on_logs,
            on_error=on_error,
            from_block=from_block,
        )

    def parse_liquidation_started(self, log: dict) -> LiquidationStartedEvent | None:
        try:
            event = self.contract.events.LiquidationStarted().process_log(normalize_log(log))
        except LOG_DECODE_ERRORS as e:
            logger.warning("Dropping malformed LiquidationStarted log: %s", e)
            return None
        args = event["args"]
        return LiquidationStartedEvent(
            auction_id=encode_hex(args["auctionId"]),
            position_id=encode_hex(args["positionId"]),
            trader=args["trader"],
            size=args["size"],
            start_price=args["startPrice"],
            end_price=args["endPrice"],
            block_number=event["blockNumber"],
            transaction_hash=encode_hex(event["transactionHash"]),
        )

    def parse_auction_filled(self, log: dict) -> AuctionFilledEvent | None:
        try:
            event = self.contract.events.AuctionFilled().process_log(normalize_log(log))
        except LOG_DECODE_ERRORS as e:
            logger.warning("Dropping malformed AuctionFilled log: %s", e)
            return None
        args = event["args"]
        return AuctionFilledEvent(
            auction_id=encode_hex(args["auctionId"]),
            filler=args["filler"],
            fill_size=args["fillSize"],
            fill_price=args["fillPrice"],
            profit=args["profit"],
            block_number=event["blockNumber"],
            transaction_hash=encode_hex(event["transactionHash"]),
        )
