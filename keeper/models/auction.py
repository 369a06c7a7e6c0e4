"""Auction and auction-event models for the liquidation engine."""

from dataclasses import dataclass

from keeper.models.common import Address, AuctionId


@dataclass(frozen=True)
class Auction:
    """Dutch auction unwinding a liquidated position.

    The current clearing price is owned by the on-chain engine and is never
    derived from these fields locally.
    """

    auction_id: AuctionId
    position_id: str
    trader: Address
    market_id: str
    original_size: int  # signed, WAD
    remaining_size: int  # signed, WAD; |remaining| <= |original|
    start_price: int  # WAD
    end_price: int  # WAD
    start_time: int  # unix seconds
    duration: int  # seconds
    is_active: bool


@dataclass(frozen=True)
class LiquidationStartedEvent:
    auction_id: AuctionId
    position_id: str
    trader: Address
    size: int
    start_price: int
    end_price: int
    block_number: int
    transaction_hash: str


@dataclass(frozen=True)
class AuctionFilledEvent:
    auction_id: AuctionId
    filler: Address
    fill_size: int
    fill_price: int
    profit: int
    block_number: int
    transaction_hash: str
