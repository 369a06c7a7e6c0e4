"""Liquidation engine ABI and helpers for raw ids, topics and logs."""

from collections.abc import Mapping
from typing import Any

from eth_utils import encode_hex, event_abi_to_log_topic, to_bytes
from hexbytes import HexBytes


class AbiDecodeError(Exception):
    """Raised when return data or a log cannot be decoded."""


AUCTION_COMPONENTS = [
    {"name": "auctionId", "type": "bytes32"},
    {"name": "positionId", "type": "bytes32"},
    {"name": "trader", "type": "address"},
    {"name": "marketId", "type": "bytes32"},
    {"name": "originalSize", "type": "int256"},
    {"name": "remainingSize", "type": "int256"},
    {"name": "startPrice", "type": "uint256"},
    {"name": "endPrice", "type": "uint256"},
    {"name": "startTime", "type": "uint256"},
    {"name": "duration", "type": "uint256"},
    {"name": "isActive", "type": "bool"},
]

LIQUIDATION_STARTED_ABI = {
    "name": "LiquidationStarted",
    "type": "event",
    "anonymous": False,
    "inputs": [
        {"name": "auctionId", "type": "bytes32", "indexed": True},
        {"name": "positionId", "type": "bytes32", "indexed": True},
        {"name": "trader", "type": "address", "indexed": True},
        {"name": "size", "type": "int256", "indexed": False},
        {"name": "startPrice", "type": "uint256", "indexed": False},
        {"name": "endPrice", "type": "uint256", "indexed": False},
    ],
}

AUCTION_FILLED_ABI = {
    "name": "AuctionFilled",
    "type": "event",
    "anonymous": False,
    "inputs": [
        {"name": "auctionId", "type": "bytes32", "indexed": True},
        {"name": "filler", "type": "address", "indexed": True},
        {"name": "fillSize", "type": "int256", "indexed": False},
        {"name": "fillPrice", "type": "uint256", "indexed": False},
        {"name": "profit", "type": "uint256", "indexed": False},
    ],
}

LIQUIDATION_ENGINE_ABI = [
    {
        "name": "getAllActiveAuctions",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32[]"}],
    },
    {
        "name": "getAuction",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "auctionId", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "tuple", "components": AUCTION_COMPONENTS}],
    },
    {
        "name": "calculateKeeperProfit",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "auctionId", "type": "bytes32"},
            {"name": "fillSize", "type": "int256"},
        ],
        "outputs": [
            {"name": "profit", "type": "uint256"},
            {"name": "fillPrice", "type": "uint256"},
        ],
    },
    {
        "name": "fillAuction",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "auctionId", "type": "bytes32"},
            {"name": "fillSize", "type": "int256"},
        ],
        "outputs": [],
    },
    LIQUIDATION_STARTED_ABI,
    AUCTION_FILLED_ABI,
]

LIQUIDATION_STARTED_TOPIC = encode_hex(event_abi_to_log_topic(LIQUIDATION_STARTED_ABI))
AUCTION_FILLED_TOPIC = encode_hex(event_abi_to_log_topic(AUCTION_FILLED_ABI))


def bytes32(hex_value: str) -> bytes:
    """Convert a 0x-prefixed hex id into exactly 32 bytes."""
    raw = to_bytes(hexstr=hex_value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}: {hex_value}")
    return raw


def topic_hex(topic: Any) -> str:
    """Lower-case 0x hex for a topic given as str or bytes. Empty for anything else."""
    if isinstance(topic, str):
        return topic.lower() if topic.startswith(("0x", "0X")) else "0x" + topic.lower()
    if isinstance(topic, bytes):
        return encode_hex(topic)
    return ""


def _block_int(value: Any) -> int:
    if value is None:
        return 0
    return int(value, 16) if isinstance(value, str) else int(value)


def normalize_log(log: Mapping) -> dict[str, Any]:
    """Coerce a log from either raw JSON-RPC or web3 formatting into web3's shape.

    Raises TypeError, ValueError or AttributeError on malformed input.
    """
    return {
        "address": log.get("address"),
        "topics": [HexBytes(t) for t in log["topics"]],
        "data": HexBytes(log.get("data") or b""),
        "blockNumber": _block_int(log.get("blockNumber")),
        "blockHash": HexBytes(log.get("blockHash") or b""),
        "transactionHash": HexBytes(log.get("transactionHash") or b""),
        "transactionIndex": _block_int(log.get("transactionIndex")),
        "logIndex": _block_int(log.get("logIndex")),
    }
