"""Common types and helpers shared across models."""

from collections.abc import Mapping
from typing import TypeAlias

AuctionId: TypeAlias = str  # 0x-prefixed bytes32
Address: TypeAlias = str

WAD = 10**18
GWEI = 10**9


def wad_to_float(value: int) -> float:
    """Convert an 18-decimal fixed-point integer to a float."""
    return value / WAD


def wei_to_gwei(value: int) -> float:
    return value / GWEI


def gwei_to_wei(value: float) -> int:
    return int(round(value * GWEI))


def market_id_for(symbol: str) -> str:
    """Encode a market symbol like 'XAU/USD' as a right-padded bytes32 id."""
    raw = symbol.encode("ascii")
    if len(raw) > 32:
        raise ValueError(f"Market symbol too long: {symbol}")
    return "0x" + raw.hex().ljust(64, "0")


def market_symbol(market_id: str, markets: Mapping[str, str] | None = None) -> str:
    """Display name for a market id.

    Configured names win; otherwise a best-effort reverse of market_id_for,
    falling back to a shortened id.
    """
    for name, configured_id in (markets or {}).items():
        if configured_id.lower() == market_id.lower():
            return name
    try:
        raw = bytes.fromhex(market_id.removeprefix("0x")).rstrip(b"\x00")
        text = raw.decode("ascii")
        if text and text.isprintable():
            return text
    except (ValueError, UnicodeDecodeError):
        pass
    return short_id(market_id)


def short_id(hex_id: str, length: int = 10) -> str:
    return hex_id[:length] + "..." if len(hex_id) > length else hex_id
