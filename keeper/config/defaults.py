"""Default market identifiers (bytes32-encoded symbols)."""

from keeper.models.common import market_id_for

DEFAULT_MARKETS: dict[str, str] = {
    "XAU/USD": market_id_for("XAU/USD"),
    "SPX/USD": market_id_for("SPX/USD"),
}
