"""Reporting and operational health models."""

from dataclasses import dataclass, field


@dataclass
class TickSummary:
    tick_id: str
    trigger: str  # "timer", "event" or "manual"
    mode: str  # "live" or "read-only"
    auctions_found: int = 0
    fills_attempted: int = 0
    fills_succeeded: int = 0
    fills_unprofitable: int = 0
    fills_pending: int = 0
    fills_reverted: int = 0
    fills_failed: int = 0
    best_net_profit_usd: float = 0.0
    best_auction_id: str = ""
    duration_seconds: float = 0.0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class HealthStatus:
    rpc_reachable: bool
    chain_id: int | None
    chain_id_matches: bool
    latest_block: int | None
    signer_configured: bool
    keeper_address: str | None
    keeper_balance_eth: float | None
    liquidation_engine_configured: bool
    last_tick_age_seconds: float | None
    mode: str
