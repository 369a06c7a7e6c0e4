"""Gas, profitability and fill models."""

from dataclasses import dataclass
from enum import StrEnum

from keeper.models.common import AuctionId


class FillStatus(StrEnum):
    FILLED = "FILLED"
    PENDING = "PENDING"
    UNPROFITABLE = "UNPROFITABLE"
    REVERTED = "REVERTED"
    FAILED = "FAILED"


class ConfirmationStatus(StrEnum):
    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass(frozen=True)
class Confirmation:
    status: ConfirmationStatus
    transaction_hash: str
    block_number: int | None
    gas_used: int | None


@dataclass(frozen=True)
class GasEstimate:
    gas_limit: int
    fee_per_gas: int  # wei, EIP-1559 maxFeePerGas
    priority_fee_per_gas: int  # wei
    estimated_cost_native: int  # wei
    estimated_cost_usd: float


@dataclass(frozen=True)
class ProfitabilityResult:
    """Point-in-time verdict for one (auction, fill size) pair.

    Must be re-derived right before submission, never reused across retries.
    """

    is_profitable: bool
    gross_profit_wad: int
    gross_profit_usd: float
    fill_price: int
    gas_estimate: GasEstimate | None
    net_profit_usd: float

    @classmethod
    def zeroed(cls) -> "ProfitabilityResult":
        return cls(
            is_profitable=False,
            gross_profit_wad=0,
            gross_profit_usd=0.0,
            fill_price=0,
            gas_estimate=None,
            net_profit_usd=0.0,
        )


@dataclass(frozen=True)
class FillResult:
    auction_id: AuctionId
    success: bool
    status: FillStatus
    transaction_hash: str | None = None
    error: str | None = None
    profitability: ProfitabilityResult | None = None
