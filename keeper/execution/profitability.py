"""Profitability evaluation: engine-quoted gross profit minus estimated gas cost."""

import logging

from keeper.chain.auction_engine import AuctionEngine
from keeper.config.schema import GasFailurePolicy
from keeper.execution.gas_estimator import GasEstimator
from keeper.models.common import wad_to_float
from keeper.models.execution import GasEstimate, ProfitabilityResult

logger = logging.getLogger(__name__)


class ProfitabilityEvaluator:
    """Decides whether filling an auction is worth it right now.

    `evaluate` never raises: any failure to quote resolves to a zeroed,
    non-profitable result. Gross profit and fill price come from the engine's
    own `calculateKeeperProfit`; pricing math is never redone locally.
    """

    def __init__(
        self,
        engine: AuctionEngine,
        gas_estimator: GasEstimator,
        min_profit_usd: float = 1.0,
        gas_failure_policy: GasFailurePolicy = GasFailurePolicy.GROSS_ONLY,
    ):
        self.engine = engine
        self.gas_estimator = gas_estimator
        self.min_profit_usd = min_profit_usd
        self.gas_failure_policy = gas_failure_policy

    async def evaluate(
        self,
        auction_id: str,
        fill_size: int,
        keeper_address: str | None = None,
    ) -> ProfitabilityResult:
        try:
            gross_wad, fill_price = await self.engine.calculate_keeper_profit(auction_id, fill_size)
        except Exception as e:
            logger.error("Failed to quote keeper profit auction=%s: %s", auction_id, e)
            return ProfitabilityResult.zeroed()

        gross_usd = wad_to_float(gross_wad)
        gas_estimate: GasEstimate | None = None
        net_usd = gross_usd
        gas_failed = False

        # Without a keeper address there is no sender to estimate for
        if keeper_address:
            try:
                call_data = self.engine.encode_fill(auction_id, fill_size)
                gas_estimate = await self.gas_estimator.estimate(
                    self.engine.address, call_data, keeper_address
                )
                net_usd = gross_usd - gas_estimate.estimated_cost_usd
            except Exception as e:
                gas_failed = True
                logger.warning(
                    "Gas estimation failed auction=%s, policy=%s: %s",
                    auction_id, self.gas_failure_policy.value, e,
                )

        is_profitable = net_usd >= self.min_profit_usd
        if gas_failed and self.gas_failure_policy == GasFailurePolicy.FAIL_CLOSED:
            is_profitable = False

        logger.debug(
            "Evaluated auction=%s size=%d gross=$%.4f net=$%.4f min=$%.2f -> %s",
            auction_id, fill_size, gross_usd, net_usd, self.min_profit_usd, is_profitable,
        )
        return ProfitabilityResult(
            is_profitable=is_profitable,
            gross_profit_wad=gross_wad,
            gross_profit_usd=gross_usd,
            fill_price=fill_price,
            gas_estimate=gas_estimate,
            net_profit_usd=net_usd,
        )

    async def find_optimal_fill_size(
        self,
        auction_id: str,
        max_size: int,
        keeper_address: str | None = None,
    ) -> tuple[int, ProfitabilityResult]:
        """Return (fill_size, result). Only the full size is tried for now.

        TODO: binary search over partial sizes once the engine's profit curve
        for partial fills is characterised.
        """
        result = await self.evaluate(auction_id, max_size, keeper_address)
        return (max_size if result.is_profitable else 0), result
