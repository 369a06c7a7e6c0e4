"""Gas cost estimation for keeper transactions.

Fiat conversion uses the static `gas.eth_price_usd` reference rate from
config, not a live price feed.
"""

import logging

from keeper.chain.rpc_client import RpcClient
from keeper.config.schema import GasConfig, RetryConfig
from keeper.models.common import WAD, gwei_to_wei, wei_to_gwei
from keeper.models.execution import GasEstimate
from keeper.utils.retry import with_retry

logger = logging.getLogger(__name__)

GAS_RETRY = RetryConfig(max_attempts=2, base_delay_seconds=1.0)


class GasEstimator:
    def __init__(
        self,
        rpc: RpcClient,
        gas_config: GasConfig | None = None,
        retry: RetryConfig = GAS_RETRY,
    ):
        self.rpc = rpc
        self.config = gas_config or GasConfig()
        self.retry = retry

    async def estimate(self, target: str, call_data: str, sender: str | None = None) -> GasEstimate:
        """Estimate gas limit and cost for a call. Raises after the retry budget is spent."""
        return await with_retry(
            lambda: self._estimate_once(target, call_data, sender),
            self.retry,
            "gas estimation",
        )

    async def _estimate_once(self, target: str, call_data: str, sender: str | None) -> GasEstimate:
        gas_limit = await self.rpc.estimate_gas(target, call_data, sender)
        fee, priority = await self.rpc.estimate_fee_params()

        if fee is None:
            fee = gwei_to_wei(self.config.max_fee_floor_gwei)
        if priority is None:
            priority = gwei_to_wei(self.config.priority_fee_floor_gwei)

        cost_wei = gas_limit * fee
        cost_usd = cost_wei / WAD * self.config.eth_price_usd
        return GasEstimate(
            gas_limit=gas_limit,
            fee_per_gas=fee,
            priority_fee_per_gas=priority,
            estimated_cost_native=cost_wei,
            estimated_cost_usd=cost_usd,
        )

    async def current_gas_price(self) -> tuple[float, int]:
        """Return the node's legacy gas price as (gwei, wei)."""
        wei = await self.rpc.get_gas_price()
        return wei_to_gwei(wei), wei


def is_profitable_after_gas(profit_usd: float, gas_cost_usd: float, min_profit_usd: float) -> bool:
    net = profit_usd - gas_cost_usd
    profitable = net >= min_profit_usd
    logger.debug(
        "Profitability check: profit=$%.4f gas=$%.4f net=$%.4f min=$%.2f -> %s",
        profit_usd, gas_cost_usd, net, min_profit_usd, profitable,
    )
    return profitable
