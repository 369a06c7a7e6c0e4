"""Tests for gas cost estimation."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from keeper.chain.rpc_client import RpcClientError
from keeper.config.schema import GasConfig, RetryConfig
from keeper.execution.gas_estimator import GasEstimator, is_profitable_after_gas

ENGINE = "0x" + "11" * 20


@pytest.fixture
def rpc():
    return MagicMock(
        estimate_gas=AsyncMock(return_value=500_000),
        estimate_fee_params=AsyncMock(return_value=(2_000_000_000, 100_000_000)),
        get_gas_price=AsyncMock(return_value=1_500_000_000),
    )


class TestGasEstimator:
    @pytest.mark.asyncio
    async def test_cost_conversion(self, rpc):
        estimator = GasEstimator(rpc, GasConfig(eth_price_usd=3000.0))
        estimate = await estimator.estimate(ENGINE, "0x", "0xkeeper")
        assert estimate.gas_limit == 500_000
        assert estimate.fee_per_gas == 2_000_000_000
        assert estimate.priority_fee_per_gas == 100_000_000
        # 500k gas * 2 gwei = 0.001 ETH = $3
        assert estimate.estimated_cost_native == 10**15
        assert estimate.estimated_cost_usd == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_floors_when_fees_unreported(self, rpc):
        rpc.estimate_fee_params.return_value = (None, None)
        estimator = GasEstimator(rpc, GasConfig(max_fee_floor_gwei=0.1, priority_fee_floor_gwei=0.01))
        estimate = await estimator.estimate(ENGINE, "0x")
        assert estimate.fee_per_gas == 100_000_000
        assert estimate.priority_fee_per_gas == 10_000_000

    @pytest.mark.asyncio
    async def test_retries_then_raises(self, rpc):
        rpc.estimate_gas.side_effect = RpcClientError("execution reverted")
        estimator = GasEstimator(rpc, GasConfig(), RetryConfig(max_attempts=2, base_delay_seconds=1.0))
        with patch("keeper.utils.retry._sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(RpcClientError):
                await estimator.estimate(ENGINE, "0x")
        assert rpc.estimate_gas.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_recovers_on_second_attempt(self, rpc):
        rpc.estimate_gas.side_effect = [RpcClientError("timeout"), 21_000]
        estimator = GasEstimator(rpc)
        with patch("keeper.utils.retry._sleep", new_callable=AsyncMock):
            estimate = await estimator.estimate(ENGINE, "0x")
        assert estimate.gas_limit == 21_000

    @pytest.mark.asyncio
    async def test_current_gas_price(self, rpc):
        gwei, wei = await GasEstimator(rpc).current_gas_price()
        assert wei == 1_500_000_000
        assert gwei == pytest.approx(1.5)


class TestIsProfitableAfterGas:
    def test_boundary_inclusive(self):
        assert is_profitable_after_gas(7.0, 2.0, 5.0)

    def test_below_minimum(self):
        assert not is_profitable_after_gas(6.99, 2.0, 5.0)
