"""Tests for profitability evaluation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from keeper.chain.rpc_client import RpcClientError
from keeper.config.schema import GasFailurePolicy
from keeper.execution.profitability import ProfitabilityEvaluator
from keeper.models.common import WAD
from keeper.models.execution import GasEstimate

ENGINE = "0x" + "11" * 20
KEEPER = "0x" + "44" * 20
AUCTION = "0x" + f"{1:064x}"


def gas_estimate(cost_usd: float) -> GasEstimate:
    return GasEstimate(
        gas_limit=300_000,
        fee_per_gas=10**8,
        priority_fee_per_gas=10**6,
        estimated_cost_native=3 * 10**13,
        estimated_cost_usd=cost_usd,
    )


@pytest.fixture
def engine():
    return MagicMock(
        address=ENGINE,
        calculate_keeper_profit=AsyncMock(return_value=(7 * WAD, 2000 * WAD)),
        encode_fill=MagicMock(return_value="0xfill"),
    )


@pytest.fixture
def gas():
    return MagicMock(estimate=AsyncMock(return_value=gas_estimate(2.0)))


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_profitable_at_boundary(self, engine, gas):
        evaluator = ProfitabilityEvaluator(engine, gas, min_profit_usd=5.0)
        result = await evaluator.evaluate(AUCTION, WAD, KEEPER)
        assert result.is_profitable
        assert result.gross_profit_wad == 7 * WAD
        assert result.gross_profit_usd == 7.0
        assert result.net_profit_usd == 5.0
        assert result.fill_price == 2000 * WAD
        assert result.gas_estimate.estimated_cost_usd == 2.0
        gas.estimate.assert_awaited_once_with(ENGINE, "0xfill", KEEPER)

    @pytest.mark.asyncio
    async def test_unprofitable_below_minimum(self, engine, gas):
        gas.estimate.return_value = gas_estimate(2.01)
        evaluator = ProfitabilityEvaluator(engine, gas, min_profit_usd=5.0)
        result = await evaluator.evaluate(AUCTION, WAD, KEEPER)
        assert not result.is_profitable
        assert result.net_profit_usd == pytest.approx(4.99)

    @pytest.mark.asyncio
    async def test_quote_failure_is_zeroed(self, engine, gas):
        engine.calculate_keeper_profit.side_effect = RpcClientError("execution reverted")
        evaluator = ProfitabilityEvaluator(engine, gas)
        result = await evaluator.evaluate(AUCTION, WAD, KEEPER)
        assert not result.is_profitable
        assert result.gross_profit_wad == 0
        assert result.net_profit_usd == 0.0
        assert result.gas_estimate is None
        gas.estimate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gas_failure_gross_only(self, engine, gas):
        gas.estimate.side_effect = RpcClientError("estimate failed")
        evaluator = ProfitabilityEvaluator(
            engine, gas, min_profit_usd=5.0, gas_failure_policy=GasFailurePolicy.GROSS_ONLY
        )
        result = await evaluator.evaluate(AUCTION, WAD, KEEPER)
        assert result.is_profitable
        assert result.gas_estimate is None
        assert result.net_profit_usd == 7.0

    @pytest.mark.asyncio
    async def test_gas_failure_fail_closed(self, engine, gas):
        gas.estimate.side_effect = RpcClientError("estimate failed")
        evaluator = ProfitabilityEvaluator(
            engine, gas, min_profit_usd=5.0, gas_failure_policy=GasFailurePolicy.FAIL_CLOSED
        )
        result = await evaluator.evaluate(AUCTION, WAD, KEEPER)
        assert not result.is_profitable
        assert result.gross_profit_usd == 7.0

    @pytest.mark.asyncio
    async def test_no_keeper_address_skips_gas(self, engine, gas):
        evaluator = ProfitabilityEvaluator(engine, gas, min_profit_usd=5.0)
        result = await evaluator.evaluate(AUCTION, WAD)
        assert result.net_profit_usd == 7.0
        gas.estimate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fresh_quote_each_call(self, engine, gas):
        evaluator = ProfitabilityEvaluator(engine, gas)
        await evaluator.evaluate(AUCTION, WAD, KEEPER)
        await evaluator.evaluate(AUCTION, WAD, KEEPER)
        assert engine.calculate_keeper_profit.await_count == 2


class TestFindOptimalFillSize:
    @pytest.mark.asyncio
    async def test_full_size_when_profitable(self, engine, gas):
        evaluator = ProfitabilityEvaluator(engine, gas, min_profit_usd=1.0)
        size, result = await evaluator.find_optimal_fill_size(AUCTION, 3 * WAD, KEEPER)
        assert size == 3 * WAD
        assert result.is_profitable
        engine.calculate_keeper_profit.assert_awaited_once_with(AUCTION, 3 * WAD)

    @pytest.mark.asyncio
    async def test_zero_when_unprofitable(self, engine, gas):
        evaluator = ProfitabilityEvaluator(engine, gas, min_profit_usd=100.0)
        size, result = await evaluator.find_optimal_fill_size(AUCTION, 3 * WAD, KEEPER)
        assert size == 0
        assert not result.is_profitable
