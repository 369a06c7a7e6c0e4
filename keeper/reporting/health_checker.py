"""Health checker: RPC reachability, chain id, signer balance, tick freshness."""

from datetime import UTC, datetime

from keeper.chain.rpc_client import RpcClient, RpcClientError
from keeper.config.schema import KeeperConfig
from keeper.models.common import wad_to_float
from keeper.models.reporting import HealthStatus


class HealthChecker:
    def __init__(
        self,
        config: KeeperConfig,
        rpc: RpcClient,
        keeper_address: str | None = None,
    ):
        self.config = config
        self.rpc = rpc
        self.keeper_address = keeper_address

    async def check(self, daemon_state: dict | None = None) -> HealthStatus:
        chain_id = await self._chain_id()
        latest_block = await self._latest_block() if chain_id is not None else None
        balance = await self._balance() if chain_id is not None else None

        return HealthStatus(
            rpc_reachable=chain_id is not None,
            chain_id=chain_id,
            chain_id_matches=chain_id == self.config.rpc.chain_id,
            latest_block=latest_block,
            signer_configured=self.keeper_address is not None,
            keeper_address=self.keeper_address,
            keeper_balance_eth=balance,
            liquidation_engine_configured=bool(self.config.contracts.liquidation_engine),
            last_tick_age_seconds=_last_tick_age_seconds(daemon_state),
            mode="read-only" if self.keeper_address is None else "live",
        )

    async def _chain_id(self) -> int | None:
        try:
            return await self.rpc.get_chain_id()
        except RpcClientError:
            return None

    async def _latest_block(self) -> int | None:
        try:
            return await self.rpc.get_block_number()
        except RpcClientError:
            return None

    async def _balance(self) -> float | None:
        if self.keeper_address is None:
            return None
        try:
            return wad_to_float(await self.rpc.get_balance(self.keeper_address))
        except RpcClientError:
            return None


def _last_tick_age_seconds(state: dict | None) -> float | None:
    if not state or not state.get("last_tick_at"):
        return None
    try:
        last = datetime.fromisoformat(state["last_tick_at"])
    except (ValueError, TypeError):
        return None
    if last.tzinfo is None:
        last = last.replace(tzinfo=UTC)
    return (datetime.now(UTC) - last).total_seconds()
