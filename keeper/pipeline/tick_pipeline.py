"""Tick pipeline: one discovery -> evaluate -> fill cycle, plus component wiring."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass

from keeper.chain.auction_engine import AuctionEngine
from keeper.chain.rpc_client import RpcClient
from keeper.chain.signer import KeeperSigner, TransactionSender
from keeper.config.schema import KeeperConfig
from keeper.execution.fill_executor import FillExecutor
from keeper.execution.gas_estimator import GasEstimator
from keeper.execution.pending_guard import PendingFillGuard
from keeper.execution.profitability import ProfitabilityEvaluator
from keeper.ingest.auction_discovery import AuctionDiscovery
from keeper.models.reporting import TickSummary
from keeper.reporting.formatters import format_summary_text
from keeper.reporting.tick_summarizer import TickSummarizer

logger = logging.getLogger(__name__)


@dataclass
class KeeperComponents:
    rpc: RpcClient
    signer: KeeperSigner | None
    engine: AuctionEngine | None
    gas_estimator: GasEstimator
    discovery: AuctionDiscovery
    evaluator: ProfitabilityEvaluator | None
    fill_executor: FillExecutor | None

    @property
    def read_only(self) -> bool:
        return self.fill_executor is None


def build_components(config: KeeperConfig, rpc: RpcClient | None = None) -> KeeperComponents:
    """Wire the keeper from config. No signer means no FillExecutor (read-only)."""
    if rpc is None:
        rpc = RpcClient(
            config.rpc.url,
            timeout=config.rpc.timeout_seconds,
            receipt_poll_interval=config.rpc.receipt_poll_interval_seconds,
            log_poll_interval=config.rpc.log_poll_interval_seconds,
            base_fee_multiplier=config.gas.base_fee_multiplier,
            max_log_block_range=config.rpc.max_log_block_range,
        )

    signer = None
    if config.signer.configured:
        signer = KeeperSigner(config.signer.private_key.get_secret_value())

    engine = None
    if config.contracts.liquidation_engine:
        sender = (
            TransactionSender(rpc, signer, config.rpc.chain_id, config.gas)
            if signer is not None
            else None
        )
        engine = AuctionEngine(rpc, config.contracts.liquidation_engine, sender)

    gas_estimator = GasEstimator(rpc, config.gas, config.retry.gas)
    discovery = AuctionDiscovery(
        engine,
        retry=config.retry.default,
        restart_cooldown=config.keeper.restart_cooldown_seconds,
    )

    evaluator = None
    fill_executor = None
    if engine is not None:
        evaluator = ProfitabilityEvaluator(
            engine,
            gas_estimator,
            min_profit_usd=config.keeper.min_profit_usd,
            gas_failure_policy=config.keeper.gas_failure_policy,
        )
        if signer is not None:
            fill_executor = FillExecutor(
                rpc,
                engine,
                evaluator,
                keeper_address=signer.address,
                guard=PendingFillGuard(),
                retry=config.retry.fill,
                confirmation_timeout=config.keeper.confirmation_timeout_seconds,
            )

    return KeeperComponents(
        rpc=rpc,
        signer=signer,
        engine=engine,
        gas_estimator=gas_estimator,
        discovery=discovery,
        evaluator=evaluator,
        fill_executor=fill_executor,
    )


class TickPipeline:
    def __init__(self, discovery: AuctionDiscovery, fill_executor: FillExecutor | None):
        self.discovery = discovery
        self.fill_executor = fill_executor

    @property
    def mode(self) -> str:
        return "read-only" if self.fill_executor is None else "live"

    async def run(self, trigger: str = "timer") -> TickSummary:
        """Execute one tick. Fills run concurrently; one failure never aborts the others."""
        start_time = time.monotonic()
        summarizer = TickSummarizer(str(uuid.uuid4()), trigger, self.mode)

        try:
            auctions = await self.discovery.list_active()
            summarizer.record_discovery(len(auctions))

            if not auctions:
                logger.debug("No active auctions")
            elif self.fill_executor is None:
                logger.info("Read-only mode: %d active auctions, not filling", len(auctions))
            else:
                logger.info("Found %d active auctions (%s)", len(auctions), trigger)
                results = await asyncio.gather(
                    *(self.fill_executor.fill(a) for a in auctions),
                    return_exceptions=True,
                )
                for auction, result in zip(auctions, results):
                    if isinstance(result, BaseException):
                        logger.error("Fill crashed auction=%s: %r", auction.auction_id, result)
                        summarizer.record_error(f"{auction.auction_id}: {result!r}")
                    else:
                        summarizer.record_fill_result(result)

        except Exception as e:
            logger.exception("Tick failed")
            summarizer.record_error(str(e))

        summarizer.record_duration(time.monotonic() - start_time)
        summary = summarizer.finalize()
        if summary.auctions_found or summary.errors:
            logger.info("\n%s", format_summary_text(summary))
        return summary
