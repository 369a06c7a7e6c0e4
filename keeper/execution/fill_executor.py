"""Fill executor: coordinates pending guard, fresh profitability check, submission, confirmation."""

import logging

from keeper.chain.auction_engine import AuctionEngine
from keeper.chain.rpc_client import RpcClient
from keeper.config.schema import RetryConfig
from keeper.execution.pending_guard import PendingFillGuard
from keeper.execution.profitability import ProfitabilityEvaluator
from keeper.models.auction import Auction
from keeper.models.execution import (
    ConfirmationStatus,
    FillResult,
    FillStatus,
    ProfitabilityResult,
)
from keeper.utils.retry import with_retry

logger = logging.getLogger(__name__)

FILL_RETRY = RetryConfig(max_attempts=2, base_delay_seconds=0.5)
CONFIRMATION_TIMEOUT = 60.0

ERR_PENDING = "fill already pending"
ERR_NOT_PROFITABLE = "not profitable"
ERR_REVERTED = "transaction reverted"


class FillExecutor:
    def __init__(
        self,
        rpc: RpcClient,
        engine: AuctionEngine,
        evaluator: ProfitabilityEvaluator,
        keeper_address: str,
        guard: PendingFillGuard | None = None,
        retry: RetryConfig = FILL_RETRY,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
    ):
        self.rpc = rpc
        self.engine = engine
        self.evaluator = evaluator
        self.keeper_address = keeper_address
        self.guard = guard if guard is not None else PendingFillGuard()
        self.retry = retry
        self.confirmation_timeout = confirmation_timeout

    async def fill(self, auction: Auction) -> FillResult:
        """Fill an auction through the full safety pipeline. Never raises.

        1. Skip if a fill for this auction is already in flight
        2. Claim the auction in the pending guard
        3. Re-evaluate profitability at the remaining size
        4. Submit (only the submission call is retried)
        5. Wait for confirmation; a revert is final for this attempt
        """
        auction_id = auction.auction_id

        # 1-2. No await between the check and the insert
        if not self.guard.try_acquire(auction_id):
            logger.debug("Fill already pending auction=%s", auction_id)
            return FillResult(
                auction_id=auction_id,
                success=False,
                status=FillStatus.PENDING,
                error=ERR_PENDING,
            )

        profitability: ProfitabilityResult | None = None
        try:
            # 3. Fresh quote, never reused from an earlier tick
            fill_size = auction.remaining_size
            profitability = await self.evaluator.evaluate(
                auction_id, fill_size, self.keeper_address
            )
            if not profitability.is_profitable:
                logger.debug(
                    "Auction not profitable auction=%s net=$%.4f",
                    auction_id, profitability.net_profit_usd,
                )
                return FillResult(
                    auction_id=auction_id,
                    success=False,
                    status=FillStatus.UNPROFITABLE,
                    error=ERR_NOT_PROFITABLE,
                    profitability=profitability,
                )

            logger.info(
                "Filling auction=%s size=%d net=$%.4f",
                auction_id, fill_size, profitability.net_profit_usd,
            )

            # 4. Submit
            tx_hash = await with_retry(
                lambda: self.engine.submit_fill(auction_id, fill_size),
                self.retry,
                "auction fill transaction",
            )
            logger.info("Fill submitted auction=%s tx=%s", auction_id, tx_hash)

            # 5. Confirm; timeouts raise into the handler below
            confirmation = await self.rpc.wait_for_confirmation(
                tx_hash, self.confirmation_timeout
            )
            if confirmation.status == ConfirmationStatus.SUCCESS:
                logger.info(
                    "Fill confirmed auction=%s tx=%s block=%s gas_used=%s",
                    auction_id, tx_hash, confirmation.block_number, confirmation.gas_used,
                )
                return FillResult(
                    auction_id=auction_id,
                    success=True,
                    status=FillStatus.FILLED,
                    transaction_hash=tx_hash,
                    profitability=profitability,
                )

            logger.error("Fill reverted auction=%s tx=%s", auction_id, tx_hash)
            return FillResult(
                auction_id=auction_id,
                success=False,
                status=FillStatus.REVERTED,
                transaction_hash=tx_hash,
                error=ERR_REVERTED,
                profitability=profitability,
            )

        except Exception as e:
            logger.error("Fill failed auction=%s: %s", auction_id, e)
            return FillResult(
                auction_id=auction_id,
                success=False,
                status=FillStatus.FAILED,
                error=str(e) or type(e).__name__,
                profitability=profitability,
            )

        finally:
            self.guard.release(auction_id)
