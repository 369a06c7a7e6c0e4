"""Tick summarizer: aggregates discovery and fill outcomes into a TickSummary."""

from keeper.models.execution import FillResult, FillStatus
from keeper.models.reporting import TickSummary


class TickSummarizer:
    def __init__(self, tick_id: str, trigger: str, mode: str):
        self.summary = TickSummary(tick_id=tick_id, trigger=trigger, mode=mode)

    def record_discovery(self, auctions_found: int) -> None:
        self.summary.auctions_found = auctions_found

    def record_fill_result(self, result: FillResult) -> None:
        s = self.summary
        if result.status == FillStatus.PENDING:
            s.fills_pending += 1
            return
        if result.status == FillStatus.UNPROFITABLE:
            s.fills_unprofitable += 1
        else:
            s.fills_attempted += 1
            if result.status == FillStatus.FILLED:
                s.fills_succeeded += 1
            elif result.status == FillStatus.REVERTED:
                s.fills_reverted += 1
            else:
                s.fills_failed += 1

        p = result.profitability
        if p is not None and p.net_profit_usd > s.best_net_profit_usd:
            s.best_net_profit_usd = p.net_profit_usd
            s.best_auction_id = result.auction_id

    def record_duration(self, seconds: float) -> None:
        self.summary.duration_seconds = seconds

    def record_error(self, error: str) -> None:
        self.summary.errors.append(error)

    def finalize(self) -> TickSummary:
        return self.summary
