"""Output formatters for tick summaries."""

import json
from dataclasses import asdict

from keeper.models.common import short_id
from keeper.models.reporting import TickSummary


def format_summary_text(s: TickSummary) -> str:
    """Plain text summary for logging."""
    lines = [
        f"=== Tick Complete ({s.mode}, {s.trigger}) | {s.tick_id[:8]} ===",
        f"Auctions: {s.auctions_found} active",
        f"Fills: {s.fills_attempted} attempted, {s.fills_succeeded} succeeded, "
        f"{s.fills_reverted} reverted, {s.fills_failed} failed",
        f"Skipped: {s.fills_unprofitable} unprofitable, {s.fills_pending} pending",
    ]
    if s.best_auction_id:
        lines.append(
            f"Best net profit: ${s.best_net_profit_usd:.2f} ({short_id(s.best_auction_id)})"
        )
    if s.errors:
        lines.append(f"Errors: {len(s.errors)}")
    lines.append(f"Duration: {s.duration_seconds:.2f}s")
    return "\n".join(lines)


def format_summary_json(s: TickSummary) -> str:
    """JSON summary for programmatic consumption."""
    return json.dumps(asdict(s), indent=2)
