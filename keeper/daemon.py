"""Keeper daemon: timer and event driven ticks with graceful shutdown.

Two paths feed the same tick pipeline. The timer path runs every
`keeper.poll_interval_ms`; the event path runs a tick shortly after each
LiquidationStarted event so new auctions are acted on without waiting for
the timer. The pending-fill guard keeps the two from filling the same
auction twice.

Usage:
    python -m keeper run --config ops/configs/keeper.yaml
    python -m keeper stop
    python -m keeper status
"""

import asyncio
import json
import logging
import os
import signal
import sys
import time
from collections.abc import Coroutine
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from keeper.config.loader import ConfigError, validate_startup
from keeper.config.schema import KeeperConfig
from keeper.models.auction import AuctionFilledEvent, LiquidationStartedEvent
from keeper.pipeline.tick_pipeline import KeeperComponents, TickPipeline, build_components

logger = logging.getLogger(__name__)

PID_DIR = Path("data")
PID_FILE = PID_DIR / "keeper.pid"
STATE_FILE = PID_DIR / "keeper_state.json"


class KeeperDaemon:
    """Runs the keeper loop with signal handling and state persistence."""

    def __init__(
        self,
        config: KeeperConfig,
        components: KeeperComponents | None = None,
    ):
        self.config = config
        self.components = components or build_components(config)
        self.pipeline = TickPipeline(self.components.discovery, self.components.fill_executor)
        self.interval = config.keeper.poll_interval_ms / 1000.0
        self.settle_delay = config.keeper.event_settle_ms / 1000.0
        self.grace_period = config.keeper.shutdown_grace_seconds

        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._inflight: set[asyncio.Task] = set()
        self._consecutive_failures = 0
        self._total_ticks = 0
        self._total_successes = 0
        self._total_failures = 0
        self._fills_attempted = 0
        self._fills_succeeded = 0
        self._started_at: str | None = None
        self._last_tick_at: str | None = None

    @property
    def read_only(self) -> bool:
        return self.components.read_only

    async def run(self) -> None:
        """Start the daemon and block until a stop is requested."""
        try:
            validate_startup(self.config)
        except ConfigError as e:
            logger.error("Fatal configuration error: %s", e)
            sys.exit(1)

        self._check_not_already_running()
        self._write_pid()
        self._stop_event = asyncio.Event()
        self._setup_signals()
        self._running = True
        self._started_at = datetime.now(UTC).isoformat()

        mode_label = "READ-ONLY" if self.read_only else "LIVE"
        logger.info(
            "Keeper started mode=%s interval=%.1fs min_profit=$%.2f pid=%d",
            mode_label, self.interval, self.config.keeper.min_profit_usd, os.getpid(),
        )
        if self.read_only:
            logger.warning("No private key configured, running in read-only mode")
        else:
            logger.info("Keeper address %s", self.components.signer.address)

        discovery = self.components.discovery
        discovery.on_auction_started(self._on_liquidation_started)
        discovery.on_auction_filled(self._on_auction_filled)
        discovery.start()

        try:
            await self._loop()
        finally:
            await self._shutdown()

    def request_stop(self) -> None:
        if not self._running:
            return
        logger.info("Shutdown requested, finishing in-flight work...")
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def _loop(self) -> None:
        """Timer path: one tick per interval until stopped."""
        while self._running:
            tick = self._spawn(self._run_one_tick("timer"))
            await self._wait_or_stop(tick)
            if not self._running:
                break
            self._save_state()
            await self._sleep_or_stop(self.interval)

    async def _run_one_tick(self, trigger: str) -> bool:
        """Run a single tick. Returns True when it completed without errors."""
        self._total_ticks += 1
        try:
            summary = await self.pipeline.run(trigger)
        except Exception:
            self._record_failure()
            logger.exception("Tick #%d crashed", self._total_ticks)
            return False

        self._last_tick_at = datetime.now(UTC).isoformat()
        self._fills_attempted += summary.fills_attempted
        self._fills_succeeded += summary.fills_succeeded
        if summary.errors:
            self._record_failure()
            logger.error("Tick #%d completed with errors: %s", self._total_ticks, summary.errors)
            return False

        self._total_successes += 1
        self._consecutive_failures = 0
        return True

    def _record_failure(self) -> None:
        self._total_failures += 1
        self._consecutive_failures += 1

    # --- Event path ---

    def _on_liquidation_started(self, event: LiquidationStartedEvent) -> None:
        # Schedule rather than await so event delivery is never blocked by fills
        if not self._running:
            return
        self._spawn(self._event_tick(event))

    async def _event_tick(self, event: LiquidationStartedEvent) -> None:
        await asyncio.sleep(self.settle_delay)
        if not self._running:
            return
        logger.info("Processing auctions after liquidation auction=%s", event.auction_id)
        await self._run_one_tick("event")

    def _on_auction_filled(self, event: AuctionFilledEvent) -> None:
        ours = (
            self.components.signer is not None
            and event.filler.lower() == self.components.signer.address.lower()
        )
        logger.info(
            "Auction filled auction=%s by=%s%s",
            event.auction_id, event.filler, " (us)" if ours else "",
        )

    # --- Task plumbing ---

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _wait_or_stop(self, task: asyncio.Task) -> None:
        stop_waiter = asyncio.create_task(self._stop_event.wait())
        try:
            await asyncio.wait({task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_waiter.cancel()

    async def _sleep_or_stop(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _shutdown(self) -> None:
        """Stop discovery, give in-flight fills a grace period, then clean up."""
        self._running = False
        self.components.discovery.stop()

        pending = [t for t in self._inflight if not t.done()]
        if pending and self.grace_period > 0:
            logger.info("Waiting up to %.1fs for %d in-flight tasks", self.grace_period, len(pending))
            await asyncio.wait(pending, timeout=self.grace_period)
        still_running = [t for t in self._inflight if not t.done()]
        if still_running:
            logger.warning(
                "%d tasks still in flight at exit; broadcast transactions stay valid on-chain",
                len(still_running),
            )

        self._cleanup()
        await self.components.rpc.aclose()

    # --- Process plumbing ---

    def _setup_signals(self) -> None:
        """Handle SIGTERM and SIGINT for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_stop)

    def _check_not_already_running(self) -> None:
        """Prevent duplicate daemons."""
        if PID_FILE.exists():
            try:
                pid = int(PID_FILE.read_text().strip())
                os.kill(pid, 0)
                logger.error("Keeper already running (pid %d). Stop it first.", pid)
                sys.exit(1)
            except (ProcessLookupError, ValueError):
                # Stale PID file
                PID_FILE.unlink(missing_ok=True)
            except PermissionError:
                logger.error("Keeper may be running (pid %d), can't verify.", pid)
                sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        """Persist daemon stats for status reporting."""
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "mode": self.pipeline.mode,
            "poll_interval_ms": self.config.keeper.poll_interval_ms,
            "watcher_state": self.components.discovery.state.value,
            "total_ticks": self._total_ticks,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "consecutive_failures": self._consecutive_failures,
            "fills_attempted": self._fills_attempted,
            "fills_succeeded": self._fills_succeeded,
            "last_tick_at": self._last_tick_at,
            "last_update": datetime.now(UTC).isoformat(),
        }
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        """Remove PID file on exit."""
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        logger.info(
            "Keeper stopped: %d ticks (%d ok, %d failed), %d fills (%d succeeded)",
            self._total_ticks, self._total_successes, self._total_failures,
            self._fills_attempted, self._fills_succeeded,
        )


def stop_daemon(wait_seconds: int = 60) -> int:
    """Stop a running keeper by sending SIGTERM."""
    if not PID_FILE.exists():
        print("No keeper running (no PID file found)")
        return 1

    try:
        pid = int(PID_FILE.read_text().strip())
    except ValueError:
        print("Corrupt PID file, removing")
        PID_FILE.unlink(missing_ok=True)
        return 1

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        print(f"Keeper not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping keeper (pid {pid})...")
    os.kill(pid, signal.SIGTERM)

    for _ in range(wait_seconds):
        time.sleep(1)
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            print("Keeper stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0

    print(f"Keeper didn't stop in {wait_seconds}s, sending SIGKILL")
    os.kill(pid, signal.SIGKILL)
    PID_FILE.unlink(missing_ok=True)
    return 0


def read_state() -> dict | None:
    if not STATE_FILE.exists():
        return None
    try:
        return json.loads(STATE_FILE.read_text())
    except (OSError, ValueError):
        return None


def daemon_status() -> int:
    """Print keeper status from the state file."""
    state = read_state()
    if state is None:
        print("No keeper state found")
        return 1

    pid = state.get("pid", "?")
    running = False
    try:
        os.kill(int(pid), 0)
        running = True
    except (ProcessLookupError, ValueError, TypeError):
        pass

    print(f"Keeper {'running' if running else 'stopped'}")
    print(f"  PID: {pid}")
    print(f"  Mode: {str(state.get('mode', 'unknown')).upper()}")
    print(f"  Poll interval: {state.get('poll_interval_ms', '?')}ms")
    print(f"  Event watcher: {state.get('watcher_state', '?')}")
    print(f"  Started: {state.get('started_at', '?')}")
    print(f"  Total ticks: {state.get('total_ticks', 0)}")
    print(f"  Successes: {state.get('total_successes', 0)}")
    print(f"  Failures: {state.get('total_failures', 0)}")
    print(f"  Consecutive failures: {state.get('consecutive_failures', 0)}")
    print(f"  Fills: {state.get('fills_attempted', 0)} attempted, "
          f"{state.get('fills_succeeded', 0)} succeeded")
    print(f"  Last tick: {state.get('last_tick_at', '?')}")
    return 0
