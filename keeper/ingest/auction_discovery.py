"""Auction discovery: active-set polling plus a self-restarting liquidation event watcher."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum
from typing import Any, TypeVar

from keeper.chain.abi import AUCTION_FILLED_TOPIC, LIQUIDATION_STARTED_TOPIC, topic_hex
from keeper.chain.auction_engine import AuctionEngine
from keeper.chain.log_watcher import LogWatcher
from keeper.config.schema import RetryConfig
from keeper.models.auction import Auction, AuctionFilledEvent, LiquidationStartedEvent
from keeper.utils.retry import with_retry

logger = logging.getLogger(__name__)

E = TypeVar("E")
EventHandler = Callable[[E], Awaitable[None] | None]

RESTART_COOLDOWN = 5.0


class WatcherState(StrEnum):
    STOPPED = "stopped"
    WATCHING = "watching"
    RESTARTING = "restarting"


class AuctionDiscovery:
    """Keeps track of live auctions through two channels.

    `list_active` is a point-in-time poll that never raises. The event
    watcher delivers LiquidationStarted / AuctionFilled events to registered
    handlers; if the watcher fails it restarts itself after a cooldown,
    resuming from the last processed block.
    """

    def __init__(
        self,
        engine: AuctionEngine | None,
        retry: RetryConfig | None = None,
        restart_cooldown: float = RESTART_COOLDOWN,
    ):
        self.engine = engine
        self.retry = retry or RetryConfig()
        self.restart_cooldown = restart_cooldown
        self._state = WatcherState.STOPPED
        self._watcher: LogWatcher | None = None
        self._restart_task: asyncio.Task | None = None
        self._resume_block: int | None = None
        self._started_handlers: list[EventHandler[LiquidationStartedEvent]] = []
        self._filled_handlers: list[EventHandler[AuctionFilledEvent]] = []

    @property
    def state(self) -> WatcherState:
        return self._state

    # --- Polling ---

    async def list_active(self) -> list[Auction]:
        """Return auctions the engine reports active. Empty on read failure."""
        if self.engine is None:
            logger.warning("Liquidation engine address not configured")
            return []

        try:
            auction_ids = await with_retry(
                self.engine.list_active_auction_ids, self.retry, "list active auctions"
            )
        except Exception as e:
            logger.error("Failed to list active auctions: %s", e)
            return []

        auctions: list[Auction] = []
        for auction_id in auction_ids:
            try:
                auction = await self.engine.get_auction(auction_id)
            except Exception as e:
                logger.warning("Dropping auction %s, detail fetch failed: %s", auction_id, e)
                continue
            if not auction.is_active:
                # Closed between listing and detail fetch
                logger.debug("Auction %s no longer active", auction_id)
                continue
            auctions.append(auction)
        return auctions

    async def get_historical_liquidations(
        self, from_block: int, to_block: int | None = None
    ) -> list[LiquidationStartedEvent]:
        if self.engine is None:
            return []
        try:
            logs = await self.engine.get_liquidation_started_logs(
                from_block, "latest" if to_block is None else to_block
            )
        except Exception as e:
            logger.error("Failed to get historical liquidations: %s", e)
            return []
        events = (self.engine.parse_liquidation_started(log) for log in logs)
        return [e for e in events if e is not None]

    # --- Subscriptions ---

    def on_auction_started(
        self, handler: EventHandler[LiquidationStartedEvent]
    ) -> Callable[[], None]:
        """Register a handler. Returns a callable that unregisters it."""
        return self._register(self._started_handlers, handler)

    def on_auction_filled(self, handler: EventHandler[AuctionFilledEvent]) -> Callable[[], None]:
        return self._register(self._filled_handlers, handler)

    @staticmethod
    def _register(handlers: list, handler: Callable) -> Callable[[], None]:
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    # --- Watcher lifecycle ---

    def start(self) -> None:
        if self.engine is None:
            logger.warning("Liquidation engine address not configured, skipping event watching")
            return
        if self._state != WatcherState.STOPPED:
            return
        logger.info("Starting event watcher address=%s", self.engine.address)
        self._watcher = self.engine.watch_events(
            on_logs=self._handle_logs,
            on_error=self._on_watcher_error,
            from_block=self._resume_block,
        )
        self._state = WatcherState.WATCHING

    def stop(self) -> None:
        """Stop watching. Safe to call repeatedly."""
        if self._state == WatcherState.STOPPED:
            return
        if self._restart_task is not None:
            self._restart_task.cancel()
            self._restart_task = None
        self._cancel_watcher()
        self._state = WatcherState.STOPPED
        logger.info("Event watcher stopped")

    def _cancel_watcher(self) -> None:
        if self._watcher is not None:
            last = self._watcher.last_processed_block
            if last is not None:
                self._resume_block = last + 1
            self._watcher.cancel()
            self._watcher = None

    def _on_watcher_error(self, error: Exception) -> None:
        if self._state != WatcherState.WATCHING:
            return
        logger.error(
            "Event watcher error, restarting in %.1fs: %s", self.restart_cooldown, error
        )
        self._cancel_watcher()
        self._state = WatcherState.RESTARTING
        self._restart_task = asyncio.create_task(
            self._restart_after_cooldown(), name="watcher-restart"
        )

    async def _restart_after_cooldown(self) -> None:
        await asyncio.sleep(self.restart_cooldown)
        if self._state != WatcherState.RESTARTING:
            return
        self._restart_task = None
        self._state = WatcherState.STOPPED
        logger.info("Restarting event watcher")
        self.start()

    # --- Delivery ---

    async def _handle_logs(self, logs: list[dict]) -> None:
        for log in logs:
            topics = log.get("topics") if isinstance(log, Mapping) else None
            topic0 = topic_hex(topics[0]) if topics else ""
            if topic0 == LIQUIDATION_STARTED_TOPIC:
                event = self.engine.parse_liquidation_started(log)
                if event is None:
                    continue
                logger.info(
                    "LiquidationStarted auction=%s position=%s trader=%s",
                    event.auction_id, event.position_id, event.trader,
                )
                await self._dispatch(self._started_handlers, event)
            elif topic0 == AUCTION_FILLED_TOPIC:
                event = self.engine.parse_auction_filled(log)
                if event is None:
                    continue
                logger.info(
                    "AuctionFilled auction=%s filler=%s size=%d",
                    event.auction_id, event.filler, event.fill_size,
                )
                await self._dispatch(self._filled_handlers, event)
            else:
                logger.debug("Ignoring log with unknown topic %s", topic0)

    @staticmethod
    async def _dispatch(handlers: list, event: Any) -> None:
        # Registration order; one failing handler does not stop the rest
        for handler in list(handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event handler %r failed", handler)
