"""Polling log subscription: delivers new logs in block order until it fails or is cancelled."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from keeper.chain.rpc_client import RpcClient

logger = logging.getLogger(__name__)


class LogWatcher:
    """One polling task per subscription.

    Each poll fetches logs from the block after the last processed one up to
    the current head, at most `max_block_range` blocks per request, and awaits
    `on_logs` with each batch, so batches are delivered in order and never
    concurrently. The first failure is reported to `on_error` and the watcher
    stops; restarting is the owner's job.
    """

    def __init__(
        self,
        rpc: "RpcClient",
        log_filter: dict[str, Any],
        on_logs: Callable[[list[dict]], Awaitable[None]],
        on_error: Callable[[Exception], None],
        poll_interval: float = 2.0,
        max_block_range: int = 2000,
        from_block: int | None = None,
    ):
        self.rpc = rpc
        self.log_filter = log_filter
        self.on_logs = on_logs
        self.on_error = on_error
        self.poll_interval = poll_interval
        self.max_block_range = max_block_range
        self._next_block = from_block
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_processed_block(self) -> int | None:
        return None if self._next_block is None else self._next_block - 1

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="log-watcher")

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            if self._next_block is None:
                self._next_block = await self.rpc.get_block_number() + 1
            while True:
                await asyncio.sleep(self.poll_interval)
                await self._poll_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Log watcher failed: %s", e)
            self.on_error(e)

    async def _poll_once(self) -> None:
        head = await self.rpc.get_block_number()
        # Capped ranges; progress is kept per range so a failure resumes mid-backlog
        while self._next_block <= head:
            to_block = min(head, self._next_block + self.max_block_range - 1)
            logs = await self.rpc.get_logs(
                {**self.log_filter, "fromBlock": self._next_block, "toBlock": to_block}
            )
            if logs:
                await self.on_logs(logs)
            self._next_block = to_block + 1
