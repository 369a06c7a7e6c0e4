"""In-process guard against concurrent fill attempts for the same auction."""


class PendingFillGuard:
    """Set of auction ids with a fill attempt in flight.

    `try_acquire` checks and inserts without awaiting, which makes it atomic
    under asyncio's cooperative scheduling. It does not stop other keepers;
    the engine rejects late fills on-chain.
    """

    def __init__(self) -> None:
        self._pending: set[str] = set()

    def try_acquire(self, auction_id: str) -> bool:
        key = auction_id.lower()
        if key in self._pending:
            return False
        self._pending.add(key)
        return True

    def release(self, auction_id: str) -> None:
        self._pending.discard(auction_id.lower())

    def __contains__(self, auction_id: object) -> bool:
        return isinstance(auction_id, str) and auction_id.lower() in self._pending

    def __len__(self) -> int:
        return len(self._pending)
