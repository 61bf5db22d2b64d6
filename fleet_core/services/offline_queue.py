"""
Offline replay queue.
Buffers mutations that could not reach the store and replays them in
submission order once connectivity returns.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Deque, Dict, List, Optional

from ..core.clock import Clock
from ..data.repositories.base import StoreUnavailableError

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[object]]

SKIP_AND_CONTINUE = "skip"
HALT_ON_FAILURE = "halt"


@dataclass
class QueuedOperation:
    """Deferred mutation waiting for the store"""
    key: str
    operation: Operation
    description: str
    enqueued_at: datetime


@dataclass
class FlushResult:
    applied: int = 0
    dropped: int = 0
    expired: int = 0
    remaining: int = 0
    errors: List[str] = field(default_factory=list)
    halted: bool = False


class OfflineQueue:
    """
    FIFO buffer of parameterless async operations.

    Replay is strictly sequential, which keeps every vehicle's own updates in
    order. On failure the configured policy applies:

    - "skip": log the failure, drop the item and continue with the next one.
    - "halt": stop flushing and leave the failed item at the head for the
      next trigger.

    An unreachable store halts the flush under either policy: the item is
    kept and replayed on the next restoration.
    """

    def __init__(self, clock: Clock, policy: str = SKIP_AND_CONTINUE,
                 max_age_seconds: Optional[float] = 24 * 60 * 60):
        if policy not in (SKIP_AND_CONTINUE, HALT_ON_FAILURE):
            raise ValueError(f"Unknown flush policy {policy!r}")
        self.clock = clock
        self.policy = policy
        self.max_age_seconds = max_age_seconds
        self._items: Deque[QueuedOperation] = deque()
        self._flush_lock = asyncio.Lock()
        self.total_enqueued = 0
        self.total_applied = 0
        self.total_dropped = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def size(self) -> int:
        return len(self._items)

    def enqueue(self, key: str, operation: Operation, description: str = ""):
        self._items.append(QueuedOperation(
            key=key,
            operation=operation,
            description=description or f"operation for {key}",
            enqueued_at=self.clock.now(),
        ))
        self.total_enqueued += 1
        logger.debug(f"Queued {description or 'operation'} for {key} ({len(self._items)} pending)")

    def pending_for(self, key: str) -> List[QueuedOperation]:
        return [item for item in self._items if item.key == key]

    def clear(self):
        """Discard every buffered operation (logout / reset)"""
        discarded = len(self._items)
        self._items.clear()
        if discarded:
            logger.info(f"Cleared {discarded} queued operations")

    def _is_expired(self, item: QueuedOperation) -> bool:
        if self.max_age_seconds is None:
            return False
        age = (self.clock.now() - item.enqueued_at).total_seconds()
        return age > self.max_age_seconds

    async def flush(self) -> FlushResult:
        """Replay queued operations until the queue is empty or the halt policy stops it"""
        async with self._flush_lock:
            result = FlushResult()
            while self._items:
                item = self._items[0]

                if self._is_expired(item):
                    self._items.popleft()
                    result.expired += 1
                    logger.warning(f"Discarding expired {item.description} (queued at {item.enqueued_at})")
                    continue

                try:
                    await item.operation()
                except asyncio.CancelledError:
                    raise
                except StoreUnavailableError as e:
                    result.errors.append(f"{item.description}: {e}")
                    result.halted = True
                    logger.warning(f"Store unavailable during replay; {len(self._items)} items kept")
                    break
                except Exception as e:
                    message = f"{item.description}: {e}"
                    result.errors.append(message)
                    if self.policy == HALT_ON_FAILURE:
                        logger.warning(f"Replay halted on failed {message}; {len(self._items)} items kept")
                        result.halted = True
                        break
                    self._items.popleft()
                    result.dropped += 1
                    self.total_dropped += 1
                    logger.error(f"Failed to replay queued {message}; dropped")
                    continue

                self._items.popleft()
                result.applied += 1
                self.total_applied += 1

            result.remaining = len(self._items)
            if result.applied or result.dropped or result.expired:
                logger.info(
                    f"Offline queue flush: {result.applied} applied, {result.dropped} dropped, "
                    f"{result.expired} expired, {result.remaining} remaining"
                )
            return result

    def get_stats(self) -> Dict[str, object]:
        return {
            "pending": len(self._items),
            "policy": self.policy,
            "total_enqueued": self.total_enqueued,
            "total_applied": self.total_applied,
            "total_dropped": self.total_dropped,
        }
