"""At-most-one merge finalization per session."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from transync.errors import MergeInProgressError

logger = logging.getLogger(__name__)


@dataclass
class LockInfo:
    """Who holds the finalization slot and since when."""

    owner: str
    timestamp: float

    @property
    def age(self) -> float:
        return time.time() - self.timestamp


class FinalizationGuard:
    """Non-blocking lock around merge finalization.

    A second finalization while one is outstanding is rejected with
    :class:`MergeInProgressError` rather than queued, so two resolutions of
    the same merge can never interleave.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._info: LockInfo | None = None

    @property
    def holder(self) -> LockInfo | None:
        return self._info

    def is_locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, owner: str = "merge") -> Iterator[LockInfo]:
        if not self._lock.acquire(blocking=False):
            held_by = self._info.owner if self._info else "unknown"
            raise MergeInProgressError(
                f"A merge finalization is already in progress ({held_by})."
            )
        self._info = LockInfo(owner=owner, timestamp=time.time())
        logger.debug("Finalization slot taken by %s", owner)
        try:
            yield self._info
        finally:
            self._info = None
            self._lock.release()
            logger.debug("Finalization slot released by %s", owner)
