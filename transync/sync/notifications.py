"""Notification providers for sync events."""

from __future__ import annotations

import abc
import itertools
import logging
import threading
from collections import deque
from typing import Any, Callable

from transync.config import EVENT_HISTORY

logger = logging.getLogger(__name__)

# Frequent, low-value events; logged at debug so a live channel stays quiet
_QUIET_EVENTS = frozenset({"remote_changed"})


class NotificationProvider(abc.ABC):
    """A destination for session events."""

    @abc.abstractmethod
    def notify(self, event: dict[str, Any]) -> bool:
        """Deliver one event.

        Parameters
        ----------
        event:
            Event dict with keys: type, lineage, remote_hash, timestamp,
            details.

        Returns True if the event was delivered.
        """

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Return True if the provider currently accepts events."""


class SyncLogNotifier(NotificationProvider):
    """Always-on provider: logs every event and keeps a short history.

    Only the last *history* events of each type are retained, so a
    long-running live channel does not grow memory.

    Parameters
    ----------
    history:
        Events kept per event type.
    """

    def __init__(self, history: int = EVENT_HISTORY) -> None:
        self.history = history
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._recent: dict[str, deque[tuple[int, dict[str, Any]]]] = {}

    def notify(self, event: dict[str, Any]) -> bool:
        event_type = event.get("type", "unknown")
        with self._lock:
            recent = self._recent.get(event_type)
            if recent is None:
                recent = self._recent[event_type] = deque(maxlen=self.history)
            recent.append((next(self._sequence), event))

        level = logging.DEBUG if event_type in _QUIET_EVENTS else logging.INFO
        logger.log(
            level,
            "%s: lineage=%s %s",
            event_type,
            event.get("lineage", ""),
            event.get("details") or event.get("remote_hash", "")[:16],
        )
        return True

    def is_available(self) -> bool:
        return True

    def recent(self, event_type: str) -> list[dict[str, Any]]:
        """Retained events of one type, oldest first."""
        with self._lock:
            return [event for _, event in self._recent.get(event_type, ())]

    @property
    def log(self) -> list[dict[str, Any]]:
        """All retained events in the order they were received."""
        with self._lock:
            entries = [entry for recent in self._recent.values() for entry in recent]
        return [event for _, event in sorted(entries, key=lambda entry: entry[0])]


class CallbackNotifier(NotificationProvider):
    """Forward events of selected types to a plain callable.

    Parameters
    ----------
    callback:
        Called with the event dict.
    event_types:
        Only these event types are forwarded; all when omitted.
    """

    def __init__(
        self,
        callback: Callable[[dict[str, Any]], Any],
        event_types: set[str] | None = None,
    ) -> None:
        self._callback = callback
        self._event_types = event_types

    def is_available(self) -> bool:
        return True

    def notify(self, event: dict[str, Any]) -> bool:
        if self._event_types is not None and event.get("type") not in self._event_types:
            return False
        self._callback(event)
        return True
