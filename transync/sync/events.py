"""Event dispatcher — routes session events to notification providers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from transync.sync.notifications import NotificationProvider, SyncLogNotifier

logger = logging.getLogger(__name__)

SESSION_EVENTS = frozenset({"upload", "download", "merge", "conflict", "fork", "remote_changed"})


class EventDispatcher:
    """Send session events to every registered provider.

    A :class:`SyncLogNotifier` is always registered and cannot be removed.
    Providers may be added or removed from any thread, including from
    inside a provider.
    """

    def __init__(self, providers: list[NotificationProvider] | None = None) -> None:
        self._lock = threading.Lock()
        self._log = SyncLogNotifier()
        self._providers: list[NotificationProvider] = [self._log, *(providers or [])]

    def add_provider(self, provider: NotificationProvider) -> None:
        with self._lock:
            self._providers.append(provider)

    def remove_provider(self, provider: NotificationProvider) -> None:
        with self._lock:
            if provider is not self._log and provider in self._providers:
                self._providers.remove(provider)

    @property
    def console(self) -> SyncLogNotifier:
        """The built-in log provider."""
        return self._log

    def emit(
        self,
        event_type: str,
        lineage: str = "",
        remote_hash: str = "",
        details: str = "",
    ) -> None:
        if event_type not in SESSION_EVENTS:
            logger.debug("Emitting non-session event type %r", event_type)
        event = {
            "type": event_type,
            "lineage": lineage,
            "remote_hash": remote_hash,
            "timestamp": time.time(),
            "details": details,
        }
        with self._lock:
            providers = list(self._providers)
        for provider in providers:
            if not provider.is_available():
                continue
            try:
                provider.notify(event)
            except Exception as exc:
                logger.warning(
                    "%s failed on %s event: %s", type(provider).__name__, event_type, exc,
                )
