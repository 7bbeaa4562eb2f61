"""LiveUpdateChannel — server-sent events feeding remote hash changes.

The channel never applies content.  A ``translation_updated`` event (or any
event carrying ``file_hash``) only moves the session's ``RemoteState.hash``;
classification picks it up on the next call.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from transync.config import INITIAL_RECONNECT_DELAY, MAX_RECONNECT_ATTEMPTS, MAX_RECONNECT_DELAY
from transync.errors import RemoteRejectedError, SyncError
from transync.live.sse import SseEvent

if TYPE_CHECKING:
    from transync.remote.base import RemoteClient
    from transync.sync.manager import SyncSession

logger = logging.getLogger(__name__)

NON_RETRYABLE_STATUS = frozenset({401, 403, 404})
HASH_EVENT = "translation_updated"


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class LiveUpdateChannel:
    """Keep a subscription to the remote's event stream open.

    Parameters
    ----------
    session:
        Session whose remote hash is updated.
    client:
        Remote client providing ``subscribe``.
    site_id:
        Remote identifier of the translation to watch.
    max_attempts:
        Consecutive failed connections before giving up.
    initial_delay, max_delay:
        Backoff bounds in seconds; the delay doubles after each failure.
    on_event:
        Optional hook receiving every raw :class:`SseEvent`.
    on_state_change:
        Optional hook receiving each new :class:`ChannelState`.
    """

    def __init__(
        self,
        session: SyncSession,
        client: RemoteClient,
        site_id: int,
        *,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        initial_delay: float = INITIAL_RECONNECT_DELAY,
        max_delay: float = MAX_RECONNECT_DELAY,
        on_event: Callable[[SseEvent], Any] | None = None,
        on_state_change: Callable[[ChannelState], Any] | None = None,
    ) -> None:
        self.session = session
        self.client = client
        self.site_id = site_id
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._on_event = on_event
        self._on_state_change = on_state_change

        self._lock = threading.Lock()
        self._state = ChannelState.DISCONNECTED
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.last_event_id: str | None = None
        self.last_error: str | None = None
        self.failed_attempts = 0

    @property
    def state(self) -> ChannelState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        """Open the channel on a daemon thread. No-op if already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self.failed_attempts = 0
            self.last_error = None
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=f"transync-live-{self.site_id}",
                daemon=True,
            )
            thread = self._thread
        thread.start()
        logger.info("Live updates started for translation %s", self.site_id)

    def stop(self, timeout: float | None = None) -> None:
        """Close the channel. Idempotent; takes effect within one iteration."""
        self._stop_event.set()
        thread = self._thread
        if timeout is not None and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._set_state(ChannelState.DISCONNECTED)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the channel thread exits. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def next_delay(self, delay: float) -> float:
        return min(delay * 2, self.max_delay)

    # ------------------------------------------------------------------

    def _run(self, stop_event: threading.Event) -> None:
        try:
            self._loop(stop_event)
        except Exception as exc:
            self.last_error = str(exc)
            logger.exception("Live updates stopped on an unexpected error")
        finally:
            self._set_state(ChannelState.DISCONNECTED)

    def _loop(self, stop_event: threading.Event) -> None:
        delay = self.initial_delay
        server_delay: float | None = None

        while not stop_event.is_set():
            self._set_state(ChannelState.CONNECTING)
            try:
                stream = self.client.subscribe(self.site_id, self.last_event_id)
                self._set_state(ChannelState.CONNECTED)
                self.failed_attempts = 0
                delay = self.initial_delay
                logger.debug("Event stream open for %s", self.site_id)
                for event in stream:
                    if stop_event.is_set():
                        break
                    if event.retry is not None:
                        server_delay = event.retry / 1000.0
                    self._handle(event)
            except RemoteRejectedError as exc:
                if exc.status_code in NON_RETRYABLE_STATUS:
                    self.last_error = str(exc)
                    logger.warning("Live updates refused (%s), not retrying", exc)
                    break
                self.last_error = str(exc)
                logger.debug("Event stream rejected, will retry", exc_info=True)
            except SyncError as exc:
                self.last_error = str(exc)
                logger.debug("Event stream dropped, will retry", exc_info=True)

            if stop_event.is_set():
                break

            self.failed_attempts += 1
            if self.failed_attempts >= self.max_attempts:
                logger.warning(
                    "Live updates gave up after %d attempts", self.failed_attempts,
                )
                break

            self._set_state(ChannelState.RECONNECTING)
            wait = server_delay if server_delay is not None else delay
            logger.debug("Reconnecting in %.1fs (attempt %d)", wait, self.failed_attempts)
            if stop_event.wait(wait):
                break
            delay = self.next_delay(delay)

    def _handle(self, event: SseEvent) -> None:
        if event.id:
            self.last_event_id = event.id
        if self._on_event is not None:
            self._on_event(event)

        payload = event.json()
        if event.event != HASH_EVENT and "file_hash" not in payload:
            return
        new_hash = payload.get("file_hash") or payload.get("hash")
        if not new_hash:
            logger.debug("Update event without a hash: %s", event.data)
            return
        if self.session.apply_remote_hash(str(new_hash)):
            logger.info("Remote translation changed (hash %s)", str(new_hash)[:16])

    def _set_state(self, state: ChannelState) -> None:
        with self._lock:
            if self._state is state:
                return
            self._state = state
        logger.debug("Live channel %s -> %s", self.site_id, state.value)
        if self._on_state_change is not None:
            self._on_state_change(state)
