"""AuthFlowController — device-code login polled on a background thread.

Lifecycle::

    IDLE -> REQUESTING -> AWAITING_USER_ACTION -> AUTHORIZED | EXPIRED | FAILED
                    \\______________ cancel() ______________/ -> IDLE

Every login attempt gets its own cancellation event and attempt number.
The poll thread only ever reports back through :meth:`_finish`, which
accepts the first terminal transition of the current attempt and drops
everything after it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from transync.errors import RemoteRejectedError, SyncError, TransientIOError, UserCancelled
from transync.remote.base import DeviceCode, PollStatus, RemoteClient

if TYPE_CHECKING:
    from transync.auth.credentials import CredentialStore

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    AWAITING_USER_ACTION = "awaiting_user_action"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (AuthState.REQUESTING, AuthState.AWAITING_USER_ACTION)


@dataclass(frozen=True)
class Credentials:
    username: str
    token: str


@dataclass(frozen=True)
class AuthResult:
    """Terminal outcome of one login attempt, passed to the callback."""

    state: AuthState
    credentials: Optional[Credentials] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state is AuthState.AUTHORIZED

    def unwrap(self) -> Credentials:
        """Return the credentials or raise for a login that did not succeed.

        Raises
        ------
        UserCancelled
            If the attempt was cancelled.
        RemoteRejectedError
            If the code expired or the server refused the login.
        """
        if self.state is AuthState.AUTHORIZED and self.credentials is not None:
            return self.credentials
        if self.state is AuthState.IDLE:
            raise UserCancelled(self.error or "cancelled")
        raise RemoteRejectedError(self.error or self.state.value)


class AuthFlowController:
    """Drive the device-code exchange for one remote.

    Parameters
    ----------
    client:
        Remote used to request codes and poll for the token.  It receives
        the token via ``set_token`` on success.
    on_complete:
        Called exactly once per attempt with an :class:`AuthResult`,
        including after :meth:`cancel`.
    poll_interval:
        Overrides the interval suggested by the server (seconds).
    credential_store:
        Optional store the token is saved to on success.
    server_url:
        Server the token is bound to when saved.
    """

    def __init__(
        self,
        client: RemoteClient,
        on_complete: Callable[[AuthResult], Any] | None = None,
        *,
        poll_interval: float | None = None,
        credential_store: CredentialStore | None = None,
        server_url: str = "",
    ) -> None:
        self.client = client
        self._on_complete = on_complete
        self._poll_interval = poll_interval
        self._credential_store = credential_store
        self._server_url = server_url

        self._lock = threading.Lock()
        self._state = AuthState.IDLE
        self._attempt = 0
        self._cancel_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._device_code: DeviceCode | None = None
        self._last_result: AuthResult | None = None

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    @property
    def device_code(self) -> DeviceCode | None:
        with self._lock:
            return self._device_code

    @property
    def last_result(self) -> AuthResult | None:
        with self._lock:
            return self._last_result

    def begin_login(self) -> DeviceCode | None:
        """Request a device code and start polling for authorization.

        Any login already in progress is cancelled first.  Returns the code
        to show the user, or *None* if the request failed (the callback then
        receives a FAILED result).
        """
        self.cancel()
        with self._lock:
            self._attempt += 1
            attempt = self._attempt
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            self._state = AuthState.REQUESTING
            self._device_code = None
            self._last_result = None

        logger.info("Requesting device code (attempt %d)", attempt)
        try:
            code = self.client.initiate_device_flow()
        except SyncError as exc:
            logger.warning("Device code request failed: %s", exc)
            self._finish(attempt, AuthResult(AuthState.FAILED, error=str(exc)))
            return None

        with self._lock:
            if attempt != self._attempt or self._state is not AuthState.REQUESTING:
                return code
            self._state = AuthState.AWAITING_USER_ACTION
            self._device_code = code
            thread = threading.Thread(
                target=self._poll_loop,
                args=(attempt, cancel_event, code),
                name=f"transync-auth-{attempt}",
                daemon=True,
            )
            self._thread = thread
        thread.start()

        logger.info("Enter code %s at %s", code.user_code, code.verification_uri)
        return code

    def cancel(self) -> None:
        """Stop the current attempt and return to IDLE. Safe to call repeatedly."""
        with self._lock:
            if not self._state.is_active:
                return
            attempt = self._attempt
        self._finish(attempt, AuthResult(AuthState.IDLE, error="cancelled"))

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the poll thread exits. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ------------------------------------------------------------------

    def _poll_loop(self, attempt: int, cancel_event: threading.Event, code: DeviceCode) -> None:
        interval = self._poll_interval if self._poll_interval is not None else code.interval

        # Only a non-pending answer, a rejection or cancel() ends the loop.
        while not cancel_event.wait(interval):
            try:
                result = self.client.poll_device_flow(code.device_code)
            except TransientIOError:
                logger.debug("Device flow poll failed, retrying", exc_info=True)
                continue
            except RemoteRejectedError as exc:
                self._finish(attempt, AuthResult(AuthState.FAILED, error=str(exc)))
                return

            if result.is_pending:
                continue
            if result.status is PollStatus.AUTHORIZED and result.access_token:
                credentials = Credentials(
                    username=result.username or "",
                    token=result.access_token,
                )
                self._finish(attempt, AuthResult(AuthState.AUTHORIZED, credentials=credentials))
            elif result.status is PollStatus.EXPIRED:
                self._finish(
                    attempt, AuthResult(AuthState.EXPIRED, error=result.error or "expired_token"),
                )
            else:
                self._finish(
                    attempt, AuthResult(AuthState.FAILED, error=result.error or "access_denied"),
                )
            return

    def _finish(self, attempt: int, result: AuthResult) -> bool:
        """Apply a terminal transition once per attempt. Returns True if it won."""
        with self._lock:
            if attempt != self._attempt or not self._state.is_active:
                return False
            self._state = result.state
            self._last_result = result
            self._cancel_event.set()

        if result.credentials is not None:
            self._apply_credentials(result.credentials)

        logger.info("Login attempt %d ended: %s", attempt, result.state.value)
        if self._on_complete is not None:
            try:
                self._on_complete(result)
            except Exception:
                logger.exception("Auth completion callback failed")
        return True

    def _apply_credentials(self, credentials: Credentials) -> None:
        self.client.set_token(credentials.token)
        if self._credential_store is None:
            return
        try:
            self._credential_store.save(credentials, self._server_url)
        except OSError:
            logger.warning("Could not save credentials", exc_info=True)
