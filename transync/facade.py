"""TranslationSync — one entry point wiring settings, storage, remote and session.

Usage::

    from transync.facade import TranslationSync

    ts = TranslationSync("/path/to/game")
    ts.start()                      # check the remote, maybe auto-download
    code = ts.login()               # show code.user_code to the user
    ts.status()                     # SyncState / PendingDirection
    ts.sync()                       # upload, download or merge as needed
    ts.start_live_updates()
    ts.close()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

from transync.auth.credentials import CredentialStore
from transync.auth.device_flow import AuthFlowController, AuthResult, Credentials
from transync.config import DEFAULT_TRANSLATIONS_FILE
from transync.errors import InvariantViolation, UserCancelled
from transync.live.channel import LiveUpdateChannel
from transync.live.sse import SseEvent
from transync.remote.base import DeviceCode, RemoteClient
from transync.remote.http import HttpRemoteClient
from transync.settings import SettingsManager, SyncSettings
from transync.storage.store import JsonTranslationStore
from transync.sync.classifier import Classification, PendingDirection
from transync.sync.manager import SyncOutcome, SyncSession
from transync.sync.permissions import Standing
from transync.sync.resolver import ConflictResolution

logger = logging.getLogger(__name__)


class TranslationSync:
    """The public interface for synchronizing one translations file.

    Parameters
    ----------
    project_root:
        Directory holding the translations file and the ``.transync`` folder.
    translations_file:
        File name relative to *project_root*.
    settings:
        Explicit settings; loaded from *project_root* when omitted.
    client:
        Remote client; an :class:`HttpRemoteClient` for
        ``settings.api_url`` when omitted.
    on_login:
        Receives the :class:`AuthResult` of every login attempt.
    """

    def __init__(
        self,
        project_root: str | Path,
        *,
        translations_file: str | Path = DEFAULT_TRANSLATIONS_FILE,
        settings: SyncSettings | None = None,
        client: RemoteClient | None = None,
        on_login: Callable[[AuthResult], Any] | None = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.settings = settings or SettingsManager().load_settings(self.project_root)

        self.credentials = CredentialStore(self.project_root)
        self.client = client or HttpRemoteClient(self.settings.api_url)
        saved = self.credentials.load(self.settings.api_url)
        if saved is not None:
            self.client.set_token(saved.token)
            logger.info("Using saved login for %s", saved.username or "<unknown>")

        self.store = JsonTranslationStore(self.project_root / translations_file)
        self.session = SyncSession(self.store, self.client)
        self.auth = AuthFlowController(
            self.client,
            on_login,
            poll_interval=self.settings.poll_interval,
            credential_store=self.credentials,
            server_url=self.settings.api_url,
        )
        self._channel: LiveUpdateChannel | None = None

    # -- Lifecycle ------------------------------------------------------------

    def start(self) -> SyncOutcome | None:
        """Check the remote on start if configured to. Returns None otherwise."""
        if not self.settings.check_on_start:
            return None
        return self.session.sync_on_start(auto_download=self.settings.auto_download)

    def close(self) -> None:
        self.stop_live_updates()
        self.auth.cancel()

    # -- Login ----------------------------------------------------------------

    def login(self) -> DeviceCode | None:
        return self.auth.begin_login()

    def wait_for_login(self, timeout: float | None = None) -> Credentials:
        """Block until the running login ends; give up after *timeout* seconds.

        Raises :class:`UserCancelled` if the login was cancelled or timed
        out, :class:`RemoteRejectedError` if it expired or was refused.
        """
        if not self.auth.wait(timeout):
            self.auth.cancel()
        result = self.auth.last_result
        if result is None:
            raise UserCancelled("No login in progress")
        return result.unwrap()

    def logout(self) -> None:
        self.auth.cancel()
        self.credentials.clear()
        self.client.set_token(None)
        logger.info("Logged out")

    # -- Sync -----------------------------------------------------------------

    def status(self) -> Classification:
        return self.session.classify()

    def sync(
        self,
        resolutions: Mapping[str, ConflictResolution | str] | None = None,
    ) -> SyncOutcome:
        """Perform whatever the current classification asks for.

        A merge that still has undecided conflicts is returned unfinished
        (``outcome.merge`` set); finish it with
        :meth:`SyncSession.finalize_pending`.
        """
        direction = self.session.classify().direction
        if direction is PendingDirection.UPLOAD:
            return self.session.upload()
        if direction is PendingDirection.DOWNLOAD:
            return self.session.download()
        if direction is PendingDirection.MERGE:
            return self.merge(resolutions)
        return SyncOutcome(success=True, remote=self.session.remote)

    def merge(
        self,
        resolutions: Mapping[str, ConflictResolution | str] | None = None,
    ) -> SyncOutcome:
        """Merge the remote content, then upload the result if this copy is owned.

        Conflicts without an explicit resolution fall back to the configured
        ``merge_strategy`` unless it is ``ask``.
        """
        outcome = self.session.begin_merge()
        if not outcome.success or outcome.merge is None:
            return outcome
        pending = outcome.merge

        decisions = dict(resolutions or {})
        if self.settings.merge_strategy != "ask":
            for key in pending.result.conflict_keys:
                decisions.setdefault(key, ConflictResolution(self.settings.merge_strategy))
        undecided = [k for k in pending.result.conflict_keys if k not in decisions]
        if undecided:
            logger.info("Merge waiting on %d conflict(s)", len(undecided))
            return outcome

        finalized = self.session.finalize_pending(pending, decisions)
        if not finalized.success:
            return finalized
        if (
            self.session.standing() in (Standing.MAIN_OWNER, Standing.BRANCH_OWNER)
            and self.session.classify().direction is PendingDirection.UPLOAD
        ):
            return self.session.upload()
        return finalized

    # -- Live updates ---------------------------------------------------------

    def start_live_updates(
        self,
        on_event: Callable[[SseEvent], Any] | None = None,
    ) -> LiveUpdateChannel:
        """Open the live-update channel for the published copy."""
        site_id = self.session.remote.site_id
        if site_id is None:
            raise InvariantViolation("Nothing published yet; no live updates to follow")
        self.stop_live_updates()
        self._channel = LiveUpdateChannel(
            self.session,
            self.client,
            site_id,
            max_attempts=self.settings.max_reconnect_attempts,
            on_event=on_event,
        )
        self._channel.start()
        return self._channel

    def stop_live_updates(self) -> None:
        if self._channel is not None:
            self._channel.stop()
            self._channel = None
