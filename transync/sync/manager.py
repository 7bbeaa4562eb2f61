"""SyncSession — main entry point for synchronizing one translation file.

The session is the single synchronization point for the working map, the
ancestor snapshot, the remote state and the lineage.  Every reader and
writer (UI calls, the auth poller, the live-update channel) goes through
it.  Network I/O and disk writes happen outside the state lock, so
:meth:`SyncSession.classify` never waits on either.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from transync.errors import (
    InvariantViolation,
    MergeInProgressError,
    MergeRequired,
    SyncError,
    UnresolvedConflictsError,
)
from transync.models.translation import (
    RemoteState,
    TranslationEntry,
    TranslationMap,
    TranslationTag,
    translation_keys,
)
from transync.remote.base import RemoteClient
from transync.storage.store import StoredState, TranslationStore
from transync.sync.classifier import Classification, PendingDirection, classify
from transync.sync.conflict import MergeResult, merge
from transync.sync.lineage import ContributorAction, LineageManager, standing_for
from transync.sync.locking import FinalizationGuard
from transync.sync.notifications import CallbackNotifier, NotificationProvider
from transync.sync.permissions import Standing, require_permission
from transync.sync.resolver import ConflictResolution, apply_resolutions, ensure_finalizable
from transync.sync.tracker import content_hash, count_changes
from transync.sync.events import EventDispatcher

logger = logging.getLogger(__name__)


@dataclass
class PendingMerge:
    """A merge waiting for conflict decisions and finalization."""

    result: MergeResult
    remote_content: TranslationMap
    remote_hash: str


@dataclass
class SyncOutcome:
    """Result of a session operation that may touch the network or disk."""

    success: bool
    remote: RemoteState
    error: str | None = None
    merge: PendingMerge | None = None
    details: dict[str, Any] = field(default_factory=dict)


class SyncSession:
    """Synchronize a local translation map with its remote copy.

    Parameters
    ----------
    store:
        Persistence collaborator.
    client:
        Remote store client.
    notification_providers:
        Optional extra providers for session events.
    """

    def __init__(
        self,
        store: TranslationStore,
        client: RemoteClient,
        *,
        notification_providers: list[NotificationProvider] | None = None,
    ) -> None:
        self.store = store
        self.client = client

        self._lock = threading.RLock()
        self._persist_lock = threading.Lock()
        self._finalization = FinalizationGuard()
        self.events = EventDispatcher(notification_providers)

        state = store.load_state()
        self._working: TranslationMap = store.load_working()
        self._ancestor: TranslationMap = store.load_ancestor()
        self._remote: RemoteState = state.remote
        self._last_synced_hash: str | None = state.last_synced_hash
        self.lineage = LineageManager(state.lineage_id, state.parent_id)

        if state.lineage_id is None:
            logger.info("No lineage recorded, starting fresh with %s", self.lineage.lineage_id)
            self._persist(working=self._working)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @property
    def working(self) -> TranslationMap:
        with self._lock:
            return dict(self._working)

    @property
    def ancestor(self) -> TranslationMap:
        with self._lock:
            return dict(self._ancestor)

    @property
    def remote(self) -> RemoteState:
        with self._lock:
            return self._remote.model_copy()

    @property
    def last_synced_hash(self) -> str | None:
        with self._lock:
            return self._last_synced_hash

    @property
    def lineage_id(self) -> str:
        with self._lock:
            return self.lineage.lineage_id

    @property
    def is_finalizing(self) -> bool:
        return self._finalization.is_locked()

    def local_change_count(self) -> int:
        with self._lock:
            return count_changes(self._working, self._ancestor)

    def classify(self) -> Classification:
        """Classify the current state. Synchronous, no I/O, never cached."""
        with self._lock:
            return classify(
                count_changes(self._working, self._ancestor),
                self._remote,
                self._last_synced_hash,
                working_empty=not translation_keys(self._working),
            )

    def standing(self) -> Standing:
        with self._lock:
            return standing_for(self._remote)

    def contributor_actions(self) -> frozenset[ContributorAction]:
        with self._lock:
            return self.lineage.contributor_actions(self._remote)

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def set_translation(
        self,
        key: str,
        value: str,
        tag: TranslationTag = TranslationTag.HUMAN,
    ) -> None:
        """Record a local edit. The ancestor snapshot is never touched.

        Raises :class:`OSError` if the edit cannot be saved; the session
        then keeps the previous value.
        """
        if key.startswith("_"):
            raise InvariantViolation(f"'{key}' is a metadata key, not a translation")
        entry = TranslationEntry(value=value, tag=tag)
        with self._lock:
            previous = self._working.get(key)
            self._working[key] = entry
        self._save_edit(key, entry, previous)

    def remove_translation(self, key: str) -> bool:
        with self._lock:
            previous = self._working.pop(key, None)
        if previous is None:
            return False
        self._save_edit(key, None, previous)
        return True

    def _save_edit(
        self,
        key: str,
        entry: TranslationEntry | None,
        previous: TranslationEntry | None,
    ) -> None:
        try:
            self._persist_live()
        except OSError:
            logger.error("Could not save edit to '%s'", key)
            with self._lock:
                # Leave a newer edit of the same key alone.
                if self._working.get(key) == entry:
                    if previous is None:
                        self._working.pop(key, None)
                    else:
                        self._working[key] = previous
            self._restore_disk()
            raise

    # ------------------------------------------------------------------
    # Remote state
    # ------------------------------------------------------------------

    def refresh_remote(self) -> SyncOutcome:
        """Ask the remote about this lineage and adopt the answer.

        A copy that was never synced but already holds exactly the remote
        content is treated as synced at that hash.
        """
        lineage_id = self.lineage_id
        try:
            remote = self.client.check_lineage(lineage_id)
        except SyncError as exc:
            return self._failed("refresh", exc)

        with self._lock:
            self._remote = remote
            matches = (
                self._last_synced_hash is None
                and remote.exists
                and bool(remote.hash)
                and content_hash(self._working, lineage_id) == remote.hash
            )
            if matches:
                self._ancestor = dict(self._working)
                self._last_synced_hash = remote.hash
                ancestor = dict(self._ancestor)
        try:
            if matches:
                logger.info("Local content already equals remote %s", remote.hash[:16])
                self._persist_live(ancestor=ancestor)
            else:
                self._persist()
        except OSError as exc:
            logger.error("Could not save remote state: %s", exc)
        logger.info(
            "Remote state for %s: exists=%s owner=%s role=%s",
            lineage_id, remote.exists, remote.is_owner, remote.role.value,
        )
        return SyncOutcome(success=True, remote=remote.model_copy())

    def apply_remote_hash(self, new_hash: str) -> bool:
        """Record that the remote content hash changed.

        Called by the live-update channel.  Only ``RemoteState.hash`` moves;
        no content is applied and pending merges are left alone.  Returns
        True if the hash actually changed.
        """
        with self._lock:
            if not new_hash or new_hash == self._remote.hash:
                return False
            self._remote = self._remote.with_hash(new_hash)
            lineage_id = self.lineage.lineage_id
        try:
            self._persist()
        except OSError as exc:
            # The in-memory hash stands; the next successful save writes it.
            logger.error("Could not save remote hash %s: %s", new_hash[:16], exc)
        self.events.emit("remote_changed", lineage_id, new_hash)
        return True

    def on_remote_changed(self, callback: Callable[[str], Any]) -> NotificationProvider:
        """Invoke ``callback(new_hash)`` whenever the remote hash changes.

        Returns the registered provider; pass it to
        ``session.events.remove_provider`` to unsubscribe.
        """
        provider = CallbackNotifier(
            lambda event: callback(event["remote_hash"]),
            event_types={"remote_changed"},
        )
        self.events.add_provider(provider)
        return provider

    def sync_on_start(self, auto_download: bool = False) -> SyncOutcome:
        """Refresh the remote state; download right away if that is all it takes."""
        outcome = self.refresh_remote()
        if not outcome.success:
            return outcome
        if auto_download and self.classify().direction is PendingDirection.DOWNLOAD:
            logger.info("Auto-downloading remote update")
            return self.download()
        return outcome

    # ------------------------------------------------------------------
    # Download / upload
    # ------------------------------------------------------------------

    def download(self) -> SyncOutcome:
        """Replace the working copy and ancestor with the remote content.

        Local changes are discarded.
        """
        with self._lock:
            remote = self._remote.model_copy()
        try:
            require_permission(standing_for(remote), "download")
            if remote.site_id is None:
                raise InvariantViolation("Remote copy has no site id to download")
            fetched = self.client.download(remote.site_id)
            self.lineage.check_identity(fetched.lineage_id)
        except SyncError as exc:
            return self._failed("download", exc)

        new_hash = fetched.hash or remote.hash
        try:
            self._persist(
                working=fetched.content,
                ancestor=fetched.content,
                last_synced_hash=new_hash,
                remote=remote.with_hash(new_hash),
            )
        except OSError as exc:
            self._restore_disk()
            return self._failed("download", exc)

        with self._lock:
            self._working = dict(fetched.content)
            self._ancestor = dict(fetched.content)
            self._last_synced_hash = new_hash
            self._remote = self._remote.with_hash(new_hash)
            result_remote = self._remote.model_copy()

        logger.info("Downloaded %d entries (hash %s)", len(fetched.content), new_hash[:16])
        self.events.emit("download", self.lineage_id, new_hash, f"{len(fetched.content)} entries")
        return SyncOutcome(success=True, remote=result_remote)

    def upload(self) -> SyncOutcome:
        """Upload the working copy as Main, or as a Branch once promoted."""
        with self._lock:
            remote = self._remote.model_copy()
            snapshot = dict(self._working)
            last_synced = self._last_synced_hash
            metadata = self.lineage.upload_metadata()

        try:
            self.lineage.require_upload_allowed(remote)
            standing = standing_for(remote)
            if (
                standing in (Standing.MAIN_OWNER, Standing.BRANCH_OWNER)
                and remote.hash != last_synced
            ):
                raise MergeRequired(
                    "Remote changed since the last sync; merge before uploading."
                )
            receipt = self.client.upload(snapshot, metadata)
        except SyncError as exc:
            return self._failed("upload", exc)

        updated = remote.model_copy(update={
            "checked": True,
            "exists": True,
            "is_owner": True,
            "site_id": receipt.site_id,
            "hash": receipt.hash,
            "role": receipt.role,
        })
        if self.lineage.is_branch and not updated.parent_owner_name:
            updated = updated.model_copy(
                update={"parent_owner_name": remote.owner_name or self.lineage.parent_id}
            )

        with self._lock:
            self._ancestor = snapshot
            self._last_synced_hash = receipt.hash
            self._remote = updated

        self.events.emit("upload", metadata["uuid"], receipt.hash, f"{len(snapshot)} entries")
        try:
            # The working file carries the local change count, which just reset.
            self._persist_live(ancestor=snapshot)
        except OSError as exc:
            logger.error("Uploaded, but saving sync state failed: %s", exc)
            return SyncOutcome(
                success=False,
                remote=updated.model_copy(),
                error=f"Uploaded, but saving sync state failed: {exc}",
            )

        logger.info(
            "Uploaded %d entries as %s (site %s, hash %s)",
            len(snapshot), receipt.role.value, receipt.site_id, receipt.hash[:16],
        )
        return SyncOutcome(
            success=True,
            remote=updated.model_copy(),
            details={"web_url": receipt.web_url, "line_count": receipt.line_count},
        )

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def start_merge(self, remote_map: Mapping[str, TranslationEntry]) -> MergeResult:
        """Three-way merge of the working copy, *remote_map* and the ancestor."""
        with self._lock:
            working = dict(self._working)
            ancestor = dict(self._ancestor)
        return merge(working, remote_map, ancestor or None)

    def begin_merge(self) -> SyncOutcome:
        """Download the remote content and merge it without applying anything."""
        with self._lock:
            remote = self._remote.model_copy()
        try:
            require_permission(standing_for(remote), "merge")
            if remote.site_id is None:
                raise InvariantViolation("Remote copy has no site id to merge from")
            fetched = self.client.download(remote.site_id)
        except SyncError as exc:
            return self._failed("merge", exc)

        result = self.start_merge(fetched.content)
        pending = PendingMerge(
            result=result,
            remote_content=dict(fetched.content),
            remote_hash=fetched.hash or remote.hash,
        )
        if result.has_conflicts:
            self.events.emit(
                "conflict", self.lineage_id, pending.remote_hash,
                f"{len(result.conflicts)} conflict(s)",
            )
        return SyncOutcome(success=True, remote=self.remote, merge=pending)

    def resolve(
        self,
        result: MergeResult,
        resolutions: Mapping[str, ConflictResolution | str],
    ) -> MergeResult:
        """Apply *resolutions* to *result* in memory (nothing is persisted)."""
        return apply_resolutions(result, resolutions)

    def finalize_merge(
        self,
        result: MergeResult,
        remote_map: Mapping[str, TranslationEntry],
        remote_hash: str,
        resolutions: Mapping[str, ConflictResolution | str] | None = None,
    ) -> SyncOutcome:
        """Persist a merge once every conflict is decided.

        *resolutions* are applied to a staged copy first; the caller's
        :class:`MergeResult` only changes after the merged map, the new
        ancestor (*remote_map*) and *remote_hash* as last-synced hash are saved.
        At most one finalization runs at a time; a concurrent call fails
        with an error instead of waiting.
        """
        pending = PendingMerge(result=result, remote_content=dict(remote_map), remote_hash=remote_hash)
        try:
            with self._finalization.hold(owner=f"merge:{remote_hash[:12]}"):
                return self._finalize(pending, resolutions or {})
        except MergeInProgressError as exc:
            return self._failed("merge", exc)

    def finalize_pending(
        self,
        pending: PendingMerge,
        resolutions: Mapping[str, ConflictResolution | str] | None = None,
    ) -> SyncOutcome:
        """Finalize a merge started with :meth:`begin_merge`."""
        return self.finalize_merge(
            pending.result, pending.remote_content, pending.remote_hash, resolutions,
        )

    def _finalize(
        self,
        pending: PendingMerge,
        resolutions: Mapping[str, ConflictResolution | str],
    ) -> SyncOutcome:
        staged = copy.deepcopy(pending.result)
        if resolutions:
            apply_resolutions(staged, resolutions)
        try:
            ensure_finalizable(staged)
        except UnresolvedConflictsError as exc:
            return self._failed("merge", exc)

        ancestor = dict(pending.remote_content)
        try:
            # Edits made during the write queue on the persist lock and save
            # the swapped-in map after it.
            with self._persist_lock:
                with self._lock:
                    merged = self._carry_edits(staged.merged, staged.local)
                self._write(
                    working=merged,
                    ancestor=ancestor,
                    last_synced_hash=pending.remote_hash,
                )
                with self._lock:
                    self._working = self._carry_edits(staged.merged, staged.local)
                    self._ancestor = ancestor
                    self._last_synced_hash = pending.remote_hash
                    if not self._remote.hash:
                        self._remote = self._remote.with_hash(pending.remote_hash)
                    remote = self._remote.model_copy()
                    changes = count_changes(self._working, self._ancestor)
        except OSError as exc:
            self._restore_disk()
            return self._failed("merge", exc)

        result = pending.result
        result.merged = staged.merged
        result.conflicts[:] = staged.conflicts
        result.resolved_count = staged.resolved_count
        result.statistics = staged.statistics

        logger.info(
            "Merge applied: %s; %d local change(s) left to upload",
            result.statistics.summary(), changes,
        )
        self.events.emit("merge", self.lineage_id, pending.remote_hash, result.statistics.summary())
        return SyncOutcome(success=True, remote=remote, details={"local_changes": changes})

    # ------------------------------------------------------------------
    # Lineage
    # ------------------------------------------------------------------

    def fork(self) -> SyncOutcome:
        """Sever this copy from its lineage and start a new one.

        The working map is kept exactly as it is.
        """
        with self._lock:
            previous = LineageManager(self.lineage.lineage_id, self.lineage.parent_id)
            remote = self.lineage.fork()
            working = dict(self._working)
        try:
            self._persist(working=working, remote=remote, last_synced_hash=None)
        except OSError as exc:
            with self._lock:
                self.lineage = previous
            self._restore_disk()
            return self._failed("fork", exc)

        with self._lock:
            self._remote = remote
            self._last_synced_hash = None
            lineage_id = self.lineage.lineage_id

        self.events.emit("fork", lineage_id, "", f"forked from {previous.lineage_id}")
        return SyncOutcome(success=True, remote=remote.model_copy())

    def promote_as_branch(self, parent_id: str | None = None) -> SyncOutcome:
        """Make subsequent uploads contributions to *parent_id*."""
        with self._lock:
            previous_parent = self.lineage.parent_id
            self.lineage.promote_as_branch(parent_id)
            remote = self._remote.model_copy()
        try:
            self._persist()
        except OSError as exc:
            with self._lock:
                self.lineage = LineageManager(self.lineage.lineage_id, previous_parent)
            return self._failed("branch", exc)
        return SyncOutcome(success=True, remote=remote)

    def apply_contributor_action(self, action: ContributorAction | str) -> SyncOutcome:
        """Carry out one of the three actions open to a non-owner."""
        action = ContributorAction(action)
        if action not in self.contributor_actions():
            return self._failed(
                action.value,
                InvariantViolation(f"'{action.value}' is only valid for contributors"),
            )
        if action is ContributorAction.FORK:
            return self.fork()
        if action is ContributorAction.DOWNLOAD_LATEST:
            return self.download()

        promoted = self.promote_as_branch()
        if not promoted.success:
            return promoted
        return self.upload()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    _UNSET: Any = object()

    def _persist(
        self,
        *,
        working: TranslationMap | None = None,
        ancestor: TranslationMap | None = None,
        remote: RemoteState | None = None,
        last_synced_hash: Any = _UNSET,
    ) -> None:
        """Write the given pieces plus the session state to the store.

        Values not passed are taken from the current session.  Raises
        :class:`OSError` if the store cannot save.
        """
        with self._persist_lock:
            self._write(
                working=working, ancestor=ancestor, remote=remote,
                last_synced_hash=last_synced_hash,
            )

    def _persist_live(self, *, ancestor: TranslationMap | None = None) -> None:
        """Like :meth:`_persist`, with the working map as it is at write time."""
        with self._persist_lock:
            with self._lock:
                working = dict(self._working)
            self._write(working=working, ancestor=ancestor)

    def _write(
        self,
        *,
        working: TranslationMap | None = None,
        ancestor: TranslationMap | None = None,
        remote: RemoteState | None = None,
        last_synced_hash: Any = _UNSET,
    ) -> None:
        """Caller holds ``self._persist_lock``."""
        with self._lock:
            state = StoredState(
                lineage_id=self.lineage.lineage_id,
                parent_id=self.lineage.parent_id,
                last_synced_hash=(
                    self._last_synced_hash if last_synced_hash is self._UNSET
                    else last_synced_hash
                ),
                remote=(remote or self._remote).model_copy(),
            )
            changes_base = self._ancestor if ancestor is None else ancestor

        if working is not None:
            self.store.save_working(
                working, state.lineage_id or "", count_changes(working, changes_base),
            )
        if ancestor is not None:
            self.store.save_ancestor(ancestor)
        self.store.save_state(state)

    def _carry_edits(
        self,
        merged: TranslationMap,
        base: TranslationMap | None,
    ) -> TranslationMap:
        """Re-apply working-map edits made since *base* on top of *merged*.

        *base* is the working map the merge started from.  Caller holds
        ``self._lock``.
        """
        result = dict(merged)
        if base is None:
            return result
        carried = 0
        for key in translation_keys(base) | translation_keys(self._working):
            current = self._working.get(key)
            if current == base.get(key):
                continue
            carried += 1
            if current is None:
                result.pop(key, None)
            else:
                result[key] = current
        if carried:
            logger.info("Keeping %d edit(s) made while the merge was open", carried)
        return result

    def _restore_disk(self) -> None:
        """Rewrite the in-memory session to the store after a partial save."""
        with self._lock:
            ancestor = dict(self._ancestor)
        try:
            self._persist_live(ancestor=ancestor)
        except OSError:
            logger.error("Could not restore saved state after a failed write", exc_info=True)

    def _failed(self, operation: str, exc: Exception) -> SyncOutcome:
        level = logging.WARNING if isinstance(exc, SyncError) else logging.ERROR
        logger.log(level, "%s failed: %s", operation.capitalize(), exc)
        return SyncOutcome(success=False, remote=self.remote, error=str(exc))


__all__ = [
    "PendingMerge",
    "SyncOutcome",
    "SyncSession",
]
