"""Shared fixtures: an in-memory remote and session factories."""

from __future__ import annotations

from typing import Any, Iterator

import pytest

from transync.errors import RemoteRejectedError, TransientIOError
from transync.live.sse import SseEvent
from transync.models.translation import (
    LineageRole,
    RemoteState,
    TranslationMap,
    build_map,
)
from transync.remote.base import (
    DeviceCode,
    DownloadResult,
    PollResult,
    PollStatus,
    RemoteClient,
    UploadReceipt,
)
from transync.storage.store import MemoryTranslationStore, StoredState
from transync.sync.manager import SyncSession
from transync.sync.tracker import content_hash


class FakeRemote(RemoteClient):
    """Scriptable in-memory remote.

    ``failures`` is a queue of exceptions raised by the next request
    calls; ``poll_script`` and ``streams`` script the device flow and the
    event stream.
    """

    def __init__(self) -> None:
        self.lineages: dict[str, RemoteState] = {}
        self.contents: dict[int, DownloadResult] = {}
        self.uploads: list[tuple[TranslationMap, dict[str, Any]]] = []
        self.failures: list[Exception] = []
        self.poll_script: list[PollResult | Exception] = []
        self.poll_count = 0
        self.streams: list[list[SseEvent] | Exception] = []
        self.subscribe_calls: list[str | None] = []
        self.token: str | None = None
        self._next_site = 100

    # -- Seeding --------------------------------------------------------------

    def publish(
        self,
        lineage_id: str,
        content: TranslationMap,
        *,
        is_owner: bool = True,
        owner_name: str = "alice",
        parent_owner_name: str | None = None,
    ) -> RemoteState:
        site_id = self._site_for(lineage_id)
        digest = content_hash(content, lineage_id)
        self.contents[site_id] = DownloadResult(
            content=dict(content), hash=digest, lineage_id=lineage_id,
        )
        state = RemoteState(
            checked=True,
            exists=True,
            site_id=site_id,
            hash=digest,
            is_owner=is_owner,
            role=LineageRole.MAIN if is_owner else LineageRole.NONE,
            owner_name=owner_name,
            parent_owner_name=parent_owner_name,
        )
        self.lineages[lineage_id] = state
        return state.model_copy()

    def _site_for(self, lineage_id: str) -> int:
        existing = self.lineages.get(lineage_id)
        if existing is not None and existing.site_id is not None:
            return existing.site_id
        self._next_site += 1
        return self._next_site

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    # -- RemoteClient ---------------------------------------------------------

    def check_lineage(self, lineage_id: str) -> RemoteState:
        self._maybe_fail()
        state = self.lineages.get(lineage_id)
        return state.model_copy() if state else RemoteState.missing()

    def download(self, site_id: int) -> DownloadResult:
        self._maybe_fail()
        if site_id not in self.contents:
            raise RemoteRejectedError("Translation not found", status_code=404)
        return self.contents[site_id].model_copy(deep=True)

    def upload(self, content: TranslationMap, metadata: dict[str, Any]) -> UploadReceipt:
        self._maybe_fail()
        self.uploads.append((dict(content), dict(metadata)))
        lineage_id = metadata["uuid"]
        is_branch = "parent_uuid" in metadata
        key = f"{lineage_id}:branch" if is_branch else lineage_id
        site_id = self._site_for(key)
        digest = content_hash(content, lineage_id)
        self.contents[site_id] = DownloadResult(
            content=dict(content), hash=digest, lineage_id=lineage_id,
        )
        self.lineages[key] = RemoteState(
            checked=True, exists=True, site_id=site_id, hash=digest, is_owner=True,
            role=LineageRole.BRANCH if is_branch else LineageRole.MAIN,
        )
        return UploadReceipt(
            site_id=site_id,
            hash=digest,
            role=LineageRole.BRANCH if is_branch else LineageRole.MAIN,
            line_count=len(content),
        )

    def initiate_device_flow(self) -> DeviceCode:
        self._maybe_fail()
        return DeviceCode(
            device_code="dev-123",
            user_code="ABCD-1234",
            verification_uri="https://translations.example/device",
            interval=0.01,
        )

    def poll_device_flow(self, device_code: str) -> PollResult:
        self.poll_count += 1
        if not self.poll_script:
            return PollResult(status=PollStatus.PENDING)
        item = self.poll_script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def subscribe(self, site_id: int, last_event_id: str | None = None) -> Iterator[SseEvent]:
        self.subscribe_calls.append(last_event_id)
        if not self.streams:
            raise TransientIOError("connection refused")
        item = self.streams.pop(0)
        if isinstance(item, Exception):
            raise item
        return iter(item)

    def set_token(self, token: str | None) -> None:
        self.token = token


class FailingStore(MemoryTranslationStore):
    """Memory store whose saves can be made to fail on demand."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.fail_working = False
        self.fail_ancestor = False
        self.fail_state = False

    def save_working(self, working: TranslationMap, lineage_id: str, local_changes: int = 0) -> None:
        if self.fail_working:
            raise OSError("disk full")
        super().save_working(working, lineage_id, local_changes)

    def save_ancestor(self, ancestor: TranslationMap) -> None:
        if self.fail_ancestor:
            raise OSError("disk full")
        super().save_ancestor(ancestor)

    def save_state(self, state: StoredState) -> None:
        if self.fail_state:
            raise OSError("disk full")
        super().save_state(state)


LINEAGE = "11111111-2222-4333-8444-555555555555"


def make_session(
    remote: FakeRemote,
    working: dict[str, str] | None = None,
    ancestor: dict[str, str] | None = None,
    *,
    remote_state: RemoteState | None = None,
    last_synced_hash: str | None = None,
    lineage_id: str = LINEAGE,
    store_cls: type[MemoryTranslationStore] = MemoryTranslationStore,
) -> SyncSession:
    store = store_cls(
        working=build_map(working or {}),
        ancestor=build_map(ancestor or {}),
        state=StoredState(
            lineage_id=lineage_id,
            last_synced_hash=last_synced_hash,
            remote=remote_state or RemoteState(),
        ),
    )
    return SyncSession(store, remote)


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()
