"""Tests for sync-state classification."""

from __future__ import annotations

import itertools

import pytest

from transync.models.translation import RemoteState
from transync.sync.classifier import PendingDirection, SyncState, classify


def _remote(hash_: str = "h1", exists: bool = True) -> RemoteState:
    return RemoteState(checked=True, exists=exists, site_id=7, hash=hash_, is_owner=True)


class TestClassify:
    def test_local_only_with_content(self):
        c = classify(3, _remote(exists=False), None)
        assert c.state is SyncState.LOCAL_ONLY
        assert c.direction is PendingDirection.UPLOAD

    def test_local_only_empty(self):
        c = classify(0, _remote(exists=False), None, working_empty=True)
        assert c.state is SyncState.LOCAL_ONLY
        assert c.direction is PendingDirection.NONE
        assert not c.needs_action

    def test_conflict(self):
        c = classify(2, _remote("new"), "old")
        assert c.state is SyncState.CONFLICT
        assert c.direction is PendingDirection.MERGE

    def test_download(self):
        c = classify(0, _remote("new"), "old")
        assert c.state is SyncState.OUT_OF_SYNC
        assert c.direction is PendingDirection.DOWNLOAD

    def test_upload(self):
        c = classify(1, _remote("same"), "same")
        assert c.state is SyncState.OUT_OF_SYNC
        assert c.direction is PendingDirection.UPLOAD

    def test_synced(self):
        c = classify(0, _remote("same"), "same")
        assert c.state is SyncState.SYNCED
        assert c.direction is PendingDirection.NONE

    def test_never_synced_counts_as_remote_changed(self):
        assert classify(0, _remote("h"), None).direction is PendingDirection.DOWNLOAD
        assert classify(1, _remote("h"), None).state is SyncState.CONFLICT

    def test_snapshot_fields(self):
        c = classify(4, _remote("r"), "s")
        assert c.local_changes == 4
        assert c.remote_hash == "r"
        assert c.last_synced_hash == "s"

    @pytest.mark.parametrize(
        "changes,remote_hash,synced",
        list(itertools.product([0, 1, 5], ["a", "b"], ["a", "b", None])),
    )
    def test_conflict_iff_changes_and_remote_moved(self, changes, remote_hash, synced):
        c = classify(changes, _remote(remote_hash), synced)
        expected = changes > 0 and remote_hash != synced
        assert (c.state is SyncState.CONFLICT) == expected
        assert (c.direction is PendingDirection.MERGE) == expected

    def test_idempotent(self):
        remote = _remote("x")
        assert classify(2, remote, "y") == classify(2, remote, "y")
