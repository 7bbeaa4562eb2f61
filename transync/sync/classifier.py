"""SyncStateClassifier — derive sync state and required direction.

The result is a tagged value consumed by the presentation layer; nothing
here performs I/O or mutates its inputs, so callers may classify at any
time, from any thread, as often as they like.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from transync.models.translation import RemoteState

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    SYNCED = "synced"
    LOCAL_ONLY = "local_only"
    OUT_OF_SYNC = "out_of_sync"
    CONFLICT = "conflict"


class PendingDirection(str, Enum):
    NONE = "none"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    MERGE = "merge"


@dataclass(frozen=True)
class Classification:
    """Snapshot of the sync state at the moment it was computed."""

    state: SyncState
    direction: PendingDirection
    local_changes: int = 0
    remote_hash: str = ""
    last_synced_hash: str | None = None

    @property
    def needs_action(self) -> bool:
        return self.direction is not PendingDirection.NONE


def classify(
    local_changes: int,
    remote: RemoteState,
    last_synced_hash: str | None,
    working_empty: bool = False,
) -> Classification:
    """Classify the local copy against the last-known remote state.

    Parameters
    ----------
    local_changes:
        Change count of the working map against the ancestor snapshot.
    remote:
        Last-known remote state.
    last_synced_hash:
        Remote hash recorded at the last successful sync, or *None* if this
        device never synced.  An unknown hash never equals the remote one,
        so local changes on a never-synced copy are offered as a merge.
    working_empty:
        Whether the working map has no translation keys.
    """
    if not remote.exists:
        direction = PendingDirection.NONE if working_empty else PendingDirection.UPLOAD
        state = SyncState.LOCAL_ONLY
    else:
        remote_changed = remote.hash != last_synced_hash
        if local_changes > 0 and remote_changed:
            state, direction = SyncState.CONFLICT, PendingDirection.MERGE
        elif remote_changed:
            state, direction = SyncState.OUT_OF_SYNC, PendingDirection.DOWNLOAD
        elif local_changes > 0:
            state, direction = SyncState.OUT_OF_SYNC, PendingDirection.UPLOAD
        else:
            state, direction = SyncState.SYNCED, PendingDirection.NONE

    logger.debug(
        "Classified %s/%s (changes=%d, remote=%s, synced=%s)",
        state.value, direction.value, local_changes,
        remote.hash[:16], (last_synced_hash or "")[:16],
    )
    return Classification(
        state=state,
        direction=direction,
        local_changes=local_changes,
        remote_hash=remote.hash,
        last_synced_hash=last_synced_hash,
    )
