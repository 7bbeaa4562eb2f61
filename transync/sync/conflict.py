"""Three-way merge of translation maps with explicit conflict records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from transync.models.translation import (
    TranslationEntry,
    TranslationMap,
    translation_keys,
)

logger = logging.getLogger(__name__)


class ConflictType(str, Enum):
    BOTH_MODIFIED = "both_modified"
    NO_ANCESTOR = "no_ancestor"
    LOCAL_MODIFIED_REMOTE_DELETED = "local_modified_remote_deleted"
    REMOTE_MODIFIED_LOCAL_DELETED = "remote_modified_local_deleted"


@dataclass(frozen=True)
class MergeConflict:
    """A key both sides changed differently.

    ``None`` on one side means that side deleted (or never had) the key.
    """

    key: str
    local: TranslationEntry | None
    remote: TranslationEntry | None
    ancestor: TranslationEntry | None = None
    type: ConflictType = ConflictType.BOTH_MODIFIED


@dataclass
class MergeStatistics:
    """Per-outcome counters of a merge."""

    unchanged: int = 0
    local_only: int = 0
    local_modified: int = 0
    remote_added: int = 0
    remote_updated: int = 0
    deleted: int = 0
    conflicts: int = 0
    resolved: int = 0

    def summary(self) -> str:
        parts: list[str] = []
        if self.remote_added:
            parts.append(f"+{self.remote_added} new")
        if self.remote_updated:
            parts.append(f"~{self.remote_updated} updated")
        if self.local_modified:
            parts.append(f"{self.local_modified} local kept")
        if self.local_only:
            parts.append(f"{self.local_only} local only")
        if self.deleted:
            parts.append(f"-{self.deleted} deleted")
        if self.conflicts:
            parts.append(f"!{self.conflicts} conflicts")
        return ", ".join(parts) if parts else "No changes"


@dataclass
class MergeResult:
    """Result of a merge operation.

    ``merged`` holds a provisional value for every conflicting key and is
    only final once ``conflicts`` is empty.
    ``local`` is the working map the merge was computed from.
    """

    merged: TranslationMap
    conflicts: list[MergeConflict] = field(default_factory=list)
    resolved_count: int = 0
    statistics: MergeStatistics = field(default_factory=MergeStatistics)
    local: TranslationMap | None = None

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def is_clean(self) -> bool:
        return not self.has_conflicts

    @property
    def conflict_keys(self) -> list[str]:
        return [c.key for c in self.conflicts]

    def conflict_for(self, key: str) -> MergeConflict | None:
        for conflict in self.conflicts:
            if conflict.key == key:
                return conflict
        return None


def _same(a: TranslationEntry | None, b: TranslationEntry | None) -> bool:
    """Value equality where two absences are equal."""
    if a is None or b is None:
        return a is None and b is None
    return a.value == b.value


def merge(
    local: Mapping[str, TranslationEntry],
    remote: Mapping[str, TranslationEntry],
    ancestor: Mapping[str, TranslationEntry] | None = None,
) -> MergeResult:
    """Key-level 3-way merge of translation maps.

    Non-overlapping changes merge automatically; a key changed differently
    on both sides becomes a :class:`MergeConflict`.  Without an *ancestor*
    this degrades to a 2-way merge in which every differing key conflicts.

    Parameters
    ----------
    local:
        Working copy, with the user's changes.
    remote:
        Copy downloaded from the remote store.
    ancestor:
        Snapshot taken at the last successful sync.

    Returns
    -------
    MergeResult
        Merged map plus conflicts in sorted key order.  Each conflicting key
        provisionally holds the remote entry (the local one if the remote
        deleted it).
    """
    ancestor = ancestor or {}
    result = MergeResult(merged={}, local=dict(local))
    stats = result.statistics

    all_keys = translation_keys(local) | translation_keys(remote) | translation_keys(ancestor)

    for key in sorted(all_keys):
        ours = local.get(key)
        theirs = remote.get(key)
        base = ancestor.get(key)

        if _same(ours, theirs):
            # Same on both sides (including both deleted)
            if ours is None:
                stats.deleted += 1
            else:
                stats.unchanged += 1
                result.merged[key] = ours
            continue

        if _same(ours, base):
            # Only remote changed: fast-forward
            if theirs is None:
                stats.deleted += 1
            else:
                if base is None:
                    stats.remote_added += 1
                else:
                    stats.remote_updated += 1
                result.merged[key] = theirs
            continue

        if _same(theirs, base):
            # Only local changed
            if ours is None:
                stats.deleted += 1
            else:
                if base is None:
                    stats.local_only += 1
                else:
                    stats.local_modified += 1
                result.merged[key] = ours
            continue

        stats.conflicts += 1
        result.conflicts.append(MergeConflict(
            key=key,
            local=ours,
            remote=theirs,
            ancestor=base,
            type=_conflict_type(ours, theirs, base),
        ))
        provisional = theirs if theirs is not None else ours
        if provisional is not None:
            result.merged[key] = provisional

    logger.info("Merge: %s", stats.summary())
    return result


def _conflict_type(
    ours: TranslationEntry | None,
    theirs: TranslationEntry | None,
    base: TranslationEntry | None,
) -> ConflictType:
    if theirs is None:
        return ConflictType.LOCAL_MODIFIED_REMOTE_DELETED
    if ours is None:
        return ConflictType.REMOTE_MODIFIED_LOCAL_DELETED
    if base is None:
        return ConflictType.NO_ANCESTOR
    return ConflictType.BOTH_MODIFIED
