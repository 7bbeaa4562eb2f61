"""ConflictResolver — apply per-key user decisions to a MergeResult."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping

from transync.errors import InvariantViolation, UnresolvedConflictsError
from transync.sync.conflict import MergeConflict, MergeResult

logger = logging.getLogger(__name__)


class ConflictResolution(str, Enum):
    KEEP_LOCAL = "keep_local"
    TAKE_REMOTE = "take_remote"
    KEEP_BOTH = "keep_both"
    """Alias of KEEP_LOCAL: values are atomic and never concatenated."""


def apply_resolutions(
    result: MergeResult,
    resolutions: Mapping[str, ConflictResolution | str],
    *,
    strict: bool | None = None,
) -> MergeResult:
    """Apply *resolutions* to *result* in place and return it.

    Every conflict whose key has a resolution is applied, removed from
    ``result.conflicts`` and counted in ``result.resolved_count``.  Conflicts
    without a resolution stay pending.

    Parameters
    ----------
    result:
        Merge result to mutate.
    resolutions:
        ``{key: ConflictResolution}``; plain enum values are accepted.
    strict:
        Raise :class:`InvariantViolation` for a resolution naming a key that
        has no pending conflict.  Defaults to ``__debug__``; when false the
        stray resolution is logged and ignored.
    """
    if strict is None:
        strict = __debug__

    decisions = {key: ConflictResolution(value) for key, value in resolutions.items()}

    pending = {c.key for c in result.conflicts}
    stray = sorted(set(decisions) - pending)
    if stray:
        if strict:
            raise InvariantViolation(
                f"Resolution for key(s) without a pending conflict: {', '.join(stray)}"
            )
        logger.warning("Ignoring resolutions for unknown conflict keys: %s", stray)

    remaining: list[MergeConflict] = []
    for conflict in result.conflicts:
        decision = decisions.get(conflict.key)
        if decision is None:
            remaining.append(conflict)
            continue
        _apply_one(result, conflict, decision)
        result.resolved_count += 1
        result.statistics.resolved += 1

    result.conflicts[:] = remaining
    logger.info(
        "Applied %d resolution(s), %d conflict(s) remaining",
        len(decisions) - len(stray), len(remaining),
    )
    return result


def _apply_one(
    result: MergeResult,
    conflict: MergeConflict,
    decision: ConflictResolution,
) -> None:
    if decision is ConflictResolution.TAKE_REMOTE:
        chosen = conflict.remote
    else:
        # KEEP_LOCAL and KEEP_BOTH
        chosen = conflict.local

    if chosen is None:
        result.merged.pop(conflict.key, None)
    else:
        result.merged[conflict.key] = chosen


def resolve_all(result: MergeResult, resolution: ConflictResolution | str) -> MergeResult:
    """Apply the same *resolution* to every pending conflict."""
    return apply_resolutions(result, {c.key: resolution for c in result.conflicts})


def ensure_finalizable(result: MergeResult) -> None:
    """Raise :class:`UnresolvedConflictsError` while conflicts remain."""
    if result.conflicts:
        raise UnresolvedConflictsError(result.conflict_keys)


class ConflictResolver:
    """Stateful wrapper that remembers decisions until they are applied.

    Mirrors an interactive merge dialog: choices are collected one by one
    with :meth:`choose`, then applied together with :meth:`apply`.
    """

    def __init__(self, result: MergeResult) -> None:
        self.result = result
        self._choices: dict[str, ConflictResolution] = {}

    @property
    def choices(self) -> dict[str, ConflictResolution]:
        return dict(self._choices)

    @property
    def undecided(self) -> list[str]:
        return [k for k in self.result.conflict_keys if k not in self._choices]

    def choose(self, key: str, resolution: ConflictResolution | str) -> None:
        if self.result.conflict_for(key) is None:
            raise InvariantViolation(f"No pending conflict for key '{key}'")
        self._choices[key] = ConflictResolution(resolution)

    def choose_all(self, resolution: ConflictResolution | str) -> None:
        for key in self.result.conflict_keys:
            self._choices[key] = ConflictResolution(resolution)

    def apply(self) -> MergeResult:
        apply_resolutions(self.result, self._choices)
        self._choices.clear()
        return self.result
