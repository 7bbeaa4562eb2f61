"""Tests for conflict resolution."""

from __future__ import annotations

import itertools

import pytest

from transync.errors import InvariantViolation, UnresolvedConflictsError
from transync.models.translation import build_map, values_of
from transync.sync.conflict import MergeResult, merge
from transync.sync.resolver import (
    ConflictResolution,
    ConflictResolver,
    apply_resolutions,
    ensure_finalizable,
    resolve_all,
)


def _three_conflicts() -> MergeResult:
    ancestor = build_map({"a": "0", "b": "0", "c": "0", "same": "s"})
    local = build_map({"a": "L", "b": "L", "same": "s"})
    remote = build_map({"a": "R", "c": "R", "same": "s"})
    return merge(local, remote, ancestor)


class TestApplyResolutions:
    def test_take_remote_scenario(self):
        ancestor = build_map({"greeting": "hi"})
        local = build_map({"greeting": "hello"})
        remote = build_map({"greeting": "hey"})
        result = merge(local, remote, ancestor)
        apply_resolutions(result, {"greeting": ConflictResolution.TAKE_REMOTE})
        assert values_of(result.merged) == {"greeting": "hey"}
        assert result.conflicts == []
        assert result.resolved_count == 1

    def test_unchanged_local_fast_forwards(self):
        # local == ancestor: only the remote moved, so nothing to resolve
        ancestor = build_map({"greeting": "hi"})
        local = build_map({"greeting": "hi"})
        remote = build_map({"greeting": "hey"})
        result = merge(local, remote, ancestor)
        assert result.conflicts == []
        assert values_of(result.merged) == {"greeting": "hey"}
        assert result.statistics.remote_updated == 1

        apply_resolutions(result, {}, strict=True)
        assert values_of(result.merged) == {"greeting": "hey"}
        assert result.resolved_count == 0

    def test_keep_local(self):
        result = _three_conflicts()
        apply_resolutions(result, {"a": "keep_local"})
        assert result.merged["a"].value == "L"
        assert result.conflict_keys == ["b", "c"]

    def test_keep_local_of_deletion_removes_key(self):
        result = _three_conflicts()
        # Local deleted "c" while remote edited it
        apply_resolutions(result, {"c": ConflictResolution.KEEP_LOCAL})
        assert "c" not in result.merged

    def test_take_remote_of_deletion_removes_key(self):
        result = _three_conflicts()
        # Remote deleted "b" while local edited it
        apply_resolutions(result, {"b": ConflictResolution.TAKE_REMOTE})
        assert "b" not in result.merged

    def test_keep_both_is_keep_local(self):
        result = _three_conflicts()
        apply_resolutions(result, {"a": ConflictResolution.KEEP_BOTH})
        assert result.merged["a"].value == "L"

    def test_unresolved_conflicts_stay(self):
        result = _three_conflicts()
        apply_resolutions(result, {"a": "take_remote"})
        assert result.conflict_keys == ["b", "c"]
        with pytest.raises(UnresolvedConflictsError) as exc_info:
            ensure_finalizable(result)
        assert exc_info.value.keys == ["b", "c"]

    def test_order_independent(self):
        decisions = {"a": "keep_local", "b": "take_remote", "c": "keep_local"}
        outcomes = []
        for order in itertools.permutations(decisions):
            result = _three_conflicts()
            for key in order:
                apply_resolutions(result, {key: decisions[key]})
            assert result.conflicts == []
            assert result.resolved_count == 3
            outcomes.append(values_of(result.merged))
        assert all(o == outcomes[0] for o in outcomes)

    def test_stray_key_strict(self):
        result = _three_conflicts()
        with pytest.raises(InvariantViolation, match="same"):
            apply_resolutions(result, {"same": "keep_local"}, strict=True)
        assert result.conflict_keys == ["a", "b", "c"]

    def test_stray_key_lenient(self):
        result = _three_conflicts()
        apply_resolutions(result, {"nope": "keep_local", "a": "keep_local"}, strict=False)
        assert result.conflict_keys == ["b", "c"]
        assert result.resolved_count == 1

    def test_resolve_all(self):
        result = resolve_all(_three_conflicts(), ConflictResolution.TAKE_REMOTE)
        ensure_finalizable(result)
        assert values_of(result.merged) == {"a": "R", "c": "R", "same": "s"}
        assert result.statistics.resolved == 3


class TestConflictResolver:
    def test_collect_then_apply(self):
        resolver = ConflictResolver(_three_conflicts())
        resolver.choose("a", "take_remote")
        assert resolver.undecided == ["b", "c"]
        resolver.choose_all(ConflictResolution.KEEP_LOCAL)
        assert resolver.choices["a"] is ConflictResolution.KEEP_LOCAL
        result = resolver.apply()
        assert result.is_clean
        assert resolver.choices == {}

    def test_choose_unknown_key(self):
        resolver = ConflictResolver(_three_conflicts())
        with pytest.raises(InvariantViolation):
            resolver.choose("missing", "keep_local")
