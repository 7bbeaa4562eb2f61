"""Synchronization engine — change tracking, classification, merge and lineage."""

from transync.sync.classifier import Classification, PendingDirection, SyncState, classify
from transync.sync.conflict import (
    ConflictType,
    MergeConflict,
    MergeResult,
    MergeStatistics,
    merge,
)
from transync.sync.events import EventDispatcher
from transync.sync.lineage import ContributorAction, LineageManager
from transync.sync.locking import FinalizationGuard, LockInfo
from transync.sync.manager import PendingMerge, SyncOutcome, SyncSession
from transync.sync.notifications import CallbackNotifier, NotificationProvider, SyncLogNotifier
from transync.sync.permissions import Standing, check_permission
from transync.sync.resolver import ConflictResolution, ConflictResolver, apply_resolutions
from transync.sync.tracker import ChangeTracker, content_hash, count_changes, diff

__all__ = [
    "CallbackNotifier",
    "ChangeTracker",
    "Classification",
    "ConflictResolution",
    "ConflictResolver",
    "ConflictType",
    "ContributorAction",
    "EventDispatcher",
    "FinalizationGuard",
    "LineageManager",
    "LockInfo",
    "MergeConflict",
    "MergeResult",
    "MergeStatistics",
    "NotificationProvider",
    "PendingDirection",
    "PendingMerge",
    "Standing",
    "SyncOutcome",
    "SyncSession",
    "SyncLogNotifier",
    "SyncState",
    "apply_resolutions",
    "check_permission",
    "classify",
    "content_hash",
    "count_changes",
    "diff",
    "merge",
]
