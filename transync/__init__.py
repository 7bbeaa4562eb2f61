"""transync — synchronize community translation files with a remote store."""

__version__ = "0.1.0"

from transync.auth.credentials import CredentialStore
from transync.auth.device_flow import AuthFlowController, AuthResult, AuthState, Credentials
from transync.errors import (
    ContentValidationError,
    InvariantViolation,
    MergeInProgressError,
    MergeRequired,
    RemoteRejectedError,
    SyncError,
    TransientIOError,
    UnresolvedConflictsError,
    UserCancelled,
)
from transync.facade import TranslationSync
from transync.live.channel import ChannelState, LiveUpdateChannel
from transync.models.translation import (
    LineageRole,
    RemoteState,
    TranslationEntry,
    TranslationMap,
    TranslationTag,
)
from transync.remote.http import HttpRemoteClient
from transync.settings import SettingsManager, SyncSettings, configure_logging
from transync.storage.store import JsonTranslationStore, MemoryTranslationStore
from transync.sync.classifier import PendingDirection, SyncState
from transync.sync.conflict import MergeResult
from transync.sync.lineage import ContributorAction
from transync.sync.manager import PendingMerge, SyncOutcome, SyncSession
from transync.sync.resolver import ConflictResolution

__all__ = [
    "AuthFlowController",
    "AuthResult",
    "AuthState",
    "ChannelState",
    "ConflictResolution",
    "ContentValidationError",
    "ContributorAction",
    "CredentialStore",
    "Credentials",
    "HttpRemoteClient",
    "InvariantViolation",
    "JsonTranslationStore",
    "LineageRole",
    "LiveUpdateChannel",
    "MemoryTranslationStore",
    "MergeInProgressError",
    "MergeRequired",
    "MergeResult",
    "PendingDirection",
    "PendingMerge",
    "RemoteRejectedError",
    "RemoteState",
    "SettingsManager",
    "SyncError",
    "SyncOutcome",
    "SyncSession",
    "SyncSettings",
    "SyncState",
    "TransientIOError",
    "TranslationEntry",
    "TranslationMap",
    "TranslationSync",
    "TranslationTag",
    "UnresolvedConflictsError",
    "UserCancelled",
    "configure_logging",
]
