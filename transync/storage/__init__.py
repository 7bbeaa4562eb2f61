"""Persistence collaborators for working copy, ancestor and sync state."""

from transync.storage.store import (
    JsonTranslationStore,
    MemoryTranslationStore,
    StoredState,
    TranslationStore,
)

__all__ = [
    "JsonTranslationStore",
    "MemoryTranslationStore",
    "StoredState",
    "TranslationStore",
]
