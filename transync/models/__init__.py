"""Core data types shared by every transync subsystem."""

from transync.models.translation import (
    AncestorSnapshot,
    LineageRole,
    RemoteState,
    TranslationEntry,
    TranslationMap,
    TranslationTag,
)

__all__ = [
    "AncestorSnapshot",
    "LineageRole",
    "RemoteState",
    "TranslationEntry",
    "TranslationMap",
    "TranslationTag",
]
