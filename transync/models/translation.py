"""TranslationEntry, TranslationMap and RemoteState.

A translation dictionary maps a source string (the key) to a
:class:`TranslationEntry`.  Entries are atomic: synchronization compares and
replaces whole values, never fragments of text.

On disk and on the wire each entry is either a bare string (legacy format)
or ``{"v": value, "t": tag}``.  Keys starting with ``_`` are file metadata
(``_uuid``, ``_local_changes``, ...) and never count as translations.
"""

from __future__ import annotations

import json
import uuid
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from transync.config import LINEAGE_KEY, METADATA_PREFIX
from transync.errors import ContentValidationError


class TranslationTag(str, Enum):
    """Provenance of a translated value."""

    AI = "A"
    HUMAN = "H"
    VALIDATED = "V"
    UNKNOWN = "?"

    @classmethod
    def from_code(cls, code: str | None) -> TranslationTag:
        """Map a wire code to a tag; unknown codes become UNKNOWN."""
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN


class TranslationEntry(BaseModel):
    """One translated value and its provenance tag."""

    model_config = ConfigDict(frozen=True)

    value: str
    tag: TranslationTag = TranslationTag.UNKNOWN

    def same_value(self, other: TranslationEntry | None) -> bool:
        """Content equality. Tags never participate."""
        return other is not None and self.value == other.value

    def to_json(self) -> dict[str, str]:
        return {"v": self.value, "t": self.tag.value}

    @classmethod
    def from_json(cls, raw: Any, key: str = "") -> TranslationEntry:
        """Decode either the legacy string form or the ``{"v","t"}`` form."""
        if isinstance(raw, str):
            return cls(value=raw, tag=TranslationTag.AI)
        if isinstance(raw, dict):
            value = raw.get("v")
            if not isinstance(value, str):
                raise ContentValidationError(
                    f"Invalid entry for key '{key}' (missing or non-string 'v')"
                )
            tag = raw.get("t")
            if tag is not None and not isinstance(tag, str):
                raise ContentValidationError(
                    f"Invalid 't' type for key '{key}' (expected string)"
                )
            return cls(value=value, tag=TranslationTag.from_code(tag))
        raise ContentValidationError(
            f"Invalid value type for key '{key}' (expected string or object)"
        )


# A working copy, a remote copy, or a merge result.
TranslationMap = dict[str, TranslationEntry]

# The last state both sides agreed on; the base of every three-way merge.
AncestorSnapshot = TranslationMap


def is_metadata_key(key: str) -> bool:
    return key.startswith(METADATA_PREFIX)


def translation_keys(mapping: Mapping[str, Any] | None) -> set[str]:
    """Return the non-metadata keys of *mapping*."""
    if not mapping:
        return set()
    return {k for k in mapping if not is_metadata_key(k)}


def build_map(
    values: Mapping[str, str],
    tag: TranslationTag = TranslationTag.AI,
) -> TranslationMap:
    """Build a TranslationMap from plain strings, all with the same tag."""
    return {k: TranslationEntry(value=v, tag=tag) for k, v in values.items()}


def values_of(mapping: Mapping[str, TranslationEntry]) -> dict[str, str]:
    """Strip tags: ``{key: value}`` for every translation key."""
    return {k: e.value for k, e in mapping.items() if not is_metadata_key(k)}


def map_to_json(mapping: Mapping[str, TranslationEntry]) -> dict[str, Any]:
    """Encode entries in sorted key order for stable files and hashes."""
    return {k: mapping[k].to_json() for k in sorted(translation_keys(mapping))}


def map_from_json(data: Mapping[str, Any]) -> TranslationMap:
    """Decode every non-metadata key of a parsed JSON object."""
    return {
        key: TranslationEntry.from_json(raw, key)
        for key, raw in data.items()
        if not is_metadata_key(key)
    }


def parse_translation_content(text: str) -> tuple[TranslationMap, str | None]:
    """Validate and decode remote content.

    Returns the translation map and the lineage identifier embedded in the
    content (``None`` if absent).

    Raises
    ------
    ContentValidationError
        If *text* is not a JSON object of translation entries, or carries a
        malformed ``_uuid``.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ContentValidationError(f"JSON parse error: {exc}") from exc

    if not isinstance(data, dict):
        raise ContentValidationError("Translation content must be a JSON object")

    lineage = data.get(LINEAGE_KEY)
    if lineage is not None:
        try:
            uuid.UUID(str(lineage))
        except ValueError as exc:
            raise ContentValidationError("Invalid _uuid format") from exc
        lineage = str(lineage)

    return map_from_json(data), lineage


class LineageRole(str, Enum):
    """Relationship of the local client to the remote lineage."""

    MAIN = "main"
    BRANCH = "branch"
    NONE = "none"

    @classmethod
    def parse(cls, raw: str | None) -> LineageRole:
        try:
            return cls(raw or "none")
        except ValueError:
            return cls.NONE


class RemoteState(BaseModel):
    """Last-known view of the remote copy.

    Stale as soon as the live-update channel reports a change or an
    upload/download completes; callers refresh it, they never trust it.
    """

    checked: bool = False
    """True once the remote has been asked, even if nothing exists there."""

    exists: bool = False
    site_id: Optional[int] = None
    hash: str = ""
    is_owner: bool = False
    role: LineageRole = LineageRole.NONE
    owner_name: str = ""
    parent_owner_name: Optional[str] = None
    dependent_count: int = 0

    @classmethod
    def missing(cls) -> RemoteState:
        """State after a fork or a check that found nothing remotely."""
        return cls(checked=True, exists=False)

    def with_hash(self, new_hash: str) -> RemoteState:
        return self.model_copy(update={"hash": new_hash})
