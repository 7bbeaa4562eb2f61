"""ChangeTracker — diff a working map against its ancestor snapshot."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Mapping

from transync.config import LINEAGE_KEY
from transync.models.translation import TranslationEntry, translation_keys

logger = logging.getLogger(__name__)


def diff(
    working: Mapping[str, TranslationEntry],
    ancestor: Mapping[str, TranslationEntry] | None,
) -> set[str]:
    """Return the keys that differ between *working* and *ancestor*.

    A key is changed when it was added, removed, or its value differs.
    Tag-only differences are not content changes.
    """
    ancestor = ancestor or {}
    changed: set[str] = set()
    for key in translation_keys(working) | translation_keys(ancestor):
        ours = working.get(key)
        base = ancestor.get(key)
        if ours is None or base is None:
            changed.add(key)
        elif ours.value != base.value:
            changed.add(key)
    return changed


def count_changes(
    working: Mapping[str, TranslationEntry],
    ancestor: Mapping[str, TranslationEntry] | None,
) -> int:
    """Number of keys in :func:`diff`."""
    return len(diff(working, ancestor))


def content_hash(working: Mapping[str, TranslationEntry], lineage_id: str) -> str:
    """SHA-256 hex digest of the uploadable content.

    The digest covers ``{key: value}`` for every translation key plus
    ``_uuid``, serialised as compact JSON with keys sorted by code point and
    unicode left unescaped, so it matches the hash the remote computes.
    """
    payload: dict[str, str] = {k: working[k].value for k in translation_keys(working)}
    payload[LINEAGE_KEY] = lineage_id
    content = json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False,
    )
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    logger.debug("Content hash over %d entries: %s", len(payload) - 1, digest[:16])
    return digest


class ChangeTracker:
    """Static namespace over the tracker functions."""

    diff = staticmethod(diff)
    count_changes = staticmethod(count_changes)
    content_hash = staticmethod(content_hash)
