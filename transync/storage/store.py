"""Load and save the working map, ancestor snapshot and sync state.

Layout on disk (next to the translations file)::

    translations.json            working copy, "_uuid" + sorted entries
    translations.json.ancestor   snapshot taken at the last successful sync
    .transync/state.json         remote state, last-synced hash, parent link
"""

from __future__ import annotations

import abc
import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from transync.config import (
    ANCESTOR_SUFFIX,
    DEFAULT_TRANSLATIONS_FILE,
    LINEAGE_KEY,
    LOCAL_CHANGES_KEY,
    STATE_DIR,
    STATE_FILE,
)
from transync.errors import ContentValidationError
from transync.models.translation import RemoteState, TranslationMap, map_from_json, map_to_json

logger = logging.getLogger(__name__)


class StoredState(BaseModel):
    """Everything besides the two maps that must survive a restart."""

    lineage_id: Optional[str] = None
    parent_id: Optional[str] = None
    last_synced_hash: Optional[str] = None
    remote: RemoteState = Field(default_factory=RemoteState)


class TranslationStore(abc.ABC):
    """Persistence collaborator used by :class:`~transync.sync.manager.SyncSession`.

    Save methods raise :class:`OSError` when the write cannot be made
    durable; the session treats that as a failed operation.
    """

    @abc.abstractmethod
    def load_working(self) -> TranslationMap: ...

    @abc.abstractmethod
    def save_working(self, working: TranslationMap, lineage_id: str, local_changes: int = 0) -> None: ...

    @abc.abstractmethod
    def load_ancestor(self) -> TranslationMap: ...

    @abc.abstractmethod
    def save_ancestor(self, ancestor: TranslationMap) -> None: ...

    @abc.abstractmethod
    def load_state(self) -> StoredState: ...

    @abc.abstractmethod
    def save_state(self, state: StoredState) -> None: ...


class MemoryTranslationStore(TranslationStore):
    """Keeps everything in process memory. Nothing survives a restart."""

    def __init__(
        self,
        working: TranslationMap | None = None,
        ancestor: TranslationMap | None = None,
        state: StoredState | None = None,
    ) -> None:
        self.working: TranslationMap = dict(working or {})
        self.ancestor: TranslationMap = dict(ancestor or {})
        self.state = state or StoredState()
        self.lineage_id: str | None = self.state.lineage_id
        self.local_changes = 0

    def load_working(self) -> TranslationMap:
        return dict(self.working)

    def save_working(self, working: TranslationMap, lineage_id: str, local_changes: int = 0) -> None:
        self.working = dict(working)
        self.lineage_id = lineage_id
        self.local_changes = local_changes

    def load_ancestor(self) -> TranslationMap:
        return dict(self.ancestor)

    def save_ancestor(self, ancestor: TranslationMap) -> None:
        self.ancestor = dict(ancestor)

    def load_state(self) -> StoredState:
        return self.state.model_copy(deep=True)

    def save_state(self, state: StoredState) -> None:
        self.state = state.model_copy(deep=True)


class JsonTranslationStore(TranslationStore):
    """File-backed store.

    Parameters
    ----------
    path:
        Translations file.  Its directory also holds the ancestor snapshot
        and the ``.transync`` state folder.
    """

    def __init__(self, path: str | Path = DEFAULT_TRANSLATIONS_FILE) -> None:
        self.path = Path(path)
        self.ancestor_path = self.path.with_name(self.path.name + ANCESTOR_SUFFIX)
        self._state_dir = self.path.parent / STATE_DIR
        self.state_path = self._state_dir / STATE_FILE

    # -- Working copy ---------------------------------------------------------

    def load_working(self) -> TranslationMap:
        data = self._read_json(self.path)
        if data is None:
            return {}
        try:
            return map_from_json(data)
        except ContentValidationError:
            logger.warning("Translations file %s is malformed; starting empty", self.path)
            return {}

    def load_lineage(self) -> str | None:
        """``_uuid`` of the working file, if present."""
        data = self._read_json(self.path) or {}
        lineage = data.get(LINEAGE_KEY)
        return str(lineage) if lineage else None

    def save_working(self, working: TranslationMap, lineage_id: str, local_changes: int = 0) -> None:
        output: dict[str, Any] = {LINEAGE_KEY: lineage_id}
        if local_changes > 0:
            output[LOCAL_CHANGES_KEY] = local_changes
        output.update(map_to_json(working))
        self._write_json(self.path, output)
        logger.debug("Saved %d entries to %s", len(working), self.path)

    # -- Ancestor -------------------------------------------------------------

    def load_ancestor(self) -> TranslationMap:
        data = self._read_json(self.ancestor_path)
        if data is None:
            return {}
        try:
            ancestor = map_from_json(data)
        except ContentValidationError:
            logger.warning("Failed to load ancestor %s; merges will be 2-way", self.ancestor_path)
            return {}
        logger.info("Loaded %d ancestor entries for merge support", len(ancestor))
        return ancestor

    def save_ancestor(self, ancestor: TranslationMap) -> None:
        self._write_json(self.ancestor_path, map_to_json(ancestor))
        logger.info("Saved ancestor snapshot with %d entries", len(ancestor))

    # -- Sync state -----------------------------------------------------------

    def load_state(self) -> StoredState:
        data = self._read_json(self.state_path)
        state = StoredState()
        if data is not None:
            try:
                state = StoredState.model_validate(data)
            except ValueError:
                logger.debug("Could not parse %s", self.state_path, exc_info=True)
        if state.lineage_id is None:
            state.lineage_id = self.load_lineage()
        return state

    def save_state(self, state: StoredState) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        self._write_json(self.state_path, state.model_dump(mode="json"))

    # -- Helpers --------------------------------------------------------------

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any] | None:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.debug("Could not read %s", path, exc_info=True)
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8",
        )
