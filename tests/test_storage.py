"""Tests for the file-backed translation store."""

from __future__ import annotations

import json

from transync.models.translation import RemoteState, TranslationTag, build_map
from transync.storage.store import JsonTranslationStore, MemoryTranslationStore, StoredState
from transync.sync.classifier import SyncState
from transync.sync.manager import SyncSession

from conftest import LINEAGE


def _read(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestJsonTranslationStore:
    def test_missing_files(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        assert store.load_working() == {}
        assert store.load_ancestor() == {}
        assert store.load_state() == StoredState()

    def test_working_layout(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        store.save_working(build_map({"b": "2", "a": "1"}), LINEAGE, local_changes=3)

        data = _read(store.path)
        assert list(data) == ["_uuid", "_local_changes", "a", "b"]
        assert data["_uuid"] == LINEAGE
        assert data["_local_changes"] == 3
        assert data["a"] == {"v": "1", "t": "A"}

        assert store.load_working() == build_map({"a": "1", "b": "2"})
        assert store.load_lineage() == LINEAGE

    def test_no_change_counter_when_clean(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        store.save_working(build_map({"a": "1"}), LINEAGE)
        assert "_local_changes" not in _read(store.path)

    def test_legacy_strings(self, tmp_path):
        path = tmp_path / "translations.json"
        path.write_text(json.dumps({"_uuid": LINEAGE, "Hello": "Bonjour"}), encoding="utf-8")
        working = JsonTranslationStore(path).load_working()
        assert working["Hello"].value == "Bonjour"
        assert working["Hello"].tag is TranslationTag.AI

    def test_malformed_working_file(self, tmp_path):
        path = tmp_path / "translations.json"
        path.write_text('{"a": 5}', encoding="utf-8")
        assert JsonTranslationStore(path).load_working() == {}

        path.write_text("{not json", encoding="utf-8")
        assert JsonTranslationStore(path).load_working() == {}

    def test_ancestor_file(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        ancestor = build_map({"a": "1"}, TranslationTag.VALIDATED)
        store.save_ancestor(ancestor)

        assert store.ancestor_path.name == "translations.json.ancestor"
        assert "_uuid" not in _read(store.ancestor_path)
        assert store.load_ancestor() == ancestor

    def test_state_round_trip(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        state = StoredState(
            lineage_id=LINEAGE,
            parent_id="p",
            last_synced_hash="h",
            remote=RemoteState(checked=True, exists=True, site_id=4, hash="h"),
        )
        store.save_state(state)
        assert store.state_path == tmp_path / ".transync" / "state.json"
        assert store.load_state() == state

    def test_lineage_falls_back_to_working_file(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        store.save_working(build_map({"a": "1"}), LINEAGE)
        assert store.load_state().lineage_id == LINEAGE

    def test_corrupt_state_file(self, tmp_path):
        store = JsonTranslationStore(tmp_path / "translations.json")
        store.state_path.parent.mkdir()
        store.state_path.write_text('{"last_synced_hash": []}', encoding="utf-8")
        assert store.load_state().last_synced_hash is None


class TestMemoryTranslationStore:
    def test_copies_on_load(self):
        store = MemoryTranslationStore(working=build_map({"a": "1"}))
        loaded = store.load_working()
        loaded["b"] = loaded["a"]
        assert "b" not in store.load_working()


class TestSessionOnDisk:
    def test_fresh_session_mints_lineage(self, tmp_path, fake_remote):
        store = JsonTranslationStore(tmp_path / "translations.json")
        session = SyncSession(store, fake_remote)

        assert _read(store.path)["_uuid"] == session.lineage_id
        assert store.load_state().lineage_id == session.lineage_id

    def test_edits_survive_restart(self, tmp_path, fake_remote):
        path = tmp_path / "translations.json"
        session = SyncSession(JsonTranslationStore(path), fake_remote)
        session.set_translation("Hello", "Bonjour")
        lineage = session.lineage_id

        reopened = SyncSession(JsonTranslationStore(path), fake_remote)
        assert reopened.lineage_id == lineage
        assert reopened.working["Hello"].value == "Bonjour"
        assert reopened.working["Hello"].tag is TranslationTag.HUMAN
        assert _read(path)["_local_changes"] == 1

    def test_download_writes_ancestor(self, tmp_path, fake_remote):
        path = tmp_path / "translations.json"
        store = JsonTranslationStore(path)
        store.save_working({}, LINEAGE)
        session = SyncSession(store, fake_remote)

        state = fake_remote.publish(LINEAGE, build_map({"a": "1"}), is_owner=False)
        session.refresh_remote()
        outcome = session.download()
        assert outcome.success, outcome.error

        reopened = SyncSession(JsonTranslationStore(path), fake_remote)
        assert reopened.ancestor == build_map({"a": "1"})
        assert reopened.last_synced_hash == state.hash
        assert reopened.classify().state is SyncState.SYNCED
