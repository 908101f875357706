"""EditorSession: settle cycle, history, remote/cache loading, autosave."""

from __future__ import annotations

import asyncio
import logging

import pytest

from flow_editor.examples import load_example
from flow_editor.graph.adapter import to_presentation
from flow_editor.graph.errors import SemanticGraphError, StructuralError
from flow_editor.graph.model import KIND_STEP, Position
from flow_editor.graph.session import SOURCE_CACHE, SOURCE_REMOTE, EditorSession
from flow_editor.graph.updates import add_node, delete_node, set_function_decision
from flow_editor.storage import LocalStore


def _food_session(**kwargs) -> EditorSession:
    return EditorSession(to_presentation(load_example("food_ordering")), **kwargs)


def _cached_store(tmp_path) -> LocalStore:
    store = LocalStore(tmp_path)
    store.save_current(to_presentation(load_example("minimal")))
    return store


def _fetch(result=None, delay=0.0, error=None):
    async def fetch():
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return result
    return fetch


# ---------------------------------------------------------------------------
# Settle cycle and history
# ---------------------------------------------------------------------------


class TestSettle:
    def test_new_session_holds_one_initial_node(self):
        session = EditorSession()
        assert [(n.id, n.kind) for n in session.graph.nodes] == [("initial", "initial")]
        assert session.graph.meta == {"name": "New Flow"}
        assert not session.can_undo()

    def test_edit_rederives_edges_and_decisions(self):
        session = _food_session()
        assert session.apply(
            lambda nodes: set_function_decision(nodes, "pizza", "select_pizza_order")
        )
        ids = {n.id for n in session.graph.nodes}
        assert "decision:pizza:select_pizza_order" in ids
        assert [e.id for e in session.graph.edges if e.source == "pizza"] == [
            "e-pizza-select_pizza_order-decision",
        ]
        assert session.edited
        assert session.can_undo()

    def test_noop_edit_is_not_recorded(self):
        session = _food_session()
        assert session.apply(lambda nodes: nodes) is False
        assert not session.can_undo()
        assert not session.edited

    def test_failed_edit_leaves_state(self):
        session = _food_session()
        before = session.graph
        with pytest.raises(ValueError):
            session.apply(lambda nodes: delete_node(nodes, "initial"))
        assert session.graph is before

    def test_undo_redo_restore_without_recording(self):
        session = _food_session()
        original = session.graph.copy()
        session.move_node("pizza", Position(0, 0))
        moved = session.graph.copy()

        assert session.undo()
        assert session.graph == original
        assert session.can_redo()
        assert session.redo()
        assert session.graph == moved
        assert not session.can_redo()
        assert session.undo()
        assert not session.undo()

    def test_decision_drag_is_one_history_entry(self):
        session = _food_session()
        session.move_node("decision:confirm:complete_order", Position(640, 480))
        confirm = session.graph.get_node("confirm")
        assert confirm.functions[0].decision.decision_node_position == Position(640, 480)
        assert session.undo()
        decision = session.graph.get_node("confirm").functions[0].decision
        assert decision.decision_node_position is None
        assert not session.can_undo()

    def test_history_limit(self):
        session = _food_session(history_limit=2)
        session.move_node("pizza", Position(1, 1))
        session.move_node("pizza", Position(2, 2))
        assert session.undo()
        assert not session.undo()

    def test_warnings_and_export(self):
        session = _food_session()
        session.apply(lambda nodes: delete_node(nodes, "sushi"))
        assert [w.target for w in session.warnings()] == ["sushi"]
        assert all(n["id"] != "sushi" for n in session.document().to_dict()["nodes"])
        with pytest.raises(SemanticGraphError):
            session.export()

    def test_rename_retargets_global_functions(self):
        raw = load_example("minimal")
        raw["global_functions"] = [
            {"name": "hang_up", "description": "Leave at any time", "next_node_id": "end"},
        ]
        session = EditorSession(to_presentation(raw))
        assert session.rename_node("end", "goodbye")

        assert session.graph.global_functions[0].next_node_id == "goodbye"
        assert session.graph.get_node("initial").functions[0].next_node_id == "goodbye"
        assert session.warnings() == []
        doc = session.export().to_dict()
        assert doc["global_functions"][0]["next_node_id"] == "goodbye"

        assert session.undo()
        assert session.graph.global_functions[0].next_node_id == "end"

    def test_rename_refusal_leaves_state(self):
        session = _food_session()
        before = session.graph
        with pytest.raises(ValueError):
            session.rename_node("pizza", "sushi")
        assert session.graph is before
        assert not session.can_undo()

    def test_update_meta(self):
        session = _food_session()
        session.update_meta(name="Renamed")
        assert session.document().meta["name"] == "Renamed"
        assert session.undo()
        assert session.document().meta["name"] == "Food Ordering"

    def test_new_flow_resets(self):
        session = _food_session()
        session.apply(lambda nodes: add_node(nodes, KIND_STEP, Position(0, 0)))
        session.new_flow()
        assert len(session.graph.nodes) == 1
        assert not session.can_undo()
        assert not session.loaded


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadDocument:
    def test_load_resets_history(self):
        session = EditorSession()
        session.move_node("initial", Position(5, 5))
        session.load_document(load_example("food_ordering"))
        assert session.loaded
        assert not session.edited
        assert not session.can_undo()
        assert session.document().to_dict() == load_example("food_ordering")

    def test_invalid_document_leaves_state(self):
        session = EditorSession()
        before = session.graph
        with pytest.raises(StructuralError):
            session.load_document({"meta": {"name": "x"}})
        assert session.graph is before
        assert not session.loaded


class TestLoadRemote:
    @pytest.mark.asyncio
    async def test_remote_wins(self):
        session = EditorSession()
        source = await session.load_remote(_fetch(load_example("food_ordering")))
        assert source == SOURCE_REMOTE
        assert session.graph.meta["name"] == "Food Ordering"

    @pytest.mark.asyncio
    async def test_slow_remote_falls_back_to_cache(self, tmp_path, caplog):
        session = EditorSession(store=_cached_store(tmp_path))
        fetch = _fetch(load_example("food_ordering"), delay=0.05)
        with caplog.at_level(logging.WARNING, logger="flow_editor.graph.session"):
            source = await session.load_remote(fetch, timeout=0.001)
            assert source == SOURCE_CACHE
            await asyncio.sleep(0.1)
        assert session.graph.meta["name"] == "Minimal"
        assert "arrived after the session was loaded" in caplog.text

    @pytest.mark.asyncio
    async def test_slow_remote_is_awaited_without_cache(self):
        session = EditorSession()
        fetch = _fetch(load_example("minimal"), delay=0.02)
        assert await session.load_remote(fetch, timeout=0.001) == SOURCE_REMOTE
        assert session.graph.meta["name"] == "Minimal"

    @pytest.mark.asyncio
    async def test_failed_remote_uses_cache(self, tmp_path):
        session = EditorSession(store=_cached_store(tmp_path))
        source = await session.load_remote(_fetch(error=RuntimeError("offline")))
        assert source == SOURCE_CACHE

    @pytest.mark.asyncio
    async def test_invalid_remote_uses_cache(self, tmp_path):
        broken = load_example("minimal")
        broken["nodes"][0]["data"]["functions"][0]["next_node_id"] = "gone"
        session = EditorSession(store=_cached_store(tmp_path))
        assert await session.load_remote(_fetch(broken)) == SOURCE_CACHE

    @pytest.mark.asyncio
    async def test_nothing_available(self):
        session = EditorSession()
        assert await session.load_remote(_fetch(None)) is None
        assert not session.loaded

    @pytest.mark.asyncio
    async def test_edit_during_load_discards_reply(self):
        session = EditorSession()

        async def fetch():
            session.move_node("initial", Position(5, 5))
            return load_example("food_ordering")

        assert await session.load_remote(fetch) is None
        assert session.graph.get_node("initial").position == Position(5, 5)
        assert session.graph.meta["name"] == "New Flow"

    @pytest.mark.asyncio
    async def test_second_load_is_skipped(self):
        session = EditorSession()
        await session.load_remote(_fetch(load_example("minimal")))
        assert await session.load_remote(_fetch(load_example("food_ordering"))) is None
        assert session.graph.meta["name"] == "Minimal"


# ---------------------------------------------------------------------------
# Autosave
# ---------------------------------------------------------------------------


class TestAutosave:
    def test_without_store(self):
        assert EditorSession().autosave() is False

    def test_round_trip_through_cache(self, tmp_path):
        store = LocalStore(tmp_path)
        session = _food_session(store=store)
        session.move_node("decision:confirm:complete_order", Position(640, 480))
        assert session.autosave()

        restored = EditorSession(store=store)
        assert restored.load_cached()
        assert restored.graph == session.graph
        assert restored.loaded
