# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import pytest

from agent_arena.storage.state_store import StateStore


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "nested" / "state.db")


def test_save_and_load(store):
    store.save_state("s1", {"taskStore": {"a": {"id": "a"}}, "errorCount": 2})
    assert store.load_state("s1") == {"taskStore": {"a": {"id": "a"}}, "errorCount": 2}


def test_save_replaces_previous_records(store):
    store.save_state("s1", {"a": 1, "b": 2})
    store.save_state("s1", {"a": 3})
    assert store.load_state("s1") == {"a": 3}


def test_sessions_are_isolated(store):
    store.save_state("s1", {"a": 1})
    store.save_state("s2", {"a": 2})
    store.clear_state("s1")

    assert store.load_state("s1") == {}
    assert store.load_state("s2") == {"a": 2}
    assert store.list_sessions() == ["s2"]


def test_persists_across_instances(tmp_path):
    StateStore(tmp_path / "state.db").save_state("s", {"k": [1, 2]})
    assert StateStore(tmp_path / "state.db").load_state("s") == {"k": [1, 2]}
