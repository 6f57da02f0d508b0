# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""One arena per session, hydrated from and saved to the state store."""

import logging

from typing import Callable, Dict, Optional

from .arena import Arena
from ..agents.registry import AgentRegistry
from ..config import ArenaConfig, settings
from ..evaluators.registry import EvaluatorRegistry
from ..llm.base import StreamingLLM
from ..storage.state_store import StateStore

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ArenaManager:
    """
    Keeps one Arena per session id. Each arena gets its own registries, so
    agents (and their event buses) are never shared between sessions.

    Storage failures are logged and otherwise ignored: a session that cannot
    be restored simply starts empty.
    """

    def __init__(
        self,
        registry_factory: Callable[[], AgentRegistry],
        store: Optional[StateStore] = None,
        evaluator_factory: Optional[Callable[[], EvaluatorRegistry]] = None,
        config: Optional[ArenaConfig] = None,
        llm: Optional[StreamingLLM] = None,
    ):
        self.registry_factory = registry_factory
        self.evaluator_factory = evaluator_factory
        self.store = store
        self.config = config or settings
        self.llm = llm
        self._arenas: Dict[str, Arena] = {}

    def get_arena(self, session_id: str) -> Arena:
        arena = self._arenas.get(session_id)
        if arena is not None:
            return arena

        arena = Arena(
            self.registry_factory(),
            self.evaluator_factory() if self.evaluator_factory is not None else None,
            config=self.config,
            llm=self.llm,
        )
        self._hydrate(session_id, arena)
        self._arenas[session_id] = arena
        return arena

    def _hydrate(self, session_id: str, arena: Arena) -> None:
        if self.store is None:
            return
        try:
            state = self.store.load_state(session_id)
            if state:
                arena.restore(state)
                logger.info(f"Restored arena state for session {session_id}")
        except Exception as e:
            logger.error(f"Failed to restore arena state for session {session_id}: {e}")

    def save_arena_state(self, session_id: str) -> None:
        arena = self._arenas.get(session_id)
        if arena is None or self.store is None:
            return
        try:
            self.store.save_state(session_id, arena.snapshot())
        except Exception as e:
            logger.error(f"Failed to save arena state for session {session_id}: {e}")

    def clear_arena(self, session_id: str) -> None:
        """Forget the in-memory arena; the next access hydrates a fresh one."""
        self._arenas.pop(session_id, None)

    def clear_arena_state(self, session_id: str) -> None:
        self.clear_arena(session_id)
        if self.store is None:
            return
        try:
            self.store.clear_state(session_id)
        except Exception as e:
            logger.error(f"Failed to clear arena state for session {session_id}: {e}")

    def update_llm(self, llm: Optional[StreamingLLM]) -> None:
        self.llm = llm
        for arena in self._arenas.values():
            arena.update_llm(llm)

    @property
    def sessions(self) -> list[str]:
        return list(self._arenas)
