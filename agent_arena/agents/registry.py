# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The catalog of agents an arena can schedule.

A registry is constructed explicitly and populated once by build(): first the
built-in catalog, then any plugin modules found on the configured search
path. Plugins can also be loaded later with load_plugins().
"""

import sys
import inspect
import logging
import importlib.util

from pathlib import Path
from typing import Iterable, Optional, Sequence, Type

from .base_agent import BaseAgent
from .implementations import BUILTIN_AGENTS
from ..config import settings
from ..llm.base import StreamingLLM

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class AgentRegistry:
    def __init__(
        self,
        llm: Optional[StreamingLLM] = None,
        catalog: Iterable[Type[BaseAgent]] = BUILTIN_AGENTS,
        search_path: Optional[Sequence[str | Path]] = None,
    ):
        self._llm = llm
        self._catalog = tuple(catalog)
        self._search_path = list(
            search_path if search_path is not None else settings.agent_search_path
        )
        self._agents: dict[str, BaseAgent] = {}
        self._built = False

    @property
    def built(self) -> bool:
        return self._built

    def build(self) -> "AgentRegistry":
        """Populate the registry. Calling it again is a no-op."""
        if self._built:
            return self
        self._built = True

        for agent_cls in self._catalog:
            self.register(agent_cls(llm=self._llm))
        for directory in self._search_path:
            self.load_plugins(directory)

        logger.info(f"AgentRegistry loaded agents: {', '.join(self._agents)}")
        return self

    def register(self, agent: BaseAgent) -> None:
        self._agents[agent.name] = agent

    def load_plugins(self, directory: str | Path) -> list[str]:
        """Import every module in a directory and register the agents it defines.

        A module exposes its agent either as a module-level AGENT class
        attribute or simply by defining concrete BaseAgent subclasses. A
        module that fails to import is logged and skipped.

        Returns:
            The names of the agents registered from this directory
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning(f"Agent search path entry is not a directory: {directory}")
            return []

        loaded = []
        for path in sorted(directory.glob("*.py")):
            if path.name.startswith("_"):
                continue
            try:
                for agent_cls in self._agent_classes_in(path):
                    agent = agent_cls(llm=self._llm)
                    self.register(agent)
                    loaded.append(agent.name)
            except Exception as e:
                logger.error(f"Failed to load agent plugin {path}: {e}")
        return loaded

    @staticmethod
    def _agent_classes_in(path: Path) -> list[Type[BaseAgent]]:
        module_name = f"agent_arena_plugins.{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load module from {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            raise

        exported = getattr(module, "AGENT", None)
        if exported is not None:
            if not (inspect.isclass(exported) and issubclass(exported, BaseAgent)):
                raise TypeError(f"{path.name}: AGENT is not a BaseAgent subclass")
            return [exported]

        return [
            obj
            for obj in vars(module).values()
            if inspect.isclass(obj)
            and issubclass(obj, BaseAgent)
            and obj.__module__ == module_name
            and not inspect.isabstract(obj)
        ]

    def set_llm(self, llm: Optional[StreamingLLM]) -> None:
        self._llm = llm
        for agent in self._agents.values():
            agent.set_llm(llm)

    def get_agents(self) -> dict[str, BaseAgent]:
        """A shallow copy of the name -> agent map."""
        return dict(self._agents)

    def get_agent_names(self) -> list[str]:
        return list(self._agents)

    def get_agent(self, name: str) -> Optional[BaseAgent]:
        return self._agents.get(name)
