# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Shared fixtures: a scripted streaming LLM, small test agents and tools."""
import pytest

from typing import Any, Optional

from agent_arena.agents.base_agent import BaseAgent
from agent_arena.agents.implementations import ErrorAgent
from agent_arena.agents.registry import AgentRegistry
from agent_arena.arena.arena import Arena
from agent_arena.config import ArenaConfig
from agent_arena.llm.base import StreamChunk, StreamingLLM
from agent_arena.tools.base_tool import BaseTool
from agent_arena.types.chunk_types import Task
from agent_arena.types.tool_types import ToolContext


class ScriptedLLM(StreamingLLM):
    """Replays canned responses.

    scripts maps a key to a list of responses; a prompt is answered from the
    first script whose key occurs in the prompt's first line. A response that
    is an exception instance is raised instead of streamed.
    """

    def __init__(self, scripts: dict[str, list[Any]], token_size: int = 7):
        self.scripts = {key: list(responses) for key, responses in scripts.items()}
        self.token_size = token_size
        self.prompts: list[str] = []

    def _next_response(self, prompt: str) -> Any:
        first_line = prompt.split("\n", 1)[0]
        for key, responses in self.scripts.items():
            if key in first_line:
                if not responses:
                    raise RuntimeError(f"Script for {key} exhausted")
                return responses.pop(0)
        raise RuntimeError(f"No script for prompt: {first_line}")

    async def generate_stream(self, prompt: str):
        self.prompts.append(prompt)
        response = self._next_response(prompt)
        if isinstance(response, Exception):
            raise response
        for i in range(0, len(response), self.token_size):
            yield StreamChunk(token=response[i : i + self.token_size])
        yield StreamChunk(finish_reason="stop")


class PlannerAgent(BaseAgent):
    async def build_prompt(self, task: Task) -> str:
        return f"PlannerAgent\n{self.get_scratchpad_content(task)}"


class WorkerAgent(BaseAgent):
    async def build_prompt(self, task: Task) -> str:
        return f"WorkerAgent\n{self.get_input_text(task)}"


class ChattyAgent(BaseAgent):
    SUPPORTS_CONTINUATION = True

    async def build_prompt(self, task: Task) -> str:
        return f"ChattyAgent\n{self.get_scratchpad_content(task)}"


class EchoTool(BaseTool):
    TOOL_NAME = "echo"
    TOOL_DESCRIPTION = "Echo the parameters back"

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> dict:
        return {"echo": parameters}


class FailingTool(BaseTool):
    TOOL_NAME = "fail"
    TOOL_DESCRIPTION = "Always fails"

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> Any:
        raise RuntimeError("boom")


TEST_AGENTS = (PlannerAgent, WorkerAgent, ChattyAgent, ErrorAgent)


def build_arena(
    scripts: dict[str, list[Any]],
    config: Optional[ArenaConfig] = None,
    evaluator_registry=None,
    catalog=TEST_AGENTS,
) -> tuple[Arena, ScriptedLLM]:
    llm = ScriptedLLM(scripts)
    registry = AgentRegistry(llm=llm, catalog=catalog, search_path=[])
    arena = Arena(registry, evaluator_registry, config=config or ArenaConfig(), llm=llm)
    return arena, llm


@pytest.fixture
def make_arena():
    return build_arena


@pytest.fixture
def scripted_llm():
    return ScriptedLLM
