# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import inspect
import logging

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional, Tuple

from pydantic import BaseModel, PrivateAttr

from ..events import EventBus
from ..llm.base import StreamingLLM
from ..tools.base_tool import BaseTool
from ..types.chunk_types import AgentOutput, Chunk, ChunkType, Task
from ..types.event_types import Event, EventType, ParseErrorType, chunk_topic
from ..utils.data_chunks import (
    make_data_chunk,
    read_annotation,
    read_data_chunks,
    write_annotation,
)
from ..utils.parsing import parse_agent_results, parse_tool_results

if TYPE_CHECKING:
    from ..arena.arena import Arena

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class BaseAgent(BaseModel, ABC):
    """
    Base class for all agents.

    Subclasses implement build_prompt, and may override post_process_response
    to turn the raw completion into structured output with annotations.
    """

    # Registry key; defaults to the class name
    AGENT_NAME: ClassVar[Optional[str]] = None
    AGENT_DESCRIPTION: ClassVar[str] = ""

    # In interactive mode, a plain response means "waiting for more input"
    SUPPORTS_CONTINUATION: ClassVar[bool] = False

    # Fully-qualified names of the evaluators allowed to annotate this agent's
    # chunks; None means every registered evaluator
    EVALUATORS: ClassVar[Optional[Tuple[str, ...]]] = None

    _llm: Optional[StreamingLLM] = PrivateAttr(default=None)
    _tools: Dict[str, BaseTool] = PrivateAttr(default_factory=dict)
    _registered_agents: Dict[str, "BaseAgent"] = PrivateAttr(default_factory=dict)
    _event_bus: EventBus = PrivateAttr(default_factory=EventBus)
    _current_task: Optional[Task] = PrivateAttr(default=None)

    class Config:
        arbitrary_types_allowed = True

    def __init__(self, llm: Optional[StreamingLLM] = None, **data):
        super().__init__(**data)
        self._llm = llm

    @classmethod
    def agent_name(cls) -> str:
        return cls.AGENT_NAME or cls.__name__

    @property
    def name(self) -> str:
        return self.agent_name()

    @property
    def fqdn(self) -> str:
        return f"agents.{type(self).__name__}"

    @property
    def supports_continuation(self) -> bool:
        return self.SUPPORTS_CONTINUATION

    @property
    def tools(self) -> Dict[str, BaseTool]:
        return self._tools

    @property
    def registered_agents(self) -> Dict[str, "BaseAgent"]:
        return self._registered_agents

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def current_task(self) -> Optional[Task]:
        return self._current_task

    @property
    def llm(self) -> Optional[StreamingLLM]:
        return self._llm

    def set_llm(self, llm: Optional[StreamingLLM]) -> None:
        self._llm = llm

    def register_tool(self, tool: BaseTool) -> None:
        self._tools[tool.name] = tool

    def register_agent(self, agent: "BaseAgent") -> None:
        self._registered_agents[agent.name] = agent

    def accepts_evaluator(self, evaluator_fqdn: str) -> bool:
        return self.EVALUATORS is None or evaluator_fqdn in self.EVALUATORS

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @abstractmethod
    async def build_prompt(self, task: Task) -> str:
        """Compose the prompt for the next generation on this task."""
        ...

    def post_process_response(self, response: str) -> str | AgentOutput:
        return response

    async def run(self, task: Task) -> str | AgentOutput:
        """Generate a response for the task.

        Tokens are published as they stream in. Any failure is published as
        an error event and re-raised; the arena decides what happens next.
        """
        self._current_task = task
        try:
            prompt = await self.build_prompt(task)
            response = await self._generate(task, prompt)
            return self.post_process_response(response)
        except Exception as e:
            logger.debug(f"{self.name} failed on task {task.id}: {e}")
            await self.emit(EventType.ERROR, task, content=str(e), error=e)
            raise
        finally:
            self._current_task = None

    async def _generate(self, task: Task, prompt: str) -> str:
        if self._llm is None:
            raise RuntimeError(f"No LLM configured for agent {self.name}")

        parts = []
        async for chunk in self._llm.generate_stream(prompt):
            if chunk.token:
                parts.append(chunk.token)
                await self.emit(EventType.TOKEN, task, content=chunk.token)
            if chunk.finish_reason:
                break
        return "".join(parts)

    async def emit(
        self,
        event_type: EventType,
        task: Optional[Task],
        content: str = "",
        topic: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        event = Event(
            type=event_type,
            content=content,
            metadata={"agent_name": self.name, "task": task, **metadata},
        )
        await self._event_bus.publish(event, topic)

    async def add_chunk(self, task: Task, chunk: Chunk) -> None:
        """Append a chunk to the task's scratchpad and announce it."""
        if chunk.type == ChunkType.LLM_OUTPUT and chunk.message_id is None:
            chunk.message_id = self._find_message_id(task)

        task.scratchpad.append(chunk)
        await self.emit(EventType.CHUNK, task, content=chunk.content, chunk=chunk)
        await self.emit(
            EventType.CHUNK,
            task,
            content=chunk.content,
            topic=chunk_topic(chunk.type),
            chunk=chunk,
        )

    @staticmethod
    def _find_message_id(task: Task) -> Optional[str]:
        for chunk in reversed(task.scratchpad):
            if chunk.type == ChunkType.INPUT:
                if chunk.message_id is not None:
                    return chunk.message_id
                break
        if isinstance(task.input, dict):
            return task.input.get("messageId") or task.input.get("message_id")
        return None

    # ------------------------------------------------------------------
    # Scratchpad views used when building prompts
    # ------------------------------------------------------------------

    def get_scratchpad_content(self, task: Task) -> str:
        """Conversation so far: inputs and model outputs, in order."""
        return "\n".join(
            c.content
            for c in task.scratchpad
            if c.type in (ChunkType.INPUT, ChunkType.LLM_OUTPUT)
        )

    def get_filtered_contents(self, task: Task, chunk_type: ChunkType) -> str:
        return "\n".join(c.content for c in task.scratchpad if c.type == chunk_type)

    def get_input_text(self, task: Task) -> str:
        """The latest user input for the task."""
        for chunk in reversed(task.scratchpad):
            if chunk.type == ChunkType.INPUT:
                return chunk.content
        if isinstance(task.input, str):
            return task.input
        if isinstance(task.input, dict) and isinstance(task.input.get("text"), str):
            return task.input["text"]
        return json.dumps(task.input)

    def get_input_text_or_tool_output(self, task: Task) -> str:
        for chunk in reversed(task.scratchpad):
            if chunk.type in (ChunkType.INPUT, ChunkType.TOOL_OUTPUT):
                return chunk.content
        return self.get_input_text(task)

    async def _parse_results_safe(
        self, parser, kind: ParseErrorType, task: Task, contents: str, add_error_chunk: bool
    ) -> list[Any]:
        try:
            return parser(contents)
        except ValueError as e:
            await self.emit(
                EventType.PARSE_ERROR,
                task,
                content=contents,
                error=e,
                type=kind.value,
            )
            if not add_error_chunk:
                raise
            await self.add_chunk(
                task,
                Chunk(
                    type=ChunkType.ERROR,
                    content=f"Parse error in {kind.value}: {e}",
                    processed=True,
                ),
            )
            return []

    async def parse_tool_results_safe(
        self, task: Task, contents: str, add_error_chunk: bool = False
    ) -> list[Any]:
        return await self._parse_results_safe(
            parse_tool_results, ParseErrorType.TOOL_RESULTS, task, contents, add_error_chunk
        )

    async def parse_agent_results_safe(
        self, task: Task, contents: str, add_error_chunk: bool = False
    ) -> list[Any]:
        return await self._parse_results_safe(
            parse_agent_results, ParseErrorType.AGENT_RESULTS, task, contents, add_error_chunk
        )

    # ------------------------------------------------------------------
    # Data chunks and annotations
    # ------------------------------------------------------------------

    async def write_task_data_chunk(self, task: Task, data: Any) -> None:
        chunk = make_data_chunk(self.fqdn, data)
        logger.debug(f"{self.name} writing task data chunk: {chunk.content}")
        await self.add_chunk(task, chunk)

    def write_session_data_chunk(self, arena: "Arena", data: Any) -> None:
        chunk = make_data_chunk(self.fqdn, data)
        logger.debug(f"{self.name} writing session data chunk: {chunk.content}")
        arena.data_chunks.append(chunk)

    def get_task_data_chunks(self, task: Task) -> list[Any]:
        return read_data_chunks(task.scratchpad, self.fqdn)

    def get_session_data_chunks(self, arena: "Arena") -> list[Any]:
        return read_data_chunks(arena.data_chunks, self.fqdn)

    def get_all_data_chunks(
        self, arena: Optional["Arena"] = None, task: Optional[Task] = None
    ) -> list[Any]:
        """Session payloads first, then the task's own."""
        session_data = self.get_session_data_chunks(arena) if arena is not None else []
        task_data = self.get_task_data_chunks(task) if task is not None else []
        return session_data + task_data

    def write_chunk_annotation(self, chunk: Chunk, annotation: Any) -> None:
        write_annotation(chunk, self.fqdn, annotation)

    def get_chunk_annotation(self, chunk: Chunk, fqdn: Optional[str] = None) -> Any:
        return read_annotation(chunk, fqdn or self.fqdn)

    def get_all_chunk_annotations(self, chunk: Chunk) -> dict[str, Any]:
        return dict(chunk.annotations or {})
