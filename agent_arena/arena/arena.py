# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The arena: a single-threaded cooperative scheduler for agent tasks.

One loop iteration dequeues one task, runs its agent, records the response,
dispatches the tool and agent directives it contains and decides what
happens to the task next: re-queue, retry, wait for children, hand over to
an ErrorAgent, or deliver its final result to the parent or the caller.
"""

import json
import asyncio
import inspect
import logging

from collections import deque
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from pydantic import ValidationError

from .errors import AgentGenerationError, DirectiveParseError, UnknownAgentError
from ..agents.base_agent import BaseAgent
from ..agents.implementations.error_agent import ERROR_FALLBACK, ErrorAgent
from ..agents.registry import AgentRegistry
from ..config import ArenaConfig, GenerationFailurePolicy, settings
from ..evaluators.base import EvaluationResult, Evaluator
from ..evaluators.registry import EvaluatorRegistry
from ..events import EventBus
from ..llm.base import StreamingLLM
from ..types.chunk_types import (
    AgentCall,
    AgentOutput,
    Chunk,
    ChunkType,
    InvocationLogEntry,
    Task,
    TaskStatus,
    ToolCall,
)
from ..types.event_types import (
    EVALUATOR_MIRROR,
    Event,
    EventType,
    ParseErrorType,
    chunk_topic,
)
from ..types.tool_types import ToolContext, ToolResult
from ..utils.parsing import Directive, parse_agent_calls, parse_tool_calls, wrap_directive

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ERROR_AGENT_NAME = ErrorAgent.agent_name()

# Topics forwarded from every agent's bus onto the arena's bus
_AGENT_TOPICS = [
    EventType.CHUNK.value,
    EventType.TOKEN.value,
    EventType.TOOL_CALL.value,
    EventType.AGENT_CALL.value,
    EventType.PARSE_ERROR.value,
    EventType.ERROR.value,
] + [chunk_topic(t) for t in ChunkType]


class Arena:
    """
    Owns the task store, the FIFO task queue, the invocation log and the
    session-wide data chunks of one session, and drives the agents of its
    registry over them.
    """

    def __init__(
        self,
        agent_registry: AgentRegistry,
        evaluator_registry: Optional[EvaluatorRegistry] = None,
        config: Optional[ArenaConfig] = None,
        llm: Optional[StreamingLLM] = None,
    ):
        self.config = config or settings
        self.llm = llm
        self.event_bus = EventBus()
        self.always_allowed_agents: tuple[str, ...] = tuple(self.config.always_allowed_agents)

        self.agents: dict[str, BaseAgent] = {}
        self.task_queue: deque[Task] = deque()
        self.task_store: dict[str, Task] = {}
        self.invocation_log: list[InvocationLogEntry] = []
        self.current_continuation_task: Optional[Task] = None
        self.error_count = 0
        self.data_chunks: list[Chunk] = []

        self._subscriptions: dict[str, tuple[BaseAgent, list[tuple[str, Callable]]]] = {}
        self._pending_evaluations: set[asyncio.Future] = set()
        self._queue_signal = asyncio.Event()

        for agent in agent_registry.build().get_agents().values():
            self.add_agent(agent)

        self.evaluators: list[Evaluator] = (
            evaluator_registry.build().flattened() if evaluator_registry is not None else []
        )

    # ------------------------------------------------------------------
    # Agents and events
    # ------------------------------------------------------------------

    def add_agent(self, agent: BaseAgent) -> None:
        """Make an agent (and its registered sub-agents) schedulable here."""
        previous = self._subscriptions.pop(agent.name, None)
        if previous is not None:
            old_agent, subscriptions = previous
            for topic, callback in subscriptions:
                old_agent.event_bus.unsubscribe(topic, callback)

        self.agents[agent.name] = agent
        subscriptions = []
        for topic in _AGENT_TOPICS:
            callback = self._make_forwarder(agent, topic)
            agent.event_bus.subscribe(topic, callback)
            subscriptions.append((topic, callback))
        self._subscriptions[agent.name] = (agent, subscriptions)

        for sub_agent in agent.registered_agents.values():
            if sub_agent.name not in self.agents:
                self.add_agent(sub_agent)

    def ensure_agent(self, agent: BaseAgent) -> BaseAgent:
        """Register the agent unless one with the same name is already present."""
        existing = self.agents.get(agent.name)
        if existing is None:
            self.add_agent(agent)
            return agent
        return existing

    def update_llm(self, llm: Optional[StreamingLLM]) -> None:
        self.llm = llm
        for agent in self.agents.values():
            agent.set_llm(llm)

    def _make_forwarder(self, agent: BaseAgent, topic: str) -> Callable:
        async def forward(event: Event) -> None:
            await self._route_event(event, topic, agent)

        return forward

    async def _route_event(self, event: Event, topic: str, agent: Optional[BaseAgent]) -> None:
        """Single gate between agent events and the outward-facing bus.

        Events raised while running evaluator tasks are renamed to their
        evaluator* mirror, are not counted as errors and never trigger
        evaluation.
        """
        task = event.task
        if task is not None and task.is_evaluator:
            mirror = EVALUATOR_MIRROR.get(event.type)
            if mirror is not None and topic == event.type.value:
                await self.event_bus.publish(replace(event, type=mirror))
            return

        if event.type == EventType.ERROR:
            self.error_count += 1
        await self.event_bus.publish(event, topic)

        chunk = event.metadata.get("chunk")
        if topic == EventType.CHUNK.value and chunk is not None:
            self._dispatch_evaluators(chunk, agent)

    # ------------------------------------------------------------------
    # Evaluation side channel
    # ------------------------------------------------------------------

    def _dispatch_evaluators(self, chunk: Chunk, agent: Optional[BaseAgent]) -> None:
        targets = [
            e
            for e in self.evaluators
            if e.supports(chunk) and (agent is None or agent.accepts_evaluator(e.fqdn))
        ]
        if not targets:
            return
        pending = asyncio.ensure_future(self._run_evaluators(chunk, agent, targets))
        self._pending_evaluations.add(pending)
        pending.add_done_callback(self._pending_evaluations.discard)

    async def _run_evaluators(
        self, chunk: Chunk, agent: Optional[BaseAgent], evaluators: list[Evaluator]
    ) -> None:
        results = await asyncio.gather(
            *(self._evaluate(e, chunk, agent) for e in evaluators),
            return_exceptions=True,
        )
        for evaluator, result in zip(evaluators, results):
            if isinstance(result, BaseException):
                logger.warning(f"Evaluator {evaluator.fqdn} failed: {result}")
                continue
            result.merge_into(chunk, evaluator.fqdn)

    async def _evaluate(
        self, evaluator: Evaluator, chunk: Chunk, agent: Optional[BaseAgent]
    ) -> EvaluationResult:
        result = await evaluator.evaluate(chunk, self, agent)
        if not isinstance(result, EvaluationResult):
            result = EvaluationResult.model_validate(result)
        return result

    async def wait_for_evaluations(self) -> None:
        """Wait for every evaluation dispatched so far (tests, shutdown)."""
        while True:
            pending = [p for p in self._pending_evaluations if not p.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def generate_id() -> str:
        return uuid4().hex[:12]

    def enqueue_task(self, task: Task) -> None:
        if task.status == TaskStatus.FAILED:
            logger.debug(f"Not enqueuing abandoned task {task.id}")
            return
        self.task_store.setdefault(task.id, task)
        task.status = TaskStatus.QUEUED
        self.task_queue.append(task)
        self._queue_signal.set()

    def _log_invocation(self, entry: InvocationLogEntry) -> None:
        if not any(inv.id == entry.id for inv in self.invocation_log):
            self.invocation_log.append(entry)

    def _set_invocation_result(self, entry_id: str, result: Any) -> None:
        for inv in self.invocation_log:
            if inv.id == entry_id:
                inv.result = result
                return

    def remove_task(self, task_id: str) -> None:
        """Delete a task, its log entry and everything invoked beneath it."""
        if task_id not in self.task_store and not any(
            inv.id == task_id for inv in self.invocation_log
        ):
            return

        task = self.task_store.pop(task_id, None)
        if task is not None:
            self.task_queue = deque(t for t in self.task_queue if t.id != task_id)

        self.invocation_log = [inv for inv in self.invocation_log if inv.id != task_id]

        children = {inv.id for inv in self.invocation_log if inv.parent_id == task_id}
        children.update(t.id for t in self.task_store.values() if t.parent_task_id == task_id)
        for child_id in children:
            self.remove_task(child_id)

        if self.current_continuation_task is not None and self.current_continuation_task.id == task_id:
            self.current_continuation_task = None
        logger.debug(f"Removed task {task_id}")

    def remove_chunks_by_message_id(self, message_id: str) -> None:
        for task in self.task_store.values():
            task.scratchpad = [c for c in task.scratchpad if c.message_id != message_id]

    async def add_input_chunk(self, task: Task, chunk: Chunk) -> None:
        """Append externally supplied input to a task and announce it."""
        task.scratchpad.append(chunk)
        metadata = {"agent_name": None, "task": task, "chunk": chunk}
        await self._route_event(
            Event(type=EventType.CHUNK, content=chunk.content, metadata=dict(metadata)),
            EventType.CHUNK.value,
            None,
        )
        await self._route_event(
            Event(type=EventType.CHUNK, content=chunk.content, metadata=dict(metadata)),
            chunk_topic(chunk.type),
            None,
        )

    async def submit_input(
        self,
        text: str,
        agent_name: str,
        message_id: Optional[str] = None,
        on_complete: Optional[Callable[[Any], Any]] = None,
    ) -> Task:
        """Feed a user message in: continue the current conversation or start a new one."""
        self.error_count = 0
        chunk = Chunk(type=ChunkType.INPUT, content=text, processed=True, message_id=message_id)

        task = self.current_continuation_task
        if task is None:
            task = Task(
                id=self.generate_id(),
                agent_name=agent_name,
                input={"text": text, "messageId": message_id} if message_id else text,
                parent_task_id=None,
                on_complete=on_complete,
            )
            self.task_store[task.id] = task
            await self.add_input_chunk(task, chunk)
            agent = self.agents.get(agent_name)
            if agent is not None and agent.supports_continuation:
                self.current_continuation_task = task
            logger.debug(f"Created root task {task.id} ({agent_name})")
        else:
            if on_complete is not None:
                task.on_complete = on_complete
            await self.add_input_chunk(task, chunk)
            logger.debug(f"Appended input to continuation task {task.id}")

        self.enqueue_task(task)
        return task

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def run_event_loop(self, interactive: bool = False) -> None:
        """Drain the queue, then wait out any evaluations still in flight.

        Evaluations may enqueue evaluator tasks, which are processed by this
        same loop.
        """
        logger.debug(f"Starting event loop with {len(self.task_queue)} tasks in queue")
        while True:
            while self.task_queue:
                task = self.task_queue.popleft()
                await self.process_task(task, interactive)
                # let evaluations make progress between tasks
                await asyncio.sleep(0)

            pending = [p for p in self._pending_evaluations if not p.done()]
            if not pending:
                break

            self._queue_signal.clear()
            if self.task_queue:
                continue
            waiter = asyncio.ensure_future(self._queue_signal.wait())
            try:
                await asyncio.wait([waiter, *pending], return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
        logger.debug("Event loop finished")

    async def run_agent(self, task: Task) -> tuple[str | AgentOutput, BaseAgent]:
        """Run the task's agent once and return its raw response."""
        self._log_invocation(
            InvocationLogEntry(
                id=task.id,
                type="agent",
                name=task.agent_name,
                parent_id=task.parent_task_id,
                params=task.input,
            )
        )

        agent = self.agents.get(task.agent_name)
        if agent is None:
            if task.agent_name != ERROR_AGENT_NAME:
                raise UnknownAgentError(task.agent_name)
            agent = ErrorAgent(llm=self.llm)
            self.add_agent(agent)

        try:
            response = await agent.run(task)
        except Exception as e:
            if task.agent_name == ERROR_AGENT_NAME:
                logger.warning(f"ErrorAgent failed on task {task.id}, using fallback: {e}")
                return ERROR_FALLBACK, agent
            raise AgentGenerationError(task.id, task.agent_name, e) from e
        return response, agent

    async def process_task(self, task: Task, interactive: bool = False) -> None:
        """One scheduler iteration for a dequeued task."""
        if task.status == TaskStatus.FAILED:
            # stale queue entry of a task already handed to an ErrorAgent
            logger.debug(f"Skipping abandoned task {task.id}")
            return

        task.execution_count += 1
        task.status = TaskStatus.RUNNING
        logger.debug(
            f"Processing task {task.id} ({task.agent_name}) - execution {task.execution_count}"
        )

        try:
            response, agent = await self.run_agent(task)
            output = self._as_agent_output(response, task)
        except AgentGenerationError as e:
            if self.config.generation_failure_policy == GenerationFailurePolicy.RAISE:
                raise
            await self._route_generation_failure(task, e)
            return

        chunk = Chunk(
            type=ChunkType.LLM_OUTPUT,
            content=output.content,
            processed=False,
            annotations=output.collapse_annotations(agent.fqdn),
        )
        await agent.add_chunk(task, chunk)
        if chunk.processed or task.scratchpad[-1] is not chunk:
            logger.debug(f"Response chunk of task {task.id} already processed")
            return

        has_new_errors = False

        try:
            tool_calls = parse_tool_calls(chunk.content)
        except DirectiveParseError as e:
            tool_calls = []
            await self._record_error(
                agent, task, f"Parse error in toolCalls: {e}", ParseErrorType.TOOL_CALLS, e, chunk.content
            )
            has_new_errors = True

        try:
            agent_calls = parse_agent_calls(chunk.content)
        except DirectiveParseError as e:
            agent_calls = []
            await self._record_error(
                agent, task, f"Parse error in agentCalls: {e}", ParseErrorType.AGENT_CALLS, e, chunk.content
            )
            has_new_errors = True

        has_tool_calls = False
        for call in tool_calls:
            if await self._execute_tool_call(agent, task, call):
                has_tool_calls = True
            else:
                has_new_errors = True

        for call in agent_calls:
            if not await self._execute_agent_call(agent, task, call):
                has_new_errors = True

        chunk.processed = True

        if has_new_errors:
            await self._retry_or_fail(task)
        elif has_tool_calls:
            if task.execution_count >= self.config.max_executions:
                await self._fail_task(task, "max executions reached")
            else:
                self.enqueue_task(task)
                logger.debug(f"Re-queued task {task.id} after tool calls")
        elif not tool_calls and not agent_calls:
            if agent.supports_continuation and interactive:
                task.status = TaskStatus.AWAITING_INPUT
                logger.debug(f"Continuation task {task.id} waiting for more input")
            else:
                task.status = TaskStatus.COMPLETED
                await self.return_result_to_parent(task, response if isinstance(response, (str, AgentOutput)) else output)
        elif task.execution_count >= self.config.max_executions:
            await self._fail_task(task, "max executions reached")
        else:
            task.status = TaskStatus.WAITING
            logger.debug(f"Task {task.id} waiting for child agents")

    def _as_agent_output(self, response: Any, task: Task) -> AgentOutput:
        if isinstance(response, AgentOutput):
            return response
        if isinstance(response, str):
            return AgentOutput(content=response)
        try:
            return AgentOutput.model_validate(response)
        except ValidationError as e:
            raise AgentGenerationError(task.id, task.agent_name, e) from e

    async def _record_error(
        self,
        agent: BaseAgent,
        task: Task,
        content: str,
        kind: ParseErrorType,
        error: Any,
        subject: str,
    ) -> None:
        await agent.add_chunk(task, Chunk(type=ChunkType.ERROR, content=content, processed=True))
        await agent.emit(EventType.PARSE_ERROR, task, content=subject, error=error, type=kind.value)

    async def _execute_tool_call(self, agent: BaseAgent, task: Task, call: ToolCall) -> bool:
        await agent.emit(EventType.TOOL_CALL, task, content=call.name, call=call)
        tool_id = f"tool_{task.id}_{call.name}"
        self._log_invocation(
            InvocationLogEntry(
                id=tool_id, type="tool", name=call.name, parent_id=task.id, params=call.parameters
            )
        )

        tool = agent.tools.get(call.name)
        if tool is None:
            content = wrap_directive(Directive.ERROR, f"Unknown tool: {call.name}")
            await self._record_error(agent, task, content, ParseErrorType.TOOL_EXECUTION, content, call.name)
            return False

        try:
            raw = await tool.run(call.parameters, ToolContext(self, task, agent))
            result = ToolResult.from_raw(raw)
            payload = json.dumps(result.result)
        except Exception as e:
            content = wrap_directive(Directive.ERROR, f"Tool {call.name} failed: {e}")
            await self._record_error(agent, task, content, ParseErrorType.TOOL_EXECUTION, e, call.name)
            logger.debug(f"Tool {call.name} failed: {e}")
            return False

        self._set_invocation_result(tool_id, result.result)
        await agent.add_chunk(
            task,
            Chunk(
                type=ChunkType.TOOL_OUTPUT,
                content=wrap_directive(Directive.TOOL_RESULT, payload),
                processed=True,
                annotations=result.collapse_annotations(tool.fqdn),
            ),
        )
        return True

    def may_call(self, agent: BaseAgent, target: str) -> bool:
        """Whether agent is allowed to delegate to the agent named target."""
        if target in agent.registered_agents:
            return True
        if target in self.always_allowed_agents and target in self.agents:
            return True
        return (
            not agent.registered_agents
            and self.config.open_agent_calls
            and target in self.agents
        )

    async def _execute_agent_call(self, agent: BaseAgent, task: Task, call: AgentCall) -> bool:
        if not self.may_call(agent, call.name):
            content = wrap_directive(Directive.ERROR, f"Unknown agent: {call.name}")
            await self._record_error(agent, task, content, ParseErrorType.AGENT_EXECUTION, content, call.name)
            return False

        await agent.emit(EventType.AGENT_CALL, task, content=call.name, call=call)
        child = Task(
            id=self.generate_id(),
            agent_name=call.name,
            input=call.input,
            parent_task_id=task.id,
            scratchpad=[Chunk(type=ChunkType.INPUT, content=json.dumps(call.input), processed=True)],
            task_type=task.task_type,
        )
        self.task_store[child.id] = child
        self.enqueue_task(child)
        logger.debug(f"Created child task {child.id} ({child.agent_name}) for {task.id}")
        return True

    async def _retry_or_fail(self, task: Task) -> None:
        if (
            task.retry_count < self.config.max_retries
            and task.execution_count < self.config.max_executions
        ):
            task.retry_count += 1
            self.enqueue_task(task)
            logger.debug(
                f"Re-queued task {task.id} for retry "
                f"({task.retry_count}/{self.config.max_retries}, executions: {task.execution_count})"
            )
            return

        reason = (
            "max executions reached"
            if task.execution_count >= self.config.max_executions
            else "max retries reached"
        )
        await self._fail_task(task, reason)

    async def _fail_task(self, task: Task, reason: str) -> Task:
        """Abandon a task and ask an ErrorAgent to summarize what went wrong."""
        errors = [c.content for c in task.scratchpad if c.type == ChunkType.ERROR]
        details = f"{reason}\n" + "\n".join(errors)

        error_task = Task(
            id=self.generate_id(),
            agent_name=ERROR_AGENT_NAME,
            input=details,
            parent_task_id=task.id,
            scratchpad=[Chunk(type=ChunkType.INPUT, content=details, processed=True)],
            task_type=task.task_type,
        )
        task.status = TaskStatus.FAILED
        task.error_task_id = error_task.id
        self.task_store[error_task.id] = error_task
        self.enqueue_task(error_task)

        if self.current_continuation_task is not None and self.current_continuation_task.id == task.id:
            self.current_continuation_task = None
        logger.debug(f"Created ErrorAgent task {error_task.id} for exhausted task {task.id} ({reason})")
        return error_task

    async def _route_generation_failure(self, task: Task, error: AgentGenerationError) -> None:
        logger.error(f"Agent {task.agent_name} failed on task {task.id}: {error.cause}")
        chunk = Chunk(
            type=ChunkType.ERROR,
            content=wrap_directive(Directive.ERROR, f"Agent {task.agent_name} failed: {error.cause}"),
            processed=True,
        )
        agent = self.agents.get(task.agent_name)
        if agent is not None:
            await agent.add_chunk(task, chunk)
        else:
            task.scratchpad.append(chunk)
        await self._fail_task(task, "agent generation failed")

    async def return_result_to_parent(self, task: Task, result: str | AgentOutput) -> None:
        """Deliver a task's final result to its parent, or to the caller for a root."""
        content = result.content if isinstance(result, AgentOutput) else result
        self._set_invocation_result(task.id, content)

        if task.is_root:
            logger.info(f"Final output of task {task.id} ({task.agent_name}): {content}")
            callback, task.on_complete = task.on_complete, None
            if callback is not None:
                outcome = callback(result)
                if inspect.isawaitable(outcome):
                    await outcome
            return

        parent = self.task_store.get(task.parent_task_id)
        if parent is None:
            logger.warning(f"Parent {task.parent_task_id} of task {task.id} no longer exists, dropping result")
            return

        if parent.status == TaskStatus.FAILED:
            if task.id != parent.error_task_id:
                logger.warning(f"Parent {parent.id} of task {task.id} was abandoned, dropping result")
                return
            # The ErrorAgent summary stands in for the abandoned parent's result
            await self.return_result_to_parent(parent, result)
            return

        agent_chunk = Chunk(
            type=ChunkType.AGENT_OUTPUT,
            content=wrap_directive(Directive.AGENT_RESULT, json.dumps(content)),
            processed=True,
        )
        parent_agent = self.agents.get(parent.agent_name)
        if parent_agent is not None:
            await parent_agent.add_chunk(parent, agent_chunk)
        else:
            parent.scratchpad.append(agent_chunk)

        if parent.execution_count >= self.config.max_executions:
            await self._fail_task(parent, "max executions reached")
            return
        self.enqueue_task(parent)
        logger.debug(f"Re-queued parent task {parent.id} with result of {task.id}")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Plain-data copy of the arena's mutable state."""
        return {
            "taskStore": {tid: t.model_dump(mode="json") for tid, t in self.task_store.items()},
            "taskQueue": [t.id for t in self.task_queue],
            "invocationLog": [inv.model_dump(mode="json") for inv in self.invocation_log],
            "currentContinuationTask": (
                self.current_continuation_task.id if self.current_continuation_task else None
            ),
            "errorCount": self.error_count,
            "dataChunks": [c.model_dump(mode="json") for c in self.data_chunks],
        }

    def restore(self, state: dict[str, Any]) -> None:
        """Replace the arena's state with a snapshot taken by snapshot()."""
        self.task_store = {
            tid: Task.model_validate(data) for tid, data in state.get("taskStore", {}).items()
        }
        self.task_queue = deque(
            self.task_store[tid] for tid in state.get("taskQueue", []) if tid in self.task_store
        )
        self.invocation_log = [
            InvocationLogEntry.model_validate(inv) for inv in state.get("invocationLog", [])
        ]
        continuation = state.get("currentContinuationTask")
        self.current_continuation_task = self.task_store.get(continuation) if continuation else None
        self.error_count = int(state.get("errorCount", 0))
        self.data_chunks = [Chunk.model_validate(c) for c in state.get("dataChunks", [])]

    def tasks_with_status(self, statuses: Iterable[TaskStatus]) -> list[Task]:
        wanted = set(statuses)
        return [t for t in self.task_store.values() if t.status in wanted]
