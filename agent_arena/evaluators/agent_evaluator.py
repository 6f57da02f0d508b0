# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import asyncio
import logging

from typing import Any, Iterable, Optional, Type

from .base import Evaluator, EvaluationResult
from ..agents.base_agent import BaseAgent
from ..llm.base import StreamingLLM
from ..types.chunk_types import AgentOutput, Chunk, ChunkType, Task, TaskType

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class AgentEvaluator(Evaluator):
    """
    Evaluates a chunk by running an agent on it through the arena's own queue.

    Each evaluation enqueues an Evaluator-typed root task whose input is the
    chunk; the evaluation resolves when that task's on_complete fires. The
    agent must produce a final answer, so continuation agents are rejected.
    """

    def __init__(
        self,
        agent_cls: Type[BaseAgent],
        supported_chunk_types: Iterable[ChunkType],
        llm: Optional[StreamingLLM] = None,
        fqdn: Optional[str] = None,
    ):
        if agent_cls.SUPPORTS_CONTINUATION:
            raise ValueError(
                f"AgentEvaluator cannot use agents that support continuation: {agent_cls.__name__}"
            )
        super().__init__(supported_chunk_types, fqdn)
        self.agent = agent_cls(llm=llm)

    @staticmethod
    def result_from_output(result: Any) -> EvaluationResult:
        if isinstance(result, AgentOutput):
            return EvaluationResult(annotation=result.annotation, annotations=result.annotations)
        if isinstance(result, str):
            try:
                return EvaluationResult(annotation=json.loads(result))
            except json.JSONDecodeError:
                return EvaluationResult(annotation=result)
        return EvaluationResult.model_validate(result)

    async def evaluate(self, chunk: Chunk, arena, agent=None) -> EvaluationResult:
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()

        def on_complete(result: Any) -> None:
            if not done.done():
                done.set_result(result)

        task = Task(
            id=f"eval_{arena.generate_id()}",
            agent_name=self.agent.name,
            input=chunk.model_dump(mode="json"),
            parent_task_id=None,
            scratchpad=[Chunk(type=ChunkType.INPUT, content=chunk.content, processed=True)],
            task_type=TaskType.EVALUATOR,
            on_complete=on_complete,
        )
        arena.ensure_agent(self.agent)
        arena.enqueue_task(task)
        logger.debug(f"{self.fqdn} queued evaluation task {task.id}")

        return self.result_from_output(await done)
