# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Records for scratchpad history, scheduled work and the invocation log."""

from enum import Enum
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class ChunkType(str, Enum):
    INPUT = "input"
    LLM_OUTPUT = "llmOutput"
    TOOL_OUTPUT = "toolOutput"
    AGENT_OUTPUT = "agentOutput"
    ERROR = "error"
    DATA = "data"


class TaskType(str, Enum):
    REGULAR = "regular"
    EVALUATOR = "evaluator"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    WAITING = "waiting"  # waiting on child agent results
    AWAITING_INPUT = "awaiting_input"  # continuation agent, interactive mode
    COMPLETED = "completed"
    FAILED = "failed"  # handed over to an ErrorAgent


class Chunk(BaseModel):
    """One entry in a task's scratchpad."""

    type: ChunkType
    content: str
    processed: bool = False
    message_id: Optional[str] = None
    annotations: Optional[dict[str, Any]] = None


class Task(BaseModel):
    """One unit of scheduled work."""

    id: str
    agent_name: str
    input: Any = None
    parent_task_id: Optional[str] = None
    scratchpad: list[Chunk] = Field(default_factory=list)
    retry_count: int = 0
    execution_count: int = 0
    task_type: TaskType = TaskType.REGULAR
    status: TaskStatus = TaskStatus.QUEUED
    error_task_id: Optional[str] = None  # ErrorAgent task summarizing a FAILED task
    on_complete: Optional[Callable[[Any], Any]] = Field(default=None, exclude=True)

    @property
    def is_root(self) -> bool:
        return self.parent_task_id is None

    @property
    def is_evaluator(self) -> bool:
        return self.task_type == TaskType.EVALUATOR


class InvocationLogEntry(BaseModel):
    id: str
    type: Literal["agent", "tool"]
    name: str
    parent_id: Optional[str] = None
    params: Any = None
    result: Any = None


class ToolCall(BaseModel):
    name: str
    parameters: Any = None


class AgentCall(BaseModel):
    name: str
    input: Any = None


def _check_single_annotation_form(annotation: Any, annotations: Any) -> None:
    if annotation is not None and annotations is not None:
        raise ValueError("Specify either 'annotation' or 'annotations', not both")


class AgentOutput(BaseModel):
    """Structured agent response: text plus optional annotation(s)."""

    content: str
    annotation: Any = None
    annotations: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _one_annotation_form(self) -> "AgentOutput":
        _check_single_annotation_form(self.annotation, self.annotations)
        return self

    def collapse_annotations(self, fqdn: str) -> Optional[dict[str, Any]]:
        """Merge annotation(s) into a single map keyed by fully-qualified name."""
        if self.annotation is not None:
            return {fqdn: self.annotation}
        if self.annotations is not None:
            return dict(self.annotations)
        return None
