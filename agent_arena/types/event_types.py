# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from enum import Enum
from datetime import datetime
from dataclasses import field, dataclass


class EventType(str, Enum):
    CHUNK = "chunk"
    TOKEN = "token"
    TOOL_CALL = "toolCall"
    AGENT_CALL = "agentCall"
    PARSE_ERROR = "parseError"
    ERROR = "error"

    # Mirror set for events raised while running evaluator tasks
    EVALUATOR_CHUNK = "evaluatorChunk"
    EVALUATOR_TOKEN = "evaluatorToken"
    EVALUATOR_TOOL_CALL = "evaluatorToolCall"
    EVALUATOR_AGENT_CALL = "evaluatorAgentCall"
    EVALUATOR_PARSE_ERROR = "evaluatorParseError"
    EVALUATOR_ERROR = "evaluatorError"


EVALUATOR_MIRROR = {
    EventType.CHUNK: EventType.EVALUATOR_CHUNK,
    EventType.TOKEN: EventType.EVALUATOR_TOKEN,
    EventType.TOOL_CALL: EventType.EVALUATOR_TOOL_CALL,
    EventType.AGENT_CALL: EventType.EVALUATOR_AGENT_CALL,
    EventType.PARSE_ERROR: EventType.EVALUATOR_PARSE_ERROR,
    EventType.ERROR: EventType.EVALUATOR_ERROR,
}


class ParseErrorType(str, Enum):
    TOOL_CALLS = "toolCalls"
    AGENT_CALLS = "agentCalls"
    TOOL_EXECUTION = "toolExecution"
    AGENT_EXECUTION = "agentExecution"
    TOOL_RESULTS = "toolResults"
    AGENT_RESULTS = "agentResults"


def chunk_topic(chunk_type) -> str:
    """Topic name of the type-specific chunk event, e.g. 'chunk:toolOutput'."""
    return f"{EventType.CHUNK.value}:{getattr(chunk_type, 'value', chunk_type)}"


@dataclass
class Event:
    """Base class for all events in the stream

    metadata carries the structured payload: agent_name, task, chunk, call,
    error, type (for parse errors).
    """

    type: EventType
    content: str
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def agent_name(self):
        return self.metadata.get("agent_name")

    @property
    def task(self):
        return self.metadata.get("task")
