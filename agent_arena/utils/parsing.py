# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Parsing of the tagged directive grammar the arena shares with the model.

Every directive kind is a pair of case-sensitive tags around a payload, e.g.
<|tool_call|>{"name": ..., "parameters": ...}<|tool_call_end|>. The counts of
start and end tags must match before anything is extracted, since an
unbalanced pair almost always means a response was cut off mid-directive.
"""

import json
import logging

from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..arena.errors import DirectiveParseError, IncompleteDirectiveError
from ..types.chunk_types import AgentCall, ToolCall

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class Directive(str, Enum):
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    AGENT_CALL = "agent_call"
    AGENT_RESULT = "agent_result"
    ERROR = "error"


def start_tag(kind: Directive) -> str:
    return f"<|{kind.value}|>"


def end_tag(kind: Directive) -> str:
    return f"<|{kind.value}_end|>"


def wrap_directive(kind: Directive, payload: str) -> str:
    """Surround a payload with the tag pair of the given directive kind."""
    return f"{start_tag(kind)}{payload}{end_tag(kind)}"


class TagScanner:
    """Left-to-right scanner extracting the spans of one directive kind.

    The scanner alternates between two states: OUTSIDE (looking for the next
    start tag) and INSIDE (looking for the nearest end tag). A span is emitted
    on every INSIDE -> OUTSIDE transition.
    """

    OUTSIDE = 0
    INSIDE = 1

    def __init__(self, kind: Directive, label: str):
        self.kind = kind
        self.label = label
        self.start = start_tag(kind)
        self.end = end_tag(kind)

    def counts(self, text: str) -> tuple[int, int]:
        return text.count(self.start), text.count(self.end)

    def check_balanced(self, text: str) -> None:
        starts, ends = self.counts(text)
        if starts != ends:
            raise IncompleteDirectiveError(f"{self.label} incomplete")

    def spans(self, text: str) -> list[str]:
        self.check_balanced(text)

        spans: list[str] = []
        state = self.OUTSIDE
        pos = 0
        while True:
            if state == self.OUTSIDE:
                idx = text.find(self.start, pos)
                if idx == -1:
                    break
                pos = idx + len(self.start)
                state = self.INSIDE
            else:
                idx = text.find(self.end, pos)
                if idx == -1:
                    break
                spans.append(text[pos:idx])
                pos = idx + len(self.end)
                state = self.OUTSIDE
        return spans


TOOL_CALLS = TagScanner(Directive.TOOL_CALL, "tool call")
AGENT_CALLS = TagScanner(Directive.AGENT_CALL, "agent call")
TOOL_RESULTS = TagScanner(Directive.TOOL_RESULT, "tool result")
AGENT_RESULTS = TagScanner(Directive.AGENT_RESULT, "agent result")


def _loads(span: str, label: str) -> Any:
    try:
        return json.loads(span)
    except json.JSONDecodeError as e:
        raise DirectiveParseError(f"Invalid JSON in {label}: {e}") from e


def parse_tool_calls(text: str) -> list[ToolCall]:
    """Extract every tool call in the text, all or nothing."""
    calls = []
    for span in TOOL_CALLS.spans(text):
        data = _loads(span, "tool call")
        try:
            calls.append(ToolCall.model_validate(data))
        except ValidationError as e:
            raise DirectiveParseError(f"Invalid tool call format: {e}") from e
    return calls


def _as_agent_call(data: Any) -> AgentCall | None:
    if isinstance(data, dict) and "name" in data and "input" in data:
        return AgentCall(name=str(data["name"]), input=data["input"])
    return None


def _parse_agent_call_span(span: str) -> AgentCall:
    content = span.strip()

    # 1. a complete JSON object
    try:
        call = _as_agent_call(json.loads(content))
        if call is not None:
            return call
    except json.JSONDecodeError:
        pass

    # 2. the object without its outer braces
    try:
        call = _as_agent_call(json.loads("{" + content + "}"))
        if call is not None:
            return call
    except json.JSONDecodeError:
        pass

    # 3. tuple form: "Name", {input}
    name_part, sep, input_part = content.partition(",")
    if not sep:
        raise DirectiveParseError("Invalid agent call format: missing input")
    name_part = name_part.strip()
    if len(name_part) < 2 or not (name_part.startswith('"') and name_part.endswith('"')):
        raise DirectiveParseError("Invalid agent call format: name must be quoted")
    try:
        agent_input = json.loads(input_part.strip())
    except json.JSONDecodeError as e:
        raise DirectiveParseError(
            "Invalid agent call format: input must be valid JSON"
        ) from e
    return AgentCall(name=name_part[1:-1], input=agent_input)


def parse_agent_calls(text: str) -> list[AgentCall]:
    """Extract every agent call, tolerating brace-less and tuple forms."""
    return [_parse_agent_call_span(span) for span in AGENT_CALLS.spans(text)]


def parse_tool_results(text: str) -> list[Any]:
    return [_loads(span, "tool result") for span in TOOL_RESULTS.spans(text)]


def parse_agent_results(text: str) -> list[Any]:
    return [_loads(span, "agent result") for span in AGENT_RESULTS.spans(text)]
