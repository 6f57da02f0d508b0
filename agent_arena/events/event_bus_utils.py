# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Utility functions for observing an arena's event bus."""

from typing import Iterable

from .event_bus import EventBus
from ..types.event_types import EventType, Event


def log_to_stdout(event: Event) -> None:
    """Print arena events to stdout with compact formatting."""

    max_content_len = 60
    prefix_width = 12

    def truncate(text: str, length: int = max_content_len) -> str:
        text = text.replace("\n", " ")
        return f"{text[:length]}..." if len(text) > length else text

    def format_output(prefix: str, content: str, metadata: str = "") -> None:
        print(f"{prefix:<{prefix_width}s} => {content}{' | ' + metadata if metadata else ''}")

    agent = event.metadata.get("agent_name") or "external"

    if event.type in (EventType.TOKEN, EventType.EVALUATOR_TOKEN):
        return
    elif event.type in (EventType.CHUNK, EventType.EVALUATOR_CHUNK):
        chunk = event.metadata.get("chunk")
        kind = chunk.type.value if chunk is not None else "?"
        format_output(event.type.value, truncate(event.content), f"{agent}, {kind}")
    elif event.type in (EventType.TOOL_CALL, EventType.AGENT_CALL):
        call = event.metadata.get("call")
        args = getattr(call, "parameters", None) if event.type == EventType.TOOL_CALL else getattr(call, "input", None)
        format_output(event.type.value, f"{event.content}, {truncate(str(args))}", agent)
    elif event.type in (EventType.PARSE_ERROR, EventType.EVALUATOR_PARSE_ERROR):
        kind = event.metadata.get("type", "?")
        format_output(event.type.value, truncate(str(event.metadata.get("error"))), f"{agent}, {kind}")
    else:
        format_output(event.type.value, truncate(event.content), agent)


CONSOLE_EVENTS = (
    EventType.CHUNK,
    EventType.TOOL_CALL,
    EventType.AGENT_CALL,
    EventType.PARSE_ERROR,
    EventType.ERROR,
)


def attach_console_logger(bus: EventBus, event_types: Iterable[EventType] = CONSOLE_EVENTS) -> None:
    bus.subscribe(tuple(event_types), log_to_stdout)


def attach_token_printer(bus: EventBus) -> None:
    """Echo streamed tokens as they arrive."""

    def print_token(event: Event) -> None:
        print(event.content, end="", flush=True)

    bus.subscribe(EventType.TOKEN, print_token)
