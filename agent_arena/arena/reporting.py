# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Module for rendering arena state as text: invocation trees, tasks and the queue."""

import json

from typing import TYPE_CHECKING, Any, Optional

from ..types.chunk_types import Task

if TYPE_CHECKING:
    from .arena import Arena

_RESET = "\x1b[0m"
_STYLES = {
    "agent_label": "\x1b[1;34m",
    "tool_label": "\x1b[1;33m",
    "agent_name": "\x1b[1;32m",
    "tool_name": "\x1b[1;35m",
    "id": "\x1b[90m",
    "errors": "\x1b[1;31m",
    "header": "\x1b[1;36m",
}


def _style(text: str, key: str, color: bool) -> str:
    return f"{_STYLES[key]}{text}{_RESET}" if color else text


def _truncate(text: str, length: int = 50) -> str:
    """Shorten text to length characters, marking the cut with '...'."""
    text = text.replace("\n", " ")
    return text if len(text) <= length else text[: length - 3] + "..."


def _format_params(params: Any) -> str:
    if params is None:
        return ""
    try:
        return _truncate(json.dumps(params))
    except (TypeError, ValueError):
        return _truncate(str(params))


def format_invocation_tree(arena: "Arena", color: bool = False) -> str:
    """Render the invocation log as an indented tree.

    Agents show their retry count, tools their parameters. The arena's error
    count closes the summary.
    """
    lines = [_style("INVOCATION TREE SUMMARY", "header", color)]

    def build(parent_id: Optional[str], depth: int) -> None:
        for inv in arena.invocation_log:
            if inv.parent_id != parent_id:
                continue
            indent = "  " * depth
            if inv.type == "agent":
                task = arena.task_store.get(inv.id)
                retries = task.retry_count if task is not None else 0
                label = _style("Agent", "agent_label", color)
                name = f"{_style(inv.name, 'agent_name', color)} (retries: {retries})"
            else:
                label = _style("Tool ", "tool_label", color)
                name = _style(inv.name, "tool_name", color)
            params = _format_params(inv.params)
            entry_id = _style(inv.id, "id", color)
            lines.append(f"{indent}{label}: {name}  {params}  ({entry_id})".rstrip())
            build(inv.id, depth + 1)

    build(None, 0)
    lines.append(_style(f"Errors: {arena.error_count}", "errors", color and arena.error_count > 0))
    return "\n".join(lines)


def format_task(task: Task) -> str:
    lines = [
        f"Task {task.id}",
        f"  agent:      {task.agent_name}",
        f"  parent:     {task.parent_task_id or '-'}",
        f"  type:       {task.task_type.value}",
        f"  status:     {task.status.value}",
        f"  retries:    {task.retry_count}",
        f"  executions: {task.execution_count}",
        f"  input:      {_format_params(task.input)}",
        "  scratchpad:",
    ]
    for index, chunk in enumerate(task.scratchpad):
        flag = "" if chunk.processed else " (unprocessed)"
        lines.append(f"    [{index}] {chunk.type.value}{flag}: {_truncate(chunk.content, 80)}")
        if chunk.annotations:
            lines.append(f"        annotations: {_format_params(chunk.annotations)}")
    return "\n".join(lines)


def format_task_list(arena: "Arena") -> str:
    if not arena.task_store:
        return "No tasks."
    return "\n".join(
        f"{task.id}  {task.agent_name:<20} {task.status.value:<15} parent={task.parent_task_id or '-'}"
        for task in arena.task_store.values()
    )


def format_queue(arena: "Arena") -> str:
    if not arena.task_queue:
        return "Queue is empty."
    return "\n".join(
        f"{position}. {task.id} ({task.agent_name})"
        for position, task in enumerate(arena.task_queue, start=1)
    )
