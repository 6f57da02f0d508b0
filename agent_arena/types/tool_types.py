# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, model_validator

from .chunk_types import Task, _check_single_annotation_form

if TYPE_CHECKING:
    from ..arena.arena import Arena
    from ..agents.base_agent import BaseAgent


class ToolResult(BaseModel):
    """Structured tool return value carrying annotation(s) for the output chunk."""

    result: Any = None
    annotation: Any = None
    annotations: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _one_annotation_form(self) -> "ToolResult":
        _check_single_annotation_form(self.annotation, self.annotations)
        return self

    @classmethod
    def from_raw(cls, raw: Any) -> "ToolResult":
        """Normalise whatever a tool's run returned.

        A dict carrying a 'result' key together with 'annotation' or
        'annotations' is treated as the structured form; anything else is
        taken to be the bare result.
        """
        if isinstance(raw, cls):
            return raw
        if (
            isinstance(raw, dict)
            and "result" in raw
            and ("annotation" in raw or "annotations" in raw)
        ):
            return cls.model_validate(raw)
        return cls(result=raw)

    def collapse_annotations(self, fqdn: str) -> Optional[dict[str, Any]]:
        if self.annotation is not None:
            return {fqdn: self.annotation}
        if self.annotations is not None:
            return dict(self.annotations)
        return None


class ToolContext:
    """Handles a tool receives for the duration of one invocation."""

    def __init__(self, arena: "Arena", task: Task, agent: "BaseAgent"):
        self.arena = arena
        self.task = task
        self.agent = agent
