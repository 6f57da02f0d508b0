# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import logging

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Type

from pydantic import BaseModel, ValidationError

from ..types.chunk_types import Chunk, Task
from ..types.tool_types import ToolContext, ToolResult
from ..utils.data_chunks import (
    make_data_chunk,
    read_annotation,
    read_data_chunks,
    write_annotation,
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class BaseTool(BaseModel, ABC):
    """
    Base class for tools agents can invoke with a tool_call directive.

    A tool declares its name and description, and optionally an Args model
    describing its JSON parameters. The JSON schema of Args is only used to
    describe the tool in prompts; run receives the raw parameters and may
    validate them with parse_args.
    """

    TOOL_NAME: ClassVar[str]
    TOOL_DESCRIPTION: ClassVar[str] = ""
    Args: ClassVar[Optional[Type[BaseModel]]] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def name(self) -> str:
        return self.TOOL_NAME

    @property
    def description(self) -> str:
        return self.TOOL_DESCRIPTION

    @property
    def fqdn(self) -> str:
        return f"tools.{type(self).__name__}"

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON-schema-like descriptor of the parameters, for prompts."""
        if self.Args is None:
            return {"type": "object", "properties": {}, "required": []}
        schema = self.Args.model_json_schema()
        return {
            "type": "object",
            "properties": schema.get("properties", {}),
            "required": schema.get("required", []),
        }

    def to_prompt_format(self) -> str:
        props = self.parameters["properties"]
        return (
            f"Tool: {self.name}\n"
            f"Description: {self.description}\n"
            f"Parameters: {props}"
        )

    def parse_args(self, parameters: Any) -> BaseModel:
        """Validate raw parameters against Args, raising ValueError on mismatch."""
        if self.Args is None:
            raise TypeError(f"{type(self).__name__} declares no Args model")
        try:
            return self.Args.model_validate(parameters or {})
        except ValidationError as e:
            raise ValueError(f"Invalid parameters for {self.name}: {e}") from e

    @abstractmethod
    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> Any | ToolResult:
        """Execute the tool.

        Returns the raw result, or a ToolResult carrying annotation(s).
        """
        ...

    # Data chunk and annotation helpers; fqdn may be overridden per call

    async def write_task_data_chunk(
        self, context: ToolContext, data: Any, fqdn: Optional[str] = None
    ) -> None:
        chunk = make_data_chunk(fqdn or self.fqdn, data, kind="Tool")
        await context.agent.add_chunk(context.task, chunk)

    def write_session_data_chunk(
        self, context: ToolContext, data: Any, fqdn: Optional[str] = None
    ) -> None:
        chunk = make_data_chunk(fqdn or self.fqdn, data, kind="Tool")
        context.arena.data_chunks.append(chunk)

    def get_task_data_chunks(self, task: Task, fqdn: Optional[str] = None) -> list[Any]:
        return read_data_chunks(task.scratchpad, fqdn or self.fqdn, kind="Tool")

    def get_session_data_chunks(self, context: ToolContext, fqdn: Optional[str] = None) -> list[Any]:
        return read_data_chunks(context.arena.data_chunks, fqdn or self.fqdn, kind="Tool")

    def write_chunk_annotation(self, chunk: Chunk, annotation: Any, fqdn: Optional[str] = None) -> None:
        write_annotation(chunk, fqdn or self.fqdn, annotation)

    def get_chunk_annotation(self, chunk: Chunk, fqdn: Optional[str] = None) -> Any:
        return read_annotation(chunk, fqdn or self.fqdn)

    def get_all_chunk_annotations(self, chunk: Chunk) -> dict[str, Any]:
        return dict(chunk.annotations or {})
