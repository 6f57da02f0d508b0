# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from typing import Any, Optional

from pydantic import BaseModel, Field

from .base_tool import BaseTool
from ..types.tool_types import ToolContext, ToolResult


class ExampleArgs(BaseModel):
    message: str = Field(..., description="Text to echo back")


class ExampleTool(BaseTool):
    """Echoes its input and annotates the output chunk with its length."""

    TOOL_NAME = "example"
    TOOL_DESCRIPTION = "Echo a message back, annotated with its length."
    Args = ExampleArgs

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> ToolResult:
        args = self.parse_args(parameters)
        if context is not None:
            # remember every message echoed in this task
            await self.write_task_data_chunk(context, {"echoed": args.message})
        return ToolResult(
            result=f"Echo: {args.message}",
            annotations={self.fqdn: {"length": len(args.message)}},
        )
