# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Arithmetic tools for the MathAgent."""

import math

from typing import Any, Optional

from pydantic import BaseModel, Field

from .base_tool import BaseTool
from ..types.tool_types import ToolContext


class BinaryArgs(BaseModel):
    a: float = Field(..., description="First operand")
    b: float = Field(..., description="Second operand")


class UnaryArgs(BaseModel):
    x: float = Field(..., description="Operand")


def _number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


class AddTool(BaseTool):
    TOOL_NAME = "add"
    TOOL_DESCRIPTION = "Add two numbers together."
    Args = BinaryArgs

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> dict:
        args = self.parse_args(parameters)
        return {"result": _number(args.a + args.b)}


class SubtractTool(BaseTool):
    TOOL_NAME = "subtract"
    TOOL_DESCRIPTION = "Subtract the second number from the first."
    Args = BinaryArgs

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> dict:
        args = self.parse_args(parameters)
        return {"result": _number(args.a - args.b)}


class MultiplyTool(BaseTool):
    TOOL_NAME = "multiply"
    TOOL_DESCRIPTION = "Multiply two numbers together."
    Args = BinaryArgs

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> dict:
        args = self.parse_args(parameters)
        return {"result": _number(args.a * args.b)}


class SqrtTool(BaseTool):
    TOOL_NAME = "sqrt"
    TOOL_DESCRIPTION = "Calculate the square root of a non-negative number."
    Args = UnaryArgs

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> dict:
        args = self.parse_args(parameters)
        if args.x < 0:
            raise ValueError("Cannot take the square root of a negative number")
        return {"result": _number(math.sqrt(args.x))}
