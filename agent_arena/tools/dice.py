# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import random
import logging

from typing import Any, Optional

from pydantic import BaseModel, Field

from .base_tool import BaseTool
from ..types.tool_types import ToolContext

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class RollDiceArgs(BaseModel):
    sides: int = Field(20, ge=2, le=100, description="The number of sides on the die (e.g. 20 for a d20)")


class RollDiceTool(BaseTool):
    TOOL_NAME = "RollDice"
    TOOL_DESCRIPTION = "Roll a die with the specified number of sides. Returns a random number between 1 and the number of sides."
    Args = RollDiceArgs

    async def run(self, parameters: Any, context: Optional[ToolContext] = None) -> dict:
        args = self.parse_args(parameters)
        roll = random.randint(1, args.sides)
        logger.debug(f"Rolled d{args.sides}: {roll}")
        return {"roll": roll, "sides": args.sides}
