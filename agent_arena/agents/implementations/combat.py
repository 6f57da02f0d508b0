# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json

from typing import ClassVar

from ..base_agent import BaseAgent
from ...tools.dice import RollDiceTool
from ...types.chunk_types import ChunkType, Task
from ...utils.parsing import Directive, wrap_directive


class CombatAgent(BaseAgent):
    """Resolves an attack: roll, compare against AC via MathAgent, narrate."""

    AGENT_DESCRIPTION = "Handles combat actions like attacks and defenses"
    TARGET_AC: ClassVar[int] = 15

    def __init__(self, llm=None, **data):
        super().__init__(llm=llm, **data)
        self.register_tool(RollDiceTool())

    async def build_prompt(self, task: Task) -> str:
        tool_results = await self.parse_tool_results_safe(
            task, self.get_filtered_contents(task, ChunkType.TOOL_OUTPUT), add_error_chunk=True
        )
        agent_results = await self.parse_agent_results_safe(
            task, self.get_filtered_contents(task, ChunkType.AGENT_OUTPUT), add_error_chunk=True
        )

        prompt = f"""You are the CombatAgent, specialized in handling combat scenarios.

Current task input: {json.dumps(task.input)}

Scratchpad history:
{self.get_scratchpad_content(task)}

"""
        if not tool_results:
            tool_format = wrap_directive(Directive.TOOL_CALL, '{"name": "ToolName", "parameters": {...}}')
            prompt += f"""You need to roll for attack. Use the RollDice tool to roll a d20.

To call a tool, use the format: {tool_format}

Available tools:
{self.tools[RollDiceTool.TOOL_NAME].to_prompt_format()}"""
        elif not agent_results:
            first = tool_results[0]
            roll = first.get("roll") if isinstance(first, dict) else first
            agent_format = wrap_directive(Directive.AGENT_CALL, '{"name": "AgentName", "input": {...}}')
            prompt += f"""You rolled a {roll}. Now determine if it hits (AC {self.TARGET_AC}).

Call the MathAgent to compare the roll against the target's AC.

To call an agent, use the format: {agent_format}

Available agents:
- MathAgent: For calculations and comparisons"""
        else:
            prompt += "Based on the results, provide a combat outcome description."
        return prompt
