# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from ..base_agent import BaseAgent
from ...types.chunk_types import ChunkType, Task
from ...utils.parsing import Directive, wrap_directive


class TopLevelAgent(BaseAgent):
    """Single-shot coordinator: delegates once, then answers."""

    AGENT_DESCRIPTION = "Main coordinator for one-off user requests"

    async def build_prompt(self, task: Task) -> str:
        agent_contents = self.get_filtered_contents(task, ChunkType.AGENT_OUTPUT)
        agent_results = await self.parse_agent_results_safe(task, agent_contents, add_error_chunk=True)

        prompt = f"""You are the TopLevelAgent, the main coordinator for handling user requests.

Current task input: {self.get_input_text(task)}

Scratchpad history:
{self.get_scratchpad_content(task)}

"""
        if agent_results:
            prompt += f"""Previous agent results: {agent_results[-1]}

You have completed the task. Provide a final response to the user."""
        else:
            call_format = wrap_directive(Directive.AGENT_CALL, '{"name": "AgentName", "input": {...}}')
            prompt += f"""Available agents you can call:
- CombatAgent: For handling combat-related actions like attacks, defenses, etc.
- MathAgent: For mathematical calculations and comparisons

To call an agent, use the format: {call_format}

If you can handle this directly, provide a response. Otherwise, delegate to appropriate agents."""
        return prompt
