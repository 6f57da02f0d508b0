# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from ..base_agent import BaseAgent
from ...types.chunk_types import Task
from ...utils.parsing import Directive, wrap_directive


class ConversationalAgent(BaseAgent):
    """Coordinates an ongoing conversation, delegating to specialists."""

    AGENT_DESCRIPTION = "Coordinator for ongoing user conversations"
    SUPPORTS_CONTINUATION = True

    async def build_prompt(self, task: Task) -> str:
        call_format = wrap_directive(Directive.AGENT_CALL, '{"name": "AgentName", "input": {...}}')
        return f"""You are the ConversationalAgent, the main coordinator for handling ongoing user conversations.

Current user input: {self.get_input_text(task)}

Conversation history (scratchpad):
{self.get_scratchpad_content(task)}

Available agents you can call:
- CombatAgent: For handling combat-related actions like attacks, defenses, etc.
- MathAgent: For mathematical calculations and comparisons

To call an agent, use the format: {call_format}

Respond to the current input based on the history. If you can handle it directly, provide a response. Otherwise, delegate to appropriate agents. The user cannot see what the agents return, so you MUST reword their output for the user."""
