# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from ..base_agent import BaseAgent
from ...types.chunk_types import Task


class SimpleAgent(BaseAgent):
    """Plain multi-turn assistant."""

    AGENT_DESCRIPTION = "General purpose conversational assistant"
    SUPPORTS_CONTINUATION = True
    EVALUATORS = ("evaluators.LengthEvaluator", "evaluators.TypeEvaluator")

    async def build_prompt(self, task: Task) -> str:
        return f"""You are a helpful assistant.

Conversation history (scratchpad):
{self.get_scratchpad_content(task)}

Current user input: {self.get_input_text(task)}

Respond helpfully to the user's input."""
