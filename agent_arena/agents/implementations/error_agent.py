# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json

from ..base_agent import BaseAgent
from ...types.chunk_types import Task
from ...utils.parsing import Directive, end_tag, start_tag, wrap_directive

# Used when the ErrorAgent itself cannot generate
ERROR_FALLBACK = wrap_directive(
    Directive.ERROR, "An unexpected error occurred during processing."
)


class ErrorAgent(BaseAgent):
    """
    Summarizes errors in a neutral, readable form. It never tries to fix or
    retry the failed work.
    """

    AGENT_DESCRIPTION = "Summarizes errors for the user"

    async def build_prompt(self, task: Task) -> str:
        return f"""You are the ErrorAgent, specialized in summarizing errors in a neutral, human-readable way.

Current task input (error details): {json.dumps(task.input)}

Scratchpad history:
{self.get_scratchpad_content(task)}

Summarize the errors neutrally and provide a concise explanation wrapped in {start_tag(Directive.ERROR)}...{end_tag(Directive.ERROR)}. Do not attempt to fix or retry."""

    def post_process_response(self, response: str) -> str:
        if start_tag(Directive.ERROR) not in response or end_tag(Directive.ERROR) not in response:
            return wrap_directive(Directive.ERROR, response)
        return response
