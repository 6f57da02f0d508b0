# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from ..base_agent import BaseAgent
from ...tools.math_tools import AddTool, MultiplyTool, SqrtTool, SubtractTool
from ...types.chunk_types import ChunkType, Task
from ...utils.parsing import Directive, wrap_directive


class MathAgent(BaseAgent):
    AGENT_DESCRIPTION = "Mathematical calculations and comparisons"

    def __init__(self, llm=None, **data):
        super().__init__(llm=llm, **data)
        for tool in (AddTool(), SubtractTool(), MultiplyTool(), SqrtTool()):
            self.register_tool(tool)

    async def build_prompt(self, task: Task) -> str:
        tools = "\n".join(t.to_prompt_format() for t in self.tools.values())
        tool_format = wrap_directive(Directive.TOOL_CALL, '{"name": "add", "parameters": {"a": 1, "b": 2}}')
        return f"""You are the MathAgent, specialized in mathematical calculations and comparisons.

Current task input: {self.get_input_text(task)}

Scratchpad history:
{self.get_scratchpad_content(task)}

Tool outputs so far:
{self.get_filtered_contents(task, ChunkType.TOOL_OUTPUT)}

Available tools:
{tools}

To call a tool, use the format: {tool_format}

Perform the requested mathematical operation or comparison and provide the result. Be precise and direct."""
