# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from ..base_agent import BaseAgent
from ...tools.example import ExampleTool
from ...types.chunk_types import AgentOutput, Task
from ...types.event_types import EventType
from ...utils.parsing import Directive, wrap_directive


class ExampleAgent(BaseAgent):
    """Shows tool use and structured output: annotates its replies with a token count."""

    AGENT_DESCRIPTION = "Demonstrates tools and annotations"
    SUPPORTS_CONTINUATION = True

    def __init__(self, llm=None, **data):
        super().__init__(llm=llm, **data)
        self.register_tool(ExampleTool())

    async def build_prompt(self, task: Task) -> str:
        tool_format = wrap_directive(Directive.TOOL_CALL, '{"name": "example", "parameters": {"message": "your string here"}}')
        return f"""You are the ExampleAgent, demonstrating tool usage and annotations.

Current task input: {self.get_input_text(task)}

Scratchpad history:
{self.get_scratchpad_content(task)}

To call a tool, use the format: {tool_format}

Available tools:
{self.tools[ExampleTool.TOOL_NAME].to_prompt_format()}

Provide a response, and consider using the tool if appropriate."""

    async def run(self, task: Task) -> AgentOutput:
        token_count = 0

        def count(event):
            nonlocal token_count
            token_count += 1

        self.event_bus.subscribe(EventType.TOKEN, count)
        try:
            response = await super().run(task)
        finally:
            self.event_bus.unsubscribe(EventType.TOKEN, count)

        content = response.content if isinstance(response, AgentOutput) else response
        return AgentOutput(content=content, annotations={self.fqdn: {"tokenCount": token_count}})
