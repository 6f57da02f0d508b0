# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json

from ..base_agent import BaseAgent
from ...types.chunk_types import AgentOutput, Task

SENTIMENT_FALLBACK = {"score": 0, "explanation": "Unable to analyze sentiment"}


class SentimentAgent(BaseAgent):
    """Scores the sentiment of a chunk; meant to back an AgentEvaluator."""

    AGENT_DESCRIPTION = "Sentiment analysis of a piece of text"

    async def build_prompt(self, task: Task) -> str:
        text = self.get_input_text(task)
        return f"""You are a sentiment analysis expert. Analyze the sentiment of the following text.

Text to analyze: "{text}"

Return your analysis in the following JSON format:
{{
  "score": <number from -1.0 to 1.0, where -1 is very negative, 0 is neutral, 1 is very positive>,
  "explanation": "<brief explanation of the sentiment>"
}}

Only return the JSON, no other text."""

    def post_process_response(self, response: str) -> AgentOutput:
        try:
            parsed = json.loads(response.strip())
        except json.JSONDecodeError:
            parsed = None
        if (
            isinstance(parsed, dict)
            and isinstance(parsed.get("score"), (int, float))
            and isinstance(parsed.get("explanation"), str)
        ):
            return AgentOutput(content="", annotation=parsed)
        return AgentOutput(content="", annotation=dict(SENTIMENT_FALLBACK))
