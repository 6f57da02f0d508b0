# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""The streaming text-generation capability agents consume."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from pydantic import BaseModel


class StreamChunk(BaseModel):
    """One element of a generation stream: a token, a finish marker, or both."""

    token: Optional[str] = None
    finish_reason: Optional[str] = None


class StreamingLLM(ABC):
    """Anything that can stream a completion for a prompt."""

    @abstractmethod
    def generate_stream(self, prompt: str) -> AsyncIterator[StreamChunk]:
        """Yield StreamChunks until the generation finishes."""
        ...

    async def generate(self, prompt: str) -> str:
        """Collect a whole stream into one string."""
        parts = []
        async for chunk in self.generate_stream(prompt):
            if chunk.token:
                parts.append(chunk.token)
            if chunk.finish_reason:
                break
        return "".join(parts)
