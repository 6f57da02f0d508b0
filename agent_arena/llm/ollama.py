# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Streaming client for a local Ollama server.
"""

import json
import asyncio
import logging

from typing import AsyncIterator, Optional

import requests

from .base import StreamChunk, StreamingLLM
from ..config import settings

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class OllamaStreamingLLM(StreamingLLM):
    """
    Streams completions from Ollama's /api/generate endpoint.

    The HTTP calls are blocking (requests), so they are pushed onto a worker
    thread to keep the event loop responsive while tokens trickle in.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: int = 300,
    ):
        """
        Initialize Ollama client.

        Args:
            base_url: Ollama server URL (default: from settings / OLLAMA_BASE_URL)
            model: Model name (default: from settings / OLLAMA_MODEL)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            timeout: Request timeout in seconds
        """
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def _open_stream(self, prompt: str) -> requests.Response:
        response = requests.post(
            f"{self.base_url}/api/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": True,
                "options": {
                    "temperature": self.temperature,
                    "num_predict": self.max_tokens,
                },
            },
            stream=True,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            text = response.text
            response.close()
            raise RuntimeError(f"Ollama API error: {response.status_code} - {text}")
        return response

    @staticmethod
    def parse_line(line: bytes | str) -> Optional[StreamChunk]:
        """Turn one NDJSON line of the stream into a StreamChunk."""
        if not line:
            return None
        data = json.loads(line)
        if "error" in data:
            raise RuntimeError(f"Ollama stream error: {data['error']}")
        finish_reason = None
        if data.get("done"):
            finish_reason = data.get("done_reason") or "stop"
        return StreamChunk(token=data.get("response") or None, finish_reason=finish_reason)

    async def generate_stream(self, prompt: str) -> AsyncIterator[StreamChunk]:
        logger.debug(f"Ollama request to {self.model}, prompt length {len(prompt)}")
        response = await asyncio.to_thread(self._open_stream, prompt)
        try:
            lines = response.iter_lines()
            while True:
                line = await asyncio.to_thread(next, lines, None)
                if line is None:
                    break
                chunk = self.parse_line(line)
                if chunk is None:
                    continue
                yield chunk
                if chunk.finish_reason:
                    break
        finally:
            response.close()
