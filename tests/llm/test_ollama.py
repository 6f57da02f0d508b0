# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import pytest

from unittest.mock import MagicMock, patch

from agent_arena.llm.ollama import OllamaStreamingLLM


def ndjson(*records):
    return [json.dumps(r).encode() for r in records]


def fake_response(lines, status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.iter_lines.return_value = iter(lines)
    return response


class TestParseLine:
    def test_token(self):
        chunk = OllamaStreamingLLM.parse_line(b'{"response": "Hel", "done": false}')
        assert chunk.token == "Hel"
        assert chunk.finish_reason is None

    def test_done(self):
        chunk = OllamaStreamingLLM.parse_line('{"response": "", "done": true, "done_reason": "length"}')
        assert chunk.token is None
        assert chunk.finish_reason == "length"

    def test_done_without_reason(self):
        assert OllamaStreamingLLM.parse_line('{"done": true}').finish_reason == "stop"

    def test_blank_line(self):
        assert OllamaStreamingLLM.parse_line(b"") is None

    def test_error(self):
        with pytest.raises(RuntimeError, match="model not found"):
            OllamaStreamingLLM.parse_line('{"error": "model not found"}')


@pytest.mark.asyncio
class TestStreaming:
    async def test_generate_collects_tokens(self):
        response = fake_response(
            ndjson(
                {"response": "Hello", "done": False},
                {"response": " world", "done": False},
                {"response": "", "done": True},
                {"response": "ignored", "done": False},
            )
        )
        llm = OllamaStreamingLLM(base_url="http://ollama:11434/", model="tiny")

        with patch("agent_arena.llm.ollama.requests.post", return_value=response) as post:
            text = await llm.generate("Say hi")

        assert text == "Hello world"
        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        assert url == "http://ollama:11434/api/generate"
        assert payload["model"] == "tiny"
        assert payload["prompt"] == "Say hi"
        assert payload["stream"] is True

    async def test_http_error(self):
        response = fake_response([], status_code=500, text="boom")
        llm = OllamaStreamingLLM(base_url="http://ollama:11434", model="tiny")

        with patch("agent_arena.llm.ollama.requests.post", return_value=response):
            with pytest.raises(RuntimeError, match="Ollama API error: 500 - boom"):
                await llm.generate("x")

    async def test_stream_ends_without_done(self):
        response = fake_response(ndjson({"response": "partial", "done": False}))
        llm = OllamaStreamingLLM(base_url="http://ollama:11434", model="tiny")

        with patch("agent_arena.llm.ollama.requests.post", return_value=response):
            chunks = [c async for c in llm.generate_stream("x")]

        assert [c.token for c in chunks] == ["partial"]


@pytest.mark.uses_llm
@pytest.mark.asyncio
async def test_live_ollama():
    text = await OllamaStreamingLLM(max_tokens=16).generate("Reply with the word ok.")
    assert text.strip()
