# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import pytest

from types import SimpleNamespace
from unittest.mock import patch

from agent_arena.tools import AddTool, ExampleTool, MultiplyTool, RollDiceTool, SqrtTool, SubtractTool
from agent_arena.types.chunk_types import Chunk, ChunkType, Task
from agent_arena.types.tool_types import ToolContext, ToolResult
from agent_arena.arena.errors import FqdnNotSetError
from agent_arena.utils.data_chunks import make_data_chunk

from ..conftest import EchoTool, PlannerAgent



class TestBaseTool:
    def test_metadata(self):
        tool = RollDiceTool()
        assert tool.name == "RollDice"
        assert tool.fqdn == "tools.RollDiceTool"
        assert "sides" in tool.parameters["properties"]
        assert tool.parameters["required"] == []
        assert tool.to_prompt_format().startswith("Tool: RollDice\n")

    def test_parameters_without_args(self):
        assert EchoTool().parameters == {"type": "object", "properties": {}, "required": []}

    def test_parse_args_rejects_bad_parameters(self):
        with pytest.raises(ValueError, match="Invalid parameters for add"):
            AddTool().parse_args({"a": "x"})

    def test_annotation_helpers(self):
        tool = EchoTool()
        chunk = Chunk(type=ChunkType.TOOL_OUTPUT, content="1")
        tool.write_chunk_annotation(chunk, "mine")
        tool.write_chunk_annotation(chunk, "theirs", fqdn="tools.Other")
        assert tool.get_chunk_annotation(chunk) == "mine"
        assert tool.get_all_chunk_annotations(chunk) == {"tools.EchoTool": "mine", "tools.Other": "theirs"}


class TestToolResult:
    def test_bare_values(self):
        assert ToolResult.from_raw(5).result == 5
        assert ToolResult.from_raw({"result": 1}).result == {"result": 1}

    def test_structured_dict(self):
        result = ToolResult.from_raw({"result": 1, "annotation": "a"})
        assert result.result == 1
        assert result.collapse_annotations("tools.T") == {"tools.T": "a"}

    def test_both_annotation_forms_rejected(self):
        with pytest.raises(ValueError):
            ToolResult(result=1, annotation="a", annotations={"x": 1})


class TestDice:
    async def test_roll_within_range(self):
        for _ in range(20):
            result = await RollDiceTool().run({"sides": 6})
            assert 1 <= result["roll"] <= 6
            assert result["sides"] == 6

    async def test_default_is_d20(self):
        with patch("agent_arena.tools.dice.random.randint", return_value=17) as randint:
            result = await RollDiceTool().run({})
        randint.assert_called_once_with(1, 20)
        assert result == {"roll": 17, "sides": 20}

    async def test_invalid_sides(self):
        with pytest.raises(ValueError):
            await RollDiceTool().run({"sides": 1})


class TestMath:
    @pytest.mark.parametrize(
        "tool, params, expected",
        [
            (AddTool(), {"a": 2, "b": 3}, 5),
            (SubtractTool(), {"a": 2, "b": 3.5}, -1.5),
            (MultiplyTool(), {"a": 4, "b": 2.5}, 10),
            (SqrtTool(), {"x": 16}, 4),
        ],
    )
    async def test_operations(self, tool, params, expected):
        assert await tool.run(params) == {"result": expected}

    async def test_sqrt_negative(self):
        with pytest.raises(ValueError, match="negative"):
            await SqrtTool().run({"x": -1})


class TestExampleTool:
    async def test_echo_without_context(self):
        result = await ExampleTool().run({"message": "hello"})
        assert result.result == "Echo: hello"
        assert result.annotations == {"tools.ExampleTool": {"length": 5}}

    async def test_records_data_chunk_with_context(self):
        tool = ExampleTool()
        agent = PlannerAgent()
        task = Task(id="t", agent_name="PlannerAgent")
        arena = SimpleNamespace(data_chunks=[])
        context = ToolContext(arena, task, agent)

        await tool.run({"message": "hi"}, context)
        tool.write_session_data_chunk(context, {"seen": 1})

        assert tool.get_task_data_chunks(task) == [{"echoed": "hi"}]
        assert tool.get_session_data_chunks(context) == [{"seen": 1}]
        assert json.loads(task.scratchpad[0].content)["fqdn"] == "tools.ExampleTool"


def test_data_chunks_need_an_owner():
    with pytest.raises(FqdnNotSetError, match="Tool FQDN not set"):
        make_data_chunk(None, {"x": 1}, kind="Tool")
