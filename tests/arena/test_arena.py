# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import pytest

from agent_arena.agents.implementations import ErrorAgent, SentimentAgent
from agent_arena.agents.implementations.error_agent import ERROR_FALLBACK
from agent_arena.arena.errors import AgentGenerationError, UnknownAgentError
from agent_arena.config import ArenaConfig, GenerationFailurePolicy
from agent_arena.evaluators import EvaluatorRegistry, SimpleEvaluator
from agent_arena.evaluators.registry import length_evaluator, sentiment_evaluator, type_evaluator
from agent_arena.types.chunk_types import AgentOutput, Chunk, ChunkType, Task, TaskStatus, TaskType
from agent_arena.types.event_types import EventType

from ..conftest import EchoTool, FailingTool, PlannerAgent, build_arena

pytestmark = pytest.mark.asyncio


def tool_call(name, parameters=None):
    return f'<|tool_call|>{json.dumps({"name": name, "parameters": parameters or {}})}<|tool_call_end|>'


def agent_call(name, agent_input):
    return f'<|agent_call|>{json.dumps({"name": name, "input": agent_input})}<|agent_call_end|>'


def chunk_types(task):
    return [c.type for c in task.scratchpad]


async def run_root(arena, text, agent_name="PlannerAgent", interactive=False, **kwargs):
    results = []
    task = await arena.submit_input(text, agent_name, on_complete=results.append, **kwargs)
    await arena.run_event_loop(interactive=interactive)
    return task, results


class TestScheduling:
    async def test_plain_answer_completes_root(self):
        arena, llm = build_arena({"PlannerAgent": ["All done."]})

        task, results = await run_root(arena, "hello")

        assert results == ["All done."]
        assert task.status == TaskStatus.COMPLETED
        assert task.on_complete is None
        assert chunk_types(task) == [ChunkType.INPUT, ChunkType.LLM_OUTPUT]
        assert task.scratchpad[-1].processed
        assert arena.invocation_log[0].result == "All done."
        assert llm.prompts == ["PlannerAgent\nhello"]

    async def test_tool_call_then_answer(self):
        arena, _ = build_arena({"PlannerAgent": [tool_call("echo", {"x": 1}), "Finished"]})
        arena.agents["PlannerAgent"].register_tool(EchoTool())

        task, results = await run_root(arena, "use the tool")

        assert results == ["Finished"]
        assert chunk_types(task) == [
            ChunkType.INPUT,
            ChunkType.LLM_OUTPUT,
            ChunkType.TOOL_OUTPUT,
            ChunkType.LLM_OUTPUT,
        ]
        assert task.scratchpad[2].content == '<|tool_result|>{"echo": {"x": 1}}<|tool_result_end|>'
        assert task.execution_count == 2
        assert task.retry_count == 0
        tool_entries = [inv for inv in arena.invocation_log if inv.type == "tool"]
        assert tool_entries[0].name == "echo"
        assert tool_entries[0].parent_id == task.id
        assert tool_entries[0].result == {"echo": {"x": 1}}

    async def test_agent_call_round_trip(self):
        arena, llm = build_arena(
            {
                "PlannerAgent": [agent_call("WorkerAgent", {"q": "meaning"}), "The worker said 42"],
                "WorkerAgent": ["42"],
            }
        )

        task, results = await run_root(arena, "ask the worker")

        assert results == ["The worker said 42"]
        assert task.scratchpad[2].type == ChunkType.AGENT_OUTPUT
        assert task.scratchpad[2].content == '<|agent_result|>"42"<|agent_result_end|>'

        child = next(t for t in arena.task_store.values() if t.agent_name == "WorkerAgent")
        assert child.parent_task_id == task.id
        assert child.input == {"q": "meaning"}
        assert child.status == TaskStatus.COMPLETED
        assert llm.prompts[1] == 'WorkerAgent\n{"q": "meaning"}'

        child_entry = next(inv for inv in arena.invocation_log if inv.id == child.id)
        assert child_entry.parent_id == task.id
        assert child_entry.result == "42"

    async def test_waiting_parent_is_not_rescheduled_until_child_returns(self):
        arena, _ = build_arena({"PlannerAgent": [agent_call("WorkerAgent", {})]})
        task = await arena.submit_input("go", "PlannerAgent")

        await arena.process_task(arena.task_queue.popleft())

        assert task.status == TaskStatus.WAITING
        assert [t.agent_name for t in arena.task_queue] == ["WorkerAgent"]

    async def test_tool_and_agent_calls_in_one_response(self):
        response = tool_call("echo") + agent_call("WorkerAgent", {})
        arena, _ = build_arena({"PlannerAgent": [response]})
        arena.agents["PlannerAgent"].register_tool(EchoTool())
        await arena.submit_input("both", "PlannerAgent")

        await arena.process_task(arena.task_queue.popleft())

        assert sorted(t.agent_name for t in arena.task_queue) == ["PlannerAgent", "WorkerAgent"]


class TestBudgets:
    async def test_retry_ceiling_hands_over_to_error_agent(self):
        bad = "<|tool_call|>not json<|tool_call_end|>"
        arena, _ = build_arena(
            {"PlannerAgent": [bad] * 4, "ErrorAgent": ["The planner kept producing bad JSON."]}
        )

        task, results = await run_root(arena, "hello")

        assert task.status == TaskStatus.FAILED
        assert task.retry_count == 3
        assert task.execution_count == 4
        errors = [c for c in task.scratchpad if c.type == ChunkType.ERROR]
        assert len(errors) == 4
        assert errors[0].content.startswith("Parse error in toolCalls:")

        error_task = next(t for t in arena.task_store.values() if t.agent_name == "ErrorAgent")
        assert error_task.parent_task_id == task.id
        assert error_task.input.startswith("max retries reached\n")
        assert results == ["<|error|>The planner kept producing bad JSON.<|error_end|>"]

    async def test_execution_ceiling_with_endless_tool_calls(self):
        arena, llm = build_arena(
            {"PlannerAgent": [tool_call("echo")] * 10, "ErrorAgent": ["<|error|>loop<|error_end|>"]}
        )
        arena.agents["PlannerAgent"].register_tool(EchoTool())

        task, results = await run_root(arena, "loop forever")

        assert task.execution_count == 10
        assert task.retry_count == 0
        assert task.status == TaskStatus.FAILED
        error_task = next(t for t in arena.task_store.values() if t.agent_name == "ErrorAgent")
        assert error_task.input.startswith("max executions reached")
        assert results == ["<|error|>loop<|error_end|>"]
        assert llm.scripts["PlannerAgent"] == []

    async def test_execution_ceiling_with_endless_agent_calls(self):
        arena, llm = build_arena(
            {
                "PlannerAgent": [agent_call("WorkerAgent", {})] * 10,
                "WorkerAgent": ["42"] * 10,
                "ErrorAgent": ["<|error|>too deep<|error_end|>"],
            }
        )

        task, results = await run_root(arena, "delegate forever")

        assert task.execution_count == 10
        assert task.status == TaskStatus.FAILED
        error_task = arena.task_store[task.error_task_id]
        assert error_task.input.startswith("max executions reached")
        assert results == ["<|error|>too deep<|error_end|>"]
        assert llm.scripts["PlannerAgent"] == []

    async def test_abandoned_task_is_never_rescheduled(self):
        response = agent_call("WorkerAgent", {}) + "<|tool_call|>{oops}<|tool_call_end|>"
        arena, _ = build_arena(
            {
                "PlannerAgent": [response] * 12,
                "WorkerAgent": ["42"] * 12,
                "ErrorAgent": ["budget exhausted"],
            }
        )

        task, results = await run_root(arena, "x")

        assert task.status == TaskStatus.FAILED
        assert task.retry_count == 3
        assert task.execution_count == 4
        error_tasks = [t for t in arena.task_store.values() if t.agent_name == "ErrorAgent"]
        assert [t.id for t in error_tasks] == [task.error_task_id]
        assert results == ["<|error|>budget exhausted<|error_end|>"]
        assert not arena.task_queue

    async def test_custom_budgets(self):
        bad = "<|tool_call|>{<|tool_call_end|>"
        arena, _ = build_arena(
            {"PlannerAgent": [bad, bad], "ErrorAgent": ["nope"]},
            config=ArenaConfig(max_retries=1),
        )

        task, _ = await run_root(arena, "x")

        assert task.execution_count == 2
        assert task.status == TaskStatus.FAILED


class TestToolErrors:
    @pytest.mark.parametrize(
        "call, expected",
        [
            (tool_call("missing"), "<|error|>Unknown tool: missing<|error_end|>"),
            (tool_call("fail"), "<|error|>Tool fail failed: boom<|error_end|>"),
        ],
    )
    async def test_error_chunk_then_retry(self, call, expected):
        arena, _ = build_arena({"PlannerAgent": [call, "recovered"]})
        arena.agents["PlannerAgent"].register_tool(FailingTool())
        parse_errors = []
        arena.event_bus.subscribe(EventType.PARSE_ERROR, parse_errors.append)

        task, results = await run_root(arena, "try")

        assert results == ["recovered"]
        assert task.retry_count == 1
        errors = [c.content for c in task.scratchpad if c.type == ChunkType.ERROR]
        assert errors == [expected]
        assert parse_errors[0].metadata["type"] == "toolExecution"

    async def test_incomplete_call_is_a_parse_error(self):
        arena, _ = build_arena({"PlannerAgent": ['<|agent_call|>{"name": "WorkerAgent"', "ok"]})
        task, results = await run_root(arena, "x")
        assert results == ["ok"]
        assert "agent call incomplete" in task.scratchpad[2].content


class TestAgentCallScoping:
    async def test_whitelist(self):
        arena, _ = build_arena({})
        planner = arena.agents["PlannerAgent"]
        planner.register_agent(arena.agents["WorkerAgent"])

        assert arena.may_call(planner, "WorkerAgent")
        assert arena.may_call(planner, "ErrorAgent")
        assert not arena.may_call(planner, "ChattyAgent")
        assert not arena.may_call(planner, "Nobody")

    async def test_open_calls_by_default(self):
        arena, _ = build_arena({})
        assert arena.may_call(arena.agents["PlannerAgent"], "ChattyAgent")

    async def test_default_deny(self):
        arena, _ = build_arena({}, config=ArenaConfig(open_agent_calls=False))
        planner = arena.agents["PlannerAgent"]
        assert not arena.may_call(planner, "WorkerAgent")
        assert arena.may_call(planner, "ErrorAgent")

    async def test_denied_call_becomes_error_chunk(self):
        arena, _ = build_arena({"PlannerAgent": [agent_call("Nobody", {}), "fine"]})
        task, results = await run_root(arena, "x")
        assert results == ["fine"]
        assert "<|error|>Unknown agent: Nobody<|error_end|>" in [c.content for c in task.scratchpad]


class TestContinuation:
    async def test_interactive_conversation(self):
        arena, llm = build_arena({"ChattyAgent": ["Hello!", "Nice to hear."]})
        results = []

        task = await arena.submit_input("hi", "ChattyAgent", on_complete=results.append)
        await arena.run_event_loop(interactive=True)

        assert task.status == TaskStatus.AWAITING_INPUT
        assert arena.current_continuation_task is task
        assert results == []

        second = await arena.submit_input("I'm well", "ChattyAgent")
        await arena.run_event_loop(interactive=True)

        assert second is task
        assert chunk_types(task) == [ChunkType.INPUT, ChunkType.LLM_OUTPUT] * 2
        assert llm.prompts[1] == "ChattyAgent\nhi\nHello!\nI'm well"

    async def test_non_interactive_completes(self):
        arena, _ = build_arena({"ChattyAgent": ["Hello!"]})
        task, results = await run_root(arena, "hi", agent_name="ChattyAgent")
        assert task.status == TaskStatus.COMPLETED
        assert results == ["Hello!"]

    async def test_removing_the_continuation_task_clears_the_pointer(self):
        arena, _ = build_arena({"ChattyAgent": ["Hello!"]})
        task, _ = await run_root(arena, "hi", agent_name="ChattyAgent", interactive=True)
        assert arena.current_continuation_task is task

        arena.remove_task(task.id)

        assert arena.current_continuation_task is None
        assert task.id not in arena.task_store

    async def test_exhausted_continuation_task_clears_the_pointer(self):
        bad = "<|tool_call|>not json<|tool_call_end|>"
        arena, _ = build_arena({"ChattyAgent": [bad] * 4, "ErrorAgent": ["gave up"]})

        task, results = await run_root(arena, "hi", agent_name="ChattyAgent", interactive=True)

        assert task.status == TaskStatus.FAILED
        assert arena.current_continuation_task is None
        assert results == ["<|error|>gave up<|error_end|>"]

    async def test_single_shot_agents_do_not_continue(self):
        arena, _ = build_arena({"PlannerAgent": ["one", "two"]})
        first, _ = await run_root(arena, "a", interactive=True)
        second, _ = await run_root(arena, "b", interactive=True)
        assert arena.current_continuation_task is None
        assert first is not second


class TestGenerationFailures:
    async def test_routed_to_error_agent(self):
        arena, _ = build_arena(
            {"PlannerAgent": [RuntimeError("model down")], "ErrorAgent": ["The model is unavailable."]}
        )

        task, results = await run_root(arena, "x")

        assert task.status == TaskStatus.FAILED
        assert task.scratchpad[-1].content == "<|error|>Agent PlannerAgent failed: model down<|error_end|>"
        assert results == ["<|error|>The model is unavailable.<|error_end|>"]
        assert arena.error_count == 1

    async def test_raise_policy(self):
        arena, _ = build_arena(
            {"PlannerAgent": [RuntimeError("model down")]},
            config=ArenaConfig(generation_failure_policy=GenerationFailurePolicy.RAISE),
        )
        await arena.submit_input("x", "PlannerAgent")
        with pytest.raises(AgentGenerationError):
            await arena.run_event_loop()

    async def test_error_agent_failure_uses_fallback(self):
        arena, _ = build_arena(
            {"PlannerAgent": [RuntimeError("model down")], "ErrorAgent": [RuntimeError("still down")]}
        )
        _, results = await run_root(arena, "x")
        assert results == [ERROR_FALLBACK]
        assert arena.error_count == 2

    async def test_error_agent_created_on_demand(self):
        arena, _ = build_arena(
            {"PlannerAgent": [RuntimeError("down")], "ErrorAgent": ["summary"]},
            catalog=(PlannerAgent,),
        )
        assert "ErrorAgent" not in arena.agents

        _, results = await run_root(arena, "x")

        assert isinstance(arena.agents["ErrorAgent"], ErrorAgent)
        assert results == ["<|error|>summary<|error_end|>"]

    async def test_unknown_agent_propagates(self):
        arena, _ = build_arena({})
        await arena.submit_input("x", "Nobody")
        with pytest.raises(UnknownAgentError, match="Unknown agent: Nobody"):
            await arena.run_event_loop()


class TestResultPropagation:
    async def test_child_result_goes_to_parent(self):
        arena, _ = build_arena({})
        calls = []
        parent = Task(id="P", agent_name="PlannerAgent", on_complete=calls.append)
        child = Task(id="C", agent_name="WorkerAgent", parent_task_id="P")
        arena.task_store.update({"P": parent, "C": child})

        await arena.return_result_to_parent(child, "hello")

        agent_chunks = [c for c in parent.scratchpad if c.type == ChunkType.AGENT_OUTPUT]
        assert [c.content for c in agent_chunks] == ['<|agent_result|>"hello"<|agent_result_end|>']
        assert list(arena.task_queue) == [parent]
        assert calls == []
        assert "C" in arena.task_store

    async def test_root_result_goes_to_callback_once(self):
        arena, _ = build_arena({})
        calls = []
        parent = Task(id="P", agent_name="PlannerAgent", on_complete=calls.append)

        await arena.return_result_to_parent(parent, "done")
        await arena.return_result_to_parent(parent, "again")

        assert calls == ["done"]
        assert parent.scratchpad == []

    async def test_async_callback(self):
        arena, _ = build_arena({})
        calls = []

        async def on_complete(result):
            calls.append(result)

        await arena.return_result_to_parent(Task(id="P", agent_name="PlannerAgent", on_complete=on_complete), "x")
        assert calls == ["x"]

    async def test_missing_parent_is_dropped(self):
        arena, _ = build_arena({})
        orphan = Task(id="C", agent_name="WorkerAgent", parent_task_id="gone")
        await arena.return_result_to_parent(orphan, "lost")
        assert not arena.task_queue

    async def test_structured_output_passes_content(self):
        arena, _ = build_arena({})
        parent = Task(id="P", agent_name="PlannerAgent")
        child = Task(id="C", agent_name="WorkerAgent", parent_task_id="P")
        arena.task_store.update({"P": parent, "C": child})

        await arena.return_result_to_parent(child, AgentOutput(content="text", annotation=1))

        assert parent.scratchpad[-1].content == '<|agent_result|>"text"<|agent_result_end|>'


    async def test_late_child_result_of_abandoned_parent_is_dropped(self):
        arena, _ = build_arena({})
        calls = []
        parent = Task(id="P", agent_name="PlannerAgent", on_complete=calls.append)
        parent.status = TaskStatus.FAILED
        parent.error_task_id = "E"
        straggler = Task(id="C", agent_name="WorkerAgent", parent_task_id="P")
        summary = Task(id="E", agent_name="ErrorAgent", parent_task_id="P")
        arena.task_store.update({"P": parent, "C": straggler, "E": summary})

        await arena.return_result_to_parent(straggler, "42")
        assert calls == []
        assert parent.scratchpad == []

        await arena.return_result_to_parent(summary, "<|error|>summary<|error_end|>")
        assert calls == ["<|error|>summary<|error_end|>"]
        assert not arena.task_queue

    async def test_failed_task_is_not_enqueued(self):
        arena, _ = build_arena({})
        task = Task(id="P", agent_name="PlannerAgent", status=TaskStatus.FAILED)
        arena.enqueue_task(task)
        assert not arena.task_queue


class TestTaskStore:
    async def test_invocation_log_is_idempotent(self):
        arena, _ = build_arena({"PlannerAgent": ["<|tool_call|>bad<|tool_call_end|>", "ok"]})
        task, _ = await run_root(arena, "x")
        assert [inv.id for inv in arena.invocation_log].count(task.id) == 1

    async def test_remove_task_cascades(self):
        arena, _ = build_arena(
            {"PlannerAgent": [agent_call("WorkerAgent", {}), "done"], "WorkerAgent": ["42"]}
        )
        task, _ = await run_root(arena, "x")
        assert len(arena.task_store) == 2

        arena.remove_task(task.id)

        assert arena.task_store == {}
        assert arena.invocation_log == []

    async def test_remove_unknown_task_is_a_no_op(self):
        arena, _ = build_arena({})
        arena.remove_task("nothing")

    async def test_remove_chunks_by_message_id(self):
        arena, _ = build_arena({"PlannerAgent": ["reply"]})
        task, _ = await run_root(arena, "hi", message_id="m1")

        assert task.input == {"text": "hi", "messageId": "m1"}
        assert [c.message_id for c in task.scratchpad] == ["m1", "m1"]

        arena.remove_chunks_by_message_id("m1")
        assert task.scratchpad == []

    async def test_snapshot_round_trip(self):
        arena, _ = build_arena({"ChattyAgent": ["Hello!"]})
        task, _ = await run_root(arena, "hi", agent_name="ChattyAgent", interactive=True)
        arena.data_chunks.append(Chunk(type=ChunkType.DATA, content='{"fqdn": "x", "data": 1}'))

        state = json.loads(json.dumps(arena.snapshot()))
        restored, _ = build_arena({})
        restored.restore(state)

        assert set(restored.task_store) == {task.id}
        assert restored.current_continuation_task.id == task.id
        assert restored.task_store[task.id].scratchpad == task.scratchpad
        assert restored.task_store[task.id].status == TaskStatus.AWAITING_INPUT
        assert [inv.id for inv in restored.invocation_log] == [task.id]
        assert restored.data_chunks == arena.data_chunks

    async def test_tasks_with_status(self):
        arena, _ = build_arena({"ChattyAgent": ["Hello!"]})
        task, _ = await run_root(arena, "hi", agent_name="ChattyAgent", interactive=True)
        assert arena.tasks_with_status([TaskStatus.AWAITING_INPUT]) == [task]


class TestEvents:
    async def test_input_chunks_have_no_agent(self):
        arena, _ = build_arena({"PlannerAgent": ["ok"]})
        chunks = []
        arena.event_bus.subscribe(EventType.CHUNK, chunks.append)

        await run_root(arena, "hi")

        assert [e.agent_name for e in chunks] == [None, "PlannerAgent"]
        assert chunks[0].metadata["chunk"].type == ChunkType.INPUT

    async def test_typed_chunk_topics_reach_the_arena_bus(self):
        arena, _ = build_arena({"PlannerAgent": ["ok"]})
        outputs = []
        arena.event_bus.subscribe("chunk:llmOutput", outputs.append)

        await run_root(arena, "hi")

        assert [e.content for e in outputs] == ["ok"]

    async def test_tokens_are_forwarded(self):
        arena, _ = build_arena({"PlannerAgent": ["a fairly long answer"]})
        tokens = []
        arena.event_bus.subscribe(EventType.TOKEN, tokens.append)

        await run_root(arena, "hi")

        assert "".join(e.content for e in tokens) == "a fairly long answer"


class TestEvaluators:
    async def test_failing_evaluator_is_isolated(self):
        def broken(chunk):
            raise RuntimeError("evaluator bug")

        registry = EvaluatorRegistry(
            lambda: [SimpleEvaluator(broken, list(ChunkType), fqdn="evaluators.Broken"), length_evaluator()]
        )
        arena, _ = build_arena({"PlannerAgent": ["four"]}, evaluator_registry=registry)

        task, results = await run_root(arena, "hi")

        assert results == ["four"]
        assert task.scratchpad[1].annotations == {"evaluators.LengthEvaluator": {"length": 4}}
        assert task.scratchpad[0].annotations == {"evaluators.LengthEvaluator": {"length": 2}}
        assert arena.error_count == 0

    async def test_agent_evaluators_filter(self):
        class PickyAgent(PlannerAgent):
            EVALUATORS = ("evaluators.LengthEvaluator",)

        registry = EvaluatorRegistry(lambda: [[length_evaluator(), type_evaluator()]])
        arena, _ = build_arena(
            {"PlannerAgent": ["ok"]}, evaluator_registry=registry, catalog=(PickyAgent, ErrorAgent)
        )

        task, _ = await run_root(arena, "hi", agent_name="PickyAgent")

        assert set(task.scratchpad[0].annotations) == {"evaluators.LengthEvaluator", "evaluators.TypeEvaluator"}
        assert set(task.scratchpad[1].annotations) == {"evaluators.LengthEvaluator"}

    async def test_agent_evaluator_runs_through_the_queue(self):
        arena, llm = build_arena(
            {
                "PlannerAgent": ["Glad to help"],
                "sentiment analysis expert": ['{"score": 0.9, "explanation": "enthusiastic"}'],
            }
        )
        arena.evaluators = [sentiment_evaluator(llm), length_evaluator()]
        seen = []
        arena.event_bus.subscribe([EventType.TOKEN, EventType.EVALUATOR_TOKEN, EventType.EVALUATOR_CHUNK], seen.append)

        task, results = await run_root(arena, "I love this")

        assert results == ["Glad to help"]
        assert task.scratchpad[0].annotations == {
            "evaluators.SentimentEvaluator": {"score": 0.9, "explanation": "enthusiastic"},
            "evaluators.LengthEvaluator": {"length": 11},
        }
        assert task.scratchpad[1].annotations == {"evaluators.LengthEvaluator": {"length": 12}}

        eval_task = next(t for t in arena.task_store.values() if t.task_type == TaskType.EVALUATOR)
        assert eval_task.agent_name == SentimentAgent.agent_name()
        assert eval_task.id.startswith("eval_")
        assert all(not (c.annotations or {}) for c in eval_task.scratchpad)

        plain_tokens = [e for e in seen if e.type == EventType.TOKEN]
        assert all(not e.task.is_evaluator for e in plain_tokens)
        assert any(e.type == EventType.EVALUATOR_TOKEN for e in seen)
        assert any(e.type == EventType.EVALUATOR_CHUNK for e in seen)
        assert arena.error_count == 0
