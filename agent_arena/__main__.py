# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Command line entrypoint: `python -m agent_arena`.

Runs a single prompt, an interactive conversation, or a debug REPL that can
inspect the arena's tasks, queue and invocation tree between turns.
"""

import sys
import logging
import asyncio
import argparse

from typing import Any, Optional

from dotenv import load_dotenv

from .agents.registry import AgentRegistry
from .arena.arena import Arena
from .arena.manager import ArenaManager
from .arena.reporting import format_invocation_tree, format_queue, format_task, format_task_list
from .config import ArenaConfig
from .evaluators.registry import EvaluatorRegistry
from .events.event_bus_utils import attach_console_logger
from .llm.ollama import OllamaStreamingLLM
from .storage.state_store import StateStore
from .types.chunk_types import AgentOutput, ChunkType, Task, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "ConversationalAgent"

REPL_HELP = """Available commands:
  /invocations  - Show invocation tree
  /tasks        - List all tasks
  /task <id>    - Show details of specific task
  /queue        - Show current task queue
  /clear        - Clear invocation history
  /help         - Show this help
  /exit         - Exit REPL
Anything else is sent to the agent as user input."""


def setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agent_arena", description="Run agents in the arena")
    parser.add_argument("--agent", type=str, default=DEFAULT_AGENT, help="Root agent for new conversations")
    parser.add_argument("--prompt", type=str, default=None, help="Run a single prompt and exit")
    parser.add_argument("--repl", action="store_true", help="Start the debug REPL")
    parser.add_argument("--debug", action="store_true", help="Verbose logging, events and the invocation tree")
    parser.add_argument("--list-agents", action="store_true", help="List the available agents and exit")
    parser.add_argument("--model", type=str, default=None, help="Ollama model name")
    parser.add_argument("--base-url", type=str, default=None, help="Ollama server URL")
    parser.add_argument(
        "--session",
        type=str,
        default=None,
        help="Persist the conversation under this session id (see ARENA_STATE_DB)",
    )
    return parser


def _output_text(result: Any) -> str:
    return result.content if isinstance(result, AgentOutput) else str(result)


def _last_response(task: Task) -> Optional[str]:
    for chunk in reversed(task.scratchpad):
        if chunk.type == ChunkType.LLM_OUTPUT:
            return chunk.content
    return None


async def handle_user_input(arena: Arena, text: str, agent_name: str, interactive: bool = False) -> list[str]:
    """Submit one user message and run the arena until it settles.

    Returns the final outputs delivered to the caller, or the latest reply of
    a continuation agent that is waiting for more input.
    """
    outputs: list[Any] = []
    task = await arena.submit_input(text, agent_name, on_complete=outputs.append)
    await arena.run_event_loop(interactive)

    if outputs:
        return [_output_text(o) for o in outputs]
    if task.status == TaskStatus.AWAITING_INPUT:
        reply = _last_response(task)
        return [reply] if reply is not None else []
    return []


def handle_repl_command(arena: Arena, line: str) -> tuple[str, bool]:
    """Execute a /command. Returns (text to print, whether to exit)."""
    command, _, argument = line.strip()[1:].partition(" ")
    command = command.lower()
    argument = argument.strip()

    if command == "invocations":
        return format_invocation_tree(arena), False
    if command == "tasks":
        return format_task_list(arena), False
    if command == "task":
        if not argument:
            return "Usage: /task <id>", False
        task = arena.task_store.get(argument)
        return (format_task(task) if task else f"Task {argument} not found"), False
    if command == "queue":
        return format_queue(arena), False
    if command == "clear":
        arena.invocation_log.clear()
        return "Invocation history cleared.", False
    if command == "help":
        return REPL_HELP, False
    if command in ("exit", "quit"):
        return "Exiting REPL.", True
    return f"Unknown command: /{command}", False


async def _read_line(prompt: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def _converse(arena: Arena, text: str, agent_name: str, debug: bool) -> None:
    for output in await handle_user_input(arena, text, agent_name, interactive=True):
        print(f"FINAL OUTPUT: {output}")
    if debug:
        print(format_invocation_tree(arena, color=True))


async def interactive_prompt(arena: Arena, agent_name: str, debug: bool, save) -> None:
    print('Interactive prompt started. Type your message or "exit" to quit.')
    while True:
        line = await _read_line("> ")
        if line is None or line.strip().lower() == "exit":
            print("Exiting...")
            return
        if not line.strip():
            continue
        await _converse(arena, line.strip(), agent_name, debug)
        save()


async def debug_repl(arena: Arena, agent_name: str, debug: bool, save) -> None:
    print("=== DEBUG REPL ===")
    print(REPL_HELP)
    while True:
        line = await _read_line("debug> ")
        if line is None:
            return
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            text, should_exit = handle_repl_command(arena, line)
            print(text)
            if should_exit:
                return
            continue
        try:
            await _converse(arena, line, agent_name, debug)
        except Exception as e:
            logger.error(f"Error handling user input: {e}")
        save()


async def run(args: argparse.Namespace) -> int:
    config = ArenaConfig.from_env()
    llm = OllamaStreamingLLM(
        base_url=args.base_url or config.ollama_base_url,
        model=args.model or config.ollama_model,
    )

    def registry_factory() -> AgentRegistry:
        return AgentRegistry(llm=llm, search_path=config.agent_search_path)

    if args.list_agents:
        for name in registry_factory().build().get_agent_names():
            print(name)
        return 0

    store = StateStore(config.state_db_path) if args.session else None
    manager = ArenaManager(
        registry_factory,
        store=store,
        evaluator_factory=EvaluatorRegistry,
        config=config,
        llm=llm,
    )
    session_id = args.session or "cli"
    arena = manager.get_arena(session_id)

    if args.agent not in arena.agents:
        print(f"Unknown agent: {args.agent}. Use --list-agents to see the options.", file=sys.stderr)
        return 2
    if args.debug:
        attach_console_logger(arena.event_bus)

    def save() -> None:
        manager.save_arena_state(session_id)

    prompt = args.prompt
    if prompt is None and not args.repl and not sys.stdin.isatty():
        prompt = sys.stdin.read().strip() or None

    if prompt is not None:
        outputs = await handle_user_input(arena, prompt, args.agent, interactive=False)
        for output in outputs:
            print(f"FINAL OUTPUT: {output}")
        if args.debug:
            print(format_invocation_tree(arena, color=True))
        save()
        return 0 if outputs else 1

    if args.repl:
        await debug_repl(arena, args.agent, args.debug, save)
    else:
        await interactive_prompt(arena, args.agent, args.debug, save)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = setup_parser().parse_args(argv)

    load_dotenv()
    logging.captureWarnings(True)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else ArenaConfig.from_env().log_level,
        format="%(asctime)s - %(levelname)s - %(filename)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
