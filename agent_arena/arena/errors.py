# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Exceptions raised by the arena, its parsers and its agents."""


class ArenaError(Exception):
    """Base class for arena errors."""


class DirectiveParseError(ArenaError, ValueError):
    """A tagged directive span could not be parsed."""


class IncompleteDirectiveError(DirectiveParseError):
    """Start and end tags of a directive kind do not balance."""


class UnknownAgentError(ArenaError, KeyError):
    """A task names an agent that is not registered with the arena."""

    def __init__(self, agent_name: str):
        super().__init__(agent_name)
        self.agent_name = agent_name

    def __str__(self) -> str:
        return f"Unknown agent: {self.agent_name}"


class AgentGenerationError(ArenaError):
    """An agent raised while building its prompt or generating."""

    def __init__(self, task_id: str, agent_name: str, cause: BaseException):
        super().__init__(f"Agent {agent_name} failed on task {task_id}: {cause}")
        self.task_id = task_id
        self.agent_name = agent_name
        self.cause = cause


class FqdnNotSetError(ArenaError):
    """A data chunk helper was used by a component without a fully-qualified name."""

    def __init__(self, kind: str = "Agent"):
        super().__init__(f"{kind} FQDN not set")
