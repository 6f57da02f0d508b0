# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Arena Configuration

Centralized settings for the scheduler, plugin loading and the default LLM
backend. Values are read from the environment when the module is imported.
"""

import os

from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


class GenerationFailurePolicy(str, Enum):
    """What the scheduler does when a (non-ErrorAgent) agent fails to generate"""

    ROUTE = "route"  # hand the task to an ErrorAgent, like budget exhaustion
    RAISE = "raise"  # propagate out of the event loop


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def split_search_path(raw: Optional[str]) -> List[str]:
    """Split a search path on ';' (and the platform path separator)."""
    if not raw:
        return []
    parts = raw.replace(os.pathsep, ";").split(";")
    return [p.strip() for p in parts if p.strip()]


@dataclass
class ArenaConfig:
    """Configuration for an arena and its surroundings"""

    # Scheduling budgets
    max_retries: int = 3  # parse / execution error retries per task
    max_executions: int = 10  # total dequeues per task, whatever the outcome

    # Agent call scoping
    always_allowed_agents: Tuple[str, ...] = ("ErrorAgent",)
    open_agent_calls: bool = True  # agents without a whitelist may call anyone

    generation_failure_policy: GenerationFailurePolicy = GenerationFailurePolicy.ROUTE

    # Plugins
    agent_search_path: List[str] = field(default_factory=list)

    # Persistence
    state_db_path: str = "arena_state.db"

    # LLM backend
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "gemma2:27b-instruct-q4_K_M"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ArenaConfig":
        defaults = cls()
        return cls(
            max_retries=_env_int("ARENA_MAX_RETRIES", defaults.max_retries),
            max_executions=_env_int("ARENA_MAX_EXECUTIONS", defaults.max_executions),
            open_agent_calls=_env_bool("ARENA_OPEN_AGENT_CALLS", defaults.open_agent_calls),
            generation_failure_policy=GenerationFailurePolicy(
                os.getenv(
                    "ARENA_GENERATION_FAILURE_POLICY",
                    defaults.generation_failure_policy.value,
                ).lower()
            ),
            agent_search_path=split_search_path(os.getenv("ARENA_AGENT_SEARCH_PATH")),
            state_db_path=os.getenv("ARENA_STATE_DB", defaults.state_db_path),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", defaults.ollama_base_url),
            ollama_model=os.getenv("OLLAMA_MODEL", defaults.ollama_model),
            log_level=os.getenv("ARENA_LOG_LEVEL", defaults.log_level).upper(),
        )


# Global settings instance
settings = ArenaConfig.from_env()
