# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Built-in agent catalog."""
from .error_agent import ErrorAgent, ERROR_FALLBACK
from .simple import SimpleAgent
from .conversational import ConversationalAgent
from .top_level import TopLevelAgent
from .combat import CombatAgent
from .math_agent import MathAgent
from .sentiment import SentimentAgent
from .example import ExampleAgent

BUILTIN_AGENTS = (
    TopLevelAgent,
    ConversationalAgent,
    SimpleAgent,
    CombatAgent,
    MathAgent,
    ErrorAgent,
    ExampleAgent,
)
