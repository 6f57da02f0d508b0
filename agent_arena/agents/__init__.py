# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Agents turn a task into a prompt, stream a completion from an LLM and hand the
result back to the arena, which decides what the response means: a tool call,
a call to another agent, or a final answer.
"""
from .base_agent import BaseAgent
