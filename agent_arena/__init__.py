# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Agent arena: a cooperative scheduler that drives LLM agents through a shared
queue of tasks, dispatching the tool and sub-agent directives they emit and
propagating results back up the call tree.
"""

__version__ = "0.1.0"
