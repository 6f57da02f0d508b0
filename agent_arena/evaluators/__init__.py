# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Evaluators annotate chunks out-of-band. The arena hands every emitted chunk to
the evaluators that support its type; their annotations are merged onto the
chunk but never influence scheduling.
"""
from .base import Evaluator, EvaluationResult
from .simple import SimpleEvaluator
from .agent_evaluator import AgentEvaluator
from .registry import EvaluatorRegistry
