# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import inspect

from typing import Any, Callable, Iterable, Optional

from .base import Evaluator, EvaluationResult
from ..types.chunk_types import Chunk, ChunkType


class SimpleEvaluator(Evaluator):
    """Wraps a plain function of a chunk.

    The function may return {"annotation": ...}, {"annotations": {...}} or a
    bare value, which is taken as the annotation. It may also be a coroutine
    function.
    """

    def __init__(
        self,
        fn: Callable[[Chunk], Any],
        supported_chunk_types: Iterable[ChunkType],
        fqdn: Optional[str] = None,
    ):
        super().__init__(supported_chunk_types, fqdn)
        self.fn = fn

    async def evaluate(self, chunk, arena, agent=None) -> EvaluationResult:
        result = self.fn(chunk)
        if inspect.isawaitable(result):
            result = await result
        return EvaluationResult.model_validate(result)
