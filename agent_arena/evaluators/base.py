# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Optional

from pydantic import BaseModel, model_validator

from ..types.chunk_types import Chunk, ChunkType
from ..utils.data_chunks import merge_annotations, write_annotation

if TYPE_CHECKING:
    from ..arena.arena import Arena
    from ..agents.base_agent import BaseAgent


class EvaluationResult(BaseModel):
    annotation: Any = None
    annotations: Optional[dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_values(cls, data: Any) -> Any:
        if isinstance(data, dict) and ("annotation" in data or "annotations" in data):
            return data
        if isinstance(data, dict) and not data:
            return {}
        return {"annotation": data}

    def merge_into(self, chunk: Chunk, fqdn: str) -> None:
        """Write the annotation under fqdn and spread annotations onto the chunk."""
        if self.annotation is not None:
            write_annotation(chunk, fqdn, self.annotation)
        merge_annotations(chunk, self.annotations)


class Evaluator(ABC):
    """Side-channel annotator for chunks of particular types."""

    def __init__(self, supported_chunk_types: Iterable[ChunkType], fqdn: Optional[str] = None):
        self.supported_chunk_types = frozenset(ChunkType(t) for t in supported_chunk_types)
        self.fqdn = fqdn or f"evaluators.{type(self).__name__}"

    def supports(self, chunk: Chunk) -> bool:
        return chunk.type in self.supported_chunk_types

    @abstractmethod
    async def evaluate(
        self, chunk: Chunk, arena: "Arena", agent: Optional["BaseAgent"] = None
    ) -> EvaluationResult:
        ...

    def __repr__(self) -> str:
        types = ", ".join(sorted(t.value for t in self.supported_chunk_types))
        return f"{type(self).__name__}({self.fqdn}; {types})"
