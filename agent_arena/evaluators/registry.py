# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import logging

from typing import Callable, Iterable, Optional, Sequence

from .base import Evaluator
from .simple import SimpleEvaluator
from .agent_evaluator import AgentEvaluator
from ..agents.implementations import SentimentAgent
from ..llm.base import StreamingLLM
from ..types.chunk_types import ChunkType

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

EvaluatorEntry = Evaluator | Sequence[Evaluator]


def length_evaluator() -> SimpleEvaluator:
    return SimpleEvaluator(
        lambda chunk: {"annotation": {"length": len(chunk.content)}},
        [ChunkType.LLM_OUTPUT, ChunkType.INPUT],
        fqdn="evaluators.LengthEvaluator",
    )


def type_evaluator() -> SimpleEvaluator:
    return SimpleEvaluator(
        lambda chunk: {"annotation": {"type": chunk.type.value}},
        list(ChunkType),
        fqdn="evaluators.TypeEvaluator",
    )


def sentiment_evaluator(llm: Optional[StreamingLLM]) -> AgentEvaluator:
    return AgentEvaluator(
        SentimentAgent,
        [ChunkType.INPUT],
        llm=llm,
        fqdn="evaluators.SentimentEvaluator",
    )


def default_catalog(llm: Optional[StreamingLLM] = None, sentiment: bool = False) -> list[EvaluatorEntry]:
    catalog: list[EvaluatorEntry] = [[length_evaluator(), type_evaluator()]]
    if sentiment:
        catalog.append(sentiment_evaluator(llm))
    return catalog


class EvaluatorRegistry:
    """
    Evaluators, possibly grouped. Groups are a presentation convenience; the
    arena always works on the flattened list.
    """

    def __init__(self, factory: Optional[Callable[[], Iterable[EvaluatorEntry]]] = None):
        self._factory = factory if factory is not None else default_catalog
        self._entries: list[EvaluatorEntry] = []
        self._built = False

    @property
    def built(self) -> bool:
        return self._built

    def build(self) -> "EvaluatorRegistry":
        if self._built:
            return self
        self._built = True
        self._entries = list(self._factory())
        logger.info(f"EvaluatorRegistry loaded evaluators: {', '.join(self.get_evaluator_names())}")
        return self

    def register(self, entry: EvaluatorEntry) -> None:
        self._entries.append(entry)

    def get_evaluators(self) -> list[EvaluatorEntry]:
        return list(self._entries)

    def flattened(self) -> list[Evaluator]:
        flat: list[Evaluator] = []
        for entry in self._entries:
            if isinstance(entry, Evaluator):
                flat.append(entry)
            else:
                flat.extend(entry)
        return flat

    def get_evaluator_names(self) -> list[str]:
        return [e.fqdn for e in self.flattened()]

    def get_evaluator(self, fqdn: str) -> Optional[Evaluator]:
        for evaluator in self.flattened():
            if evaluator.fqdn == fqdn:
                return evaluator
        return None
