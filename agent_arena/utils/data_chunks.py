# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Helpers for the Data chunk and chunk annotation conventions shared by agents
and tools.

A Data chunk's content is JSON of the form {"fqdn": <owner>, "data": <payload>}
so that several components can keep private state in the same scratchpad.
"""

import json

from typing import Any, Iterable, Optional

from ..arena.errors import FqdnNotSetError
from ..types.chunk_types import Chunk, ChunkType


def make_data_chunk(fqdn: Optional[str], data: Any, kind: str = "Agent") -> Chunk:
    if not fqdn:
        raise FqdnNotSetError(kind)
    return Chunk(
        type=ChunkType.DATA,
        content=json.dumps({"fqdn": fqdn, "data": data}),
        processed=True,
    )


def read_data_chunks(chunks: Iterable[Chunk], fqdn: Optional[str], kind: str = "Agent") -> list[Any]:
    """Payloads of the Data chunks owned by fqdn; unreadable chunks and null payloads are skipped."""
    if not fqdn:
        raise FqdnNotSetError(kind)
    payloads = []
    for chunk in chunks:
        if chunk.type != ChunkType.DATA:
            continue
        try:
            parsed = json.loads(chunk.content)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(parsed, dict) and parsed.get("fqdn") == fqdn and parsed.get("data") is not None:
            payloads.append(parsed["data"])
    return payloads


def write_annotation(chunk: Chunk, fqdn: str, annotation: Any) -> None:
    if chunk.annotations is None:
        chunk.annotations = {}
    chunk.annotations[fqdn] = annotation


def read_annotation(chunk: Chunk, fqdn: str) -> Any:
    if not chunk.annotations:
        return None
    return chunk.annotations.get(fqdn)


def merge_annotations(chunk: Chunk, annotations: Optional[dict[str, Any]]) -> None:
    if not annotations:
        return
    if chunk.annotations is None:
        chunk.annotations = {}
    chunk.annotations.update(annotations)
