"""Hybrid retrieval: fuse semantic similarity with lexical scoring.

The semantic channel is asked for twice the requested number of results and
runs concurrently with the text scorer. Fusion keys on memory id:

* semantic hit          -> ``semantic_score * semantic_weight``      ("semantic")
* text hit, also semantic -> previous + ``text_score * exact_match_boost`` ("hybrid")
* text hit only         -> ``text_score * exact_match_boost``        ("exact")

If the semantic channel fails, the raw text results are returned instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from llmem.errors import IndexUnavailableError
from llmem.index.base import SemanticIndex
from llmem.memory.models import Memory
from llmem.search.scorer import score_text

logger = logging.getLogger(__name__)

MatchType = Literal["exact", "semantic", "hybrid"]

DEFAULT_LIMIT = 10
DEFAULT_SEMANTIC_WEIGHT = 0.7
DEFAULT_EXACT_MATCH_BOOST = 0.3


@dataclass
class SearchResult:
    memory: Memory
    score: float
    match_type: MatchType


def text_search(query: str, memories: Iterable[Memory]) -> list[SearchResult]:
    """Score every memory lexically, keeping those with at least one signal."""
    results: list[SearchResult] = []
    for memory in memories:
        score, matched = score_text(query, memory)
        if matched:
            results.append(SearchResult(memory=memory, score=score, match_type="exact"))
    return results


def fuse(
    semantic_hits: list[tuple[Memory, float]],
    text_results: list[SearchResult],
    semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
    exact_match_boost: float = DEFAULT_EXACT_MATCH_BOOST,
) -> list[SearchResult]:
    """Combine both channels into one list keyed by memory id (unsorted)."""
    combined: dict[str, SearchResult] = {}

    for memory, score in semantic_hits:
        combined[memory.id] = SearchResult(
            memory=memory, score=score * semantic_weight, match_type="semantic"
        )

    for result in text_results:
        existing = combined.get(result.memory.id)
        if existing:
            combined[result.memory.id] = SearchResult(
                memory=result.memory,
                score=existing.score + result.score * exact_match_boost,
                match_type="hybrid",
            )
        else:
            combined[result.memory.id] = SearchResult(
                memory=result.memory,
                score=result.score * exact_match_boost,
                match_type="exact",
            )

    return list(combined.values())


class HybridSearch:
    """Run both retrieval channels over a corpus and fuse the results."""

    def __init__(self, index: SemanticIndex) -> None:
        self.index = index

    async def search(
        self,
        query: str,
        memories: list[Memory],
        *,
        limit: int = DEFAULT_LIMIT,
        semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
        exact_match_boost: float = DEFAULT_EXACT_MATCH_BOOST,
    ) -> list[SearchResult]:
        semantic_task = asyncio.ensure_future(self._semantic(query, limit * 2))
        try:
            text_results = await asyncio.to_thread(text_search, query, memories)
        except BaseException:
            semantic_task.cancel()
            raise

        try:
            semantic_hits = await semantic_task
        except IndexUnavailableError as e:
            logger.debug("Semantic search unavailable, using text results: %s", e)
            return self._text_only(text_results, limit)
        except Exception as e:
            logger.warning("Semantic search failed, using text results: %s", e)
            return self._text_only(text_results, limit)

        # The file tree is authoritative: prefer the corpus copy of a hit.
        by_id = {m.id: m for m in memories}
        semantic_hits = [(by_id.get(m.id, m), score) for m, score in semantic_hits]

        fused = fuse(semantic_hits, text_results, semantic_weight, exact_match_boost)
        fused.sort(key=lambda r: r.score, reverse=True)
        return fused[:limit]

    async def _semantic(self, query: str, k: int) -> list[tuple[Memory, float]]:
        return await self.index.search_similar(query, k)

    @staticmethod
    def _text_only(text_results: list[SearchResult], limit: int) -> list[SearchResult]:
        ranked = sorted(text_results, key=lambda r: r.score, reverse=True)
        return ranked[:limit]
