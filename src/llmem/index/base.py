"""Semantic index capability.

The store only ever talks to this protocol. Concrete backends (chromadb, or a
test double) are injected at construction time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypedDict, runtime_checkable

from llmem.errors import IndexUnavailableError

if TYPE_CHECKING:
    from llmem.memory.models import Memory


class IndexStats(TypedDict):
    count: int


@runtime_checkable
class SemanticIndex(Protocol):
    """Embedding-similarity index over memories."""

    async def add(self, memory: Memory) -> None: ...

    async def update(self, memory: Memory) -> None: ...

    async def remove(self, memory_id: str) -> None: ...

    async def search_similar(self, query: str, k: int) -> list[tuple[Memory, float]]:
        """Return up to ``k`` ``(memory, score)`` pairs, score in [0, 1]."""
        ...

    async def rebuild(self, memories: list[Memory]) -> None: ...

    async def stats(self) -> IndexStats: ...


class NullIndex:
    """No semantic backend configured.

    Writes are accepted and dropped; similarity search raises
    IndexUnavailableError so retrieval degrades to text-only results.
    """

    async def add(self, memory: Memory) -> None:
        return None

    async def update(self, memory: Memory) -> None:
        return None

    async def remove(self, memory_id: str) -> None:
        return None

    async def search_similar(self, query: str, k: int) -> list[tuple[Memory, float]]:
        raise IndexUnavailableError("no semantic index configured")

    async def rebuild(self, memories: list[Memory]) -> None:
        return None

    async def stats(self) -> IndexStats:
        return {"count": 0}
