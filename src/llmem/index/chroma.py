"""Semantic index backed by a persistent ChromaDB collection.

chromadb is an optional dependency (``pip install llmem[vector]``); this module
is only imported when the ``chroma`` index backend is configured.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import chromadb
from chromadb.utils import embedding_functions

from llmem.index.base import IndexStats
from llmem.memory.models import Memory, MemoryMetadata

logger = logging.getLogger(__name__)


def get_embedding_function(
    model_name: str = "all-MiniLM-L6-v2",
) -> embedding_functions.SentenceTransformerEmbeddingFunction:
    """Return a sentence-transformer embedding function for ChromaDB."""
    return embedding_functions.SentenceTransformerEmbeddingFunction(model_name=model_name)


def _document(memory: Memory) -> str:
    return " ".join([memory.metadata.title, memory.content, " ".join(memory.metadata.tags)])


def _metadata(memory: Memory) -> dict[str, Any]:
    meta = memory.metadata
    return {
        "id": meta.id,
        "title": meta.title,
        "type": meta.type,
        "tags": ",".join(meta.tags),
        "created": meta.created,
        "updated": meta.updated,
        "relations": ",".join(meta.relations),
        "content": memory.content,
        "filepath": str(memory.filepath) if memory.filepath else "",
    }


def _memory(meta: dict[str, Any]) -> Memory:
    metadata = MemoryMetadata(
        id=meta["id"],
        title=meta.get("title", ""),
        type=meta.get("type", ""),
        tags=[t for t in (meta.get("tags") or "").split(",") if t],
        created=meta.get("created", ""),
        updated=meta.get("updated", ""),
        relations=[r for r in (meta.get("relations") or "").split(",") if r],
    )
    filepath = meta.get("filepath")
    return Memory(
        metadata=metadata,
        content=meta.get("content", ""),
        filepath=Path(filepath) if filepath else None,
    )


class ChromaIndex:
    """SemanticIndex implementation over a ChromaDB collection.

    Uses cosine space, so query distances fall in [0, 2]; similarity is
    reported as ``max(0, 1 - distance)``. Writes are upserts, which keeps
    repeated add/update events for the same memory harmless.
    """

    def __init__(
        self,
        path: str | Path = "./vectors",
        collection_name: str = "memories",
        embedding_model: str = "all-MiniLM-L6-v2",
        _client: Any | None = None,
        _embedding_function: Any | None = None,
    ) -> None:
        self.client = _client or chromadb.PersistentClient(path=str(path))
        self.collection_name = collection_name
        self._ef = _embedding_function or get_embedding_function(embedding_model)
        self.collection = self._get_collection()

    def _get_collection(self):
        return self.client.get_or_create_collection(
            name=self.collection_name,
            embedding_function=self._ef,
            metadata={"hnsw:space": "cosine"},
        )

    # ── Writes ────────────────────────────────────────────────

    def _upsert(self, memory: Memory) -> None:
        self.collection.upsert(
            ids=[memory.id],
            documents=[_document(memory)],
            metadatas=[_metadata(memory)],
        )

    async def add(self, memory: Memory) -> None:
        await asyncio.to_thread(self._upsert, memory)

    async def update(self, memory: Memory) -> None:
        await asyncio.to_thread(self._upsert, memory)

    async def remove(self, memory_id: str) -> None:
        await asyncio.to_thread(self.collection.delete, ids=[memory_id])

    async def rebuild(self, memories: list[Memory]) -> None:
        def _rebuild() -> None:
            try:
                self.client.delete_collection(self.collection_name)
            except Exception as e:  # collection may not exist yet
                logger.debug("delete_collection(%s): %s", self.collection_name, e)
            self.collection = self._get_collection()
            if memories:
                self.collection.upsert(
                    ids=[m.id for m in memories],
                    documents=[_document(m) for m in memories],
                    metadatas=[_metadata(m) for m in memories],
                )

        await asyncio.to_thread(_rebuild)
        logger.info("Rebuilt semantic index with %d memories", len(memories))

    # ── Reads ─────────────────────────────────────────────────

    def _query(self, query: str, k: int) -> list[tuple[Memory, float]]:
        n = min(k, self.collection.count())
        if n == 0:
            return []
        result = self.collection.query(
            query_texts=[query],
            n_results=n,
            include=["metadatas", "distances"],
        )
        metadatas = result["metadatas"][0]
        distances = result["distances"][0]
        return [
            (_memory(meta), max(0.0, min(1.0, 1.0 - distance)))
            for meta, distance in zip(metadatas, distances)
        ]

    async def search_similar(self, query: str, k: int) -> list[tuple[Memory, float]]:
        return await asyncio.to_thread(self._query, query, k)

    async def stats(self) -> IndexStats:
        count = await asyncio.to_thread(self.collection.count)
        return {"count": count}
