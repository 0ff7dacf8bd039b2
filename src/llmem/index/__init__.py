"""Semantic index backends behind the ``SemanticIndex`` capability."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from llmem.index.base import IndexStats, NullIndex, SemanticIndex

if TYPE_CHECKING:
    from llmem.config import LLMemConfig

logger = logging.getLogger(__name__)

__all__ = ["IndexStats", "NullIndex", "SemanticIndex", "build_index"]


def build_index(config: LLMemConfig) -> SemanticIndex:
    """Construct the configured backend; ``none`` yields a NullIndex."""
    if config.index.backend == "none":
        return NullIndex()

    # chromadb is an optional extra; only import it when selected.
    from llmem.index.chroma import ChromaIndex

    path = config.vector_db_path
    path.mkdir(parents=True, exist_ok=True)
    logger.info("Using chroma index at %s", path)
    return ChromaIndex(
        path=path,
        collection_name=config.index.collection,
        embedding_model=config.index.embedding_model,
    )
