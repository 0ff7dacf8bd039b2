"""Memory store: authoritative CRUD over the markdown file tree.

Markdown files under ``<root>/contexts/`` are the source of truth. The
semantic index and git history are secondary: index writes are best-effort
and never fail an operation, while filesystem errors on the memory file
itself always propagate.

Within one operation the file is written first, then the index is updated,
then (optionally) the change is committed.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from llmem.errors import ValidationError
from llmem.index.base import IndexStats, NullIndex, SemanticIndex
from llmem.memory import parser
from llmem.memory.models import Memory, utc_now
from llmem.search.hybrid import (
    DEFAULT_EXACT_MATCH_BOOST,
    DEFAULT_LIMIT,
    DEFAULT_SEMANTIC_WEIGHT,
    HybridSearch,
    SearchResult,
)
from llmem.sync.store import CONTEXTS_DIR, GitStore

logger = logging.getLogger(__name__)

MAX_TITLE_SLUG = 50
ID_PREFIX_LENGTH = 8


def sanitize_title(title: str) -> str:
    """Lowercase slug: runs of non-alphanumerics become one hyphen, max 50 chars."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:MAX_TITLE_SLUG] or "untitled"


def sanitize_directory(directory: str) -> str:
    """Strip ``..`` substrings, empty/``.`` segments and surrounding slashes.

    Not a full canonicalization: it only keeps the result under the
    contexts directory.
    """
    cleaned = directory.replace("..", "")
    return "/".join(p for p in cleaned.split("/") if p not in ("", "."))


class MemoryStore:
    """Create/read/update/delete/list/search memories on disk."""

    def __init__(
        self,
        root: Path,
        *,
        index: SemanticIndex | None = None,
        git: GitStore | None = None,
        auto_commit: bool = True,
    ) -> None:
        self.root = root
        self.index: SemanticIndex = index or NullIndex()
        self.search_engine = HybridSearch(self.index)
        self.git = git
        self.auto_commit = auto_commit and git is not None

    @property
    def contexts_dir(self) -> Path:
        return self.root / CONTEXTS_DIR

    async def initialize(self) -> None:
        """Prepare git (if any) and seed an empty semantic index."""
        if self.git:
            await self.git.initialize()
        self.contexts_dir.mkdir(parents=True, exist_ok=True)

        try:
            stats = await self.index.stats()
            if stats["count"] == 0:
                memories = await self.list()
                if memories:
                    logger.info("Rebuilding semantic index (%d memories)", len(memories))
                    await self.index.rebuild(memories)
        except Exception as e:
            logger.warning("Semantic index initialization failed, using text search only: %s", e)

    # ── Paths ────────────────────────────────────────────────

    def _generate_filepath(self, memory: Memory, directory: str | None = None) -> Path:
        subdir = sanitize_directory(directory if directory is not None else memory.type)
        filename = f"{sanitize_title(memory.title)}-{memory.id[:ID_PREFIX_LENGTH]}.md"
        base = self.contexts_dir / subdir if subdir else self.contexts_dir
        return base / filename

    def _iter_files(self) -> list[Path]:
        """Every .md file under contexts/, skipping dotfiles, in stable order."""
        if not self.contexts_dir.is_dir():
            return []
        files = []
        for path in self.contexts_dir.rglob("*.md"):
            rel = path.relative_to(self.contexts_dir)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path.is_file():
                files.append(path)
        return sorted(files)

    def _find_file(self, memory_id: str) -> Path | None:
        prefix = memory_id[:ID_PREFIX_LENGTH]
        if not prefix:
            return None
        for path in self._iter_files():
            if prefix not in path.name:
                continue
            try:
                candidate = parser.load(path)
            except ValidationError as e:
                logger.debug("Skipping unparseable %s: %s", path, e)
                continue
            if candidate.id == memory_id:
                return path
        return None

    def _write(self, path: Path, memory: Memory) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(parser.stringify(memory), encoding="utf-8")

    # ── Secondary systems ────────────────────────────────────

    async def _index_call(self, action: str, arg: Any) -> None:
        try:
            await getattr(self.index, action)(arg)
        except Exception as e:
            logger.warning("Semantic index %s failed: %s", action, e)

    async def _commit(self, path: Path, message: str) -> None:
        if not self.auto_commit:
            return
        await self.git.add(path.relative_to(self.root))
        await self.git.commit(message)

    # ── CRUD ─────────────────────────────────────────────────

    async def create(
        self,
        title: str,
        content: str,
        type: str,
        metadata: dict[str, Any] | None = None,
        directory: str | None = None,
    ) -> Memory:
        """Write a new memory; ``directory`` overrides the type-derived location."""
        memory = parser.new_memory(title, content, type, metadata)
        memory.filepath = self._generate_filepath(memory, directory)

        self._write(memory.filepath, memory)
        await self._index_call("add", memory)
        await self._commit(memory.filepath, f"Add context: {title}")

        logger.info("Created memory %s (%s)", memory.id, memory.type)
        return memory

    async def read(self, memory_id: str) -> Memory | None:
        path = self._find_file(memory_id)
        if path is None:
            return None
        return parser.load(path)

    async def update(
        self,
        memory_id: str,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Memory | None:
        """Read-modify-write in place. The file never moves, even if type changes."""
        existing = await self.read(memory_id)
        if existing is None or existing.filepath is None:
            return None

        new_metadata = existing.metadata.merged(metadata or {})
        new_metadata.updated = utc_now()
        updated = Memory(
            metadata=new_metadata,
            content=content if content is not None else existing.content,
            filepath=existing.filepath,
        )

        self._write(existing.filepath, updated)
        await self._index_call("update", updated)
        await self._commit(existing.filepath, f"Update context: {updated.title}")

        logger.info("Updated memory %s", memory_id)
        return updated

    async def delete(self, memory_id: str) -> bool:
        path = self._find_file(memory_id)
        if path is None:
            return False

        title = parser.load(path).title
        path.unlink()
        await self._index_call("remove", memory_id)
        await self._commit(path, f"Delete context: {title}")

        logger.info("Deleted memory %s", memory_id)
        return True

    async def list(
        self,
        type: str | None = None,
        tags: list[str] | None = None,
    ) -> list[Memory]:
        """All memories, newest ``updated`` first.

        ``type`` is an exact match (``work`` does not match ``work/projects``);
        ``tags`` requires every listed tag.
        """
        memories: list[Memory] = []
        for path in self._iter_files():
            try:
                memory = parser.load(path)
            except ValidationError as e:
                logger.error("Error parsing %s: %s", path, e)
                continue
            if type is not None and memory.type != type:
                continue
            if tags and not all(tag in memory.tags for tag in tags):
                continue
            memories.append(memory)

        memories.sort(key=lambda m: m.metadata.updated, reverse=True)
        return memories

    # ── Search ───────────────────────────────────────────────

    async def search_with_scores(
        self,
        query: str,
        *,
        limit: int = DEFAULT_LIMIT,
        semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
        exact_match_boost: float = DEFAULT_EXACT_MATCH_BOOST,
    ) -> list[SearchResult]:
        memories = await self.list()
        return await self.search_engine.search(
            query,
            memories,
            limit=limit,
            semantic_weight=semantic_weight,
            exact_match_boost=exact_match_boost,
        )

    async def search(
        self,
        query: str,
        *,
        limit: int = DEFAULT_LIMIT,
        semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
        exact_match_boost: float = DEFAULT_EXACT_MATCH_BOOST,
    ) -> list[Memory]:
        """Ranked memories for ``query``; falls back to a plain substring filter."""
        try:
            results = await self.search_with_scores(
                query,
                limit=limit,
                semantic_weight=semantic_weight,
                exact_match_boost=exact_match_boost,
            )
            return [r.memory for r in results]
        except Exception as e:
            logger.warning("Hybrid search failed, falling back to text filter: %s", e)

        q = query.lower()
        return [
            m
            for m in await self.list()
            if q in m.title.lower()
            or q in m.content.lower()
            or any(q in tag.lower() for tag in m.tags)
        ]

    # ── Index maintenance ────────────────────────────────────

    async def rebuild_index(self) -> int:
        memories = await self.list()
        await self.index.rebuild(memories)
        return len(memories)

    async def index_stats(self) -> IndexStats:
        return await self.index.stats()
