"""Tools for agent memory access.

These functions are designed to be exposed as tools to an LLM client,
allowing it to search and edit the memory store. Each returns a JSON string;
invalid parameters and unknown ids raise ValueError.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import TYPE_CHECKING, Any

from llmem.memory.parser import extract_summary

if TYPE_CHECKING:
    from llmem.memory.models import Memory
    from llmem.memory.store import MemoryStore
    from llmem.sync.remote import RemoteGitStore


def _require_str(name: str, value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValueError(f"{name} parameter is required and must be a string")
    return value


def _optional_tags(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        raise ValueError("tags parameter must be a list of strings")
    return value


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} parameter must be a positive integer")
    return value


def _truncate(text: str, length: int) -> str:
    return text[:length] + ("..." if len(text) > length else "")


def _summary(memory: Memory) -> dict[str, Any]:
    meta = memory.metadata
    return {
        "id": meta.id,
        "title": meta.title,
        "type": meta.type,
        "tags": meta.tags,
        "created": meta.created,
        "updated": meta.updated,
    }


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def get_memory_tools(store: MemoryStore, git: RemoteGitStore | None = None) -> dict[str, callable]:
    """Return a dict of tool_name -> async callable for memory operations.

    These can be registered with a tool-calling protocol layer or called directly.
    """

    async def search_memories(
        query: str,
        type: str | None = None,
        tags: list[str] | None = None,
        limit: int = 10,
    ) -> str:
        """Search memories by meaning and keywords, optionally filtered by type and tags."""
        _require_str("query", query)
        tags = _optional_tags(tags)
        limit = _positive_int("limit", limit)

        # Filters apply after ranking, so rank every memory when any are given.
        candidates = limit
        if type or tags:
            candidates = max(limit, len(await store.list()))
        results = await store.search(query, limit=candidates)
        if type:
            results = [m for m in results if m.type == type]
        if tags:
            results = [m for m in results if all(t in m.tags for t in tags)]

        return _dumps({
            "query": query,
            "total_results": len(results),
            "results": [
                {**_summary(m), "content": _truncate(m.content, 300)} for m in results[:limit]
            ],
        })

    async def get_memory(id: str) -> str:
        """Read one memory in full."""
        _require_str("id", id)
        memory = await store.read(id)
        if memory is None:
            raise ValueError(f"Memory with ID {id} not found")
        return _dumps({
            **_summary(memory),
            "relations": memory.metadata.relations,
            "content": memory.content,
        })

    async def add_memory(
        title: str,
        content: str,
        type: str,
        tags: list[str] | None = None,
        directory: str | None = None,
    ) -> str:
        """Store a new memory. ``type`` is a slash-delimited path such as ``work/projects``."""
        _require_str("title", title)
        _require_str("content", content)
        _require_str("type", type)
        tags = _optional_tags(tags) or []
        if directory is not None and not isinstance(directory, str):
            raise ValueError("directory parameter must be a string")

        memory = await store.create(title, content, type, {"tags": tags}, directory=directory)
        return _dumps({
            "success": True,
            "message": "Memory created successfully",
            "memory": _summary(memory),
        })

    async def update_memory(
        id: str,
        title: str | None = None,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> str:
        """Change a memory's title, content or tags. Unspecified fields are kept."""
        _require_str("id", id)
        metadata: dict[str, Any] = {}
        if title is not None:
            metadata["title"] = _require_str("title", title)
        if tags is not None:
            metadata["tags"] = _optional_tags(tags)
        if content is not None and not isinstance(content, str):
            raise ValueError("content parameter must be a string")

        memory = await store.update(id, content=content, metadata=metadata)
        if memory is None:
            raise ValueError(f"Memory with ID {id} not found")
        return _dumps({
            "success": True,
            "message": "Memory updated successfully",
            "memory": _summary(memory),
        })

    async def delete_memory(id: str) -> str:
        """Delete a memory permanently (git history keeps the old version)."""
        _require_str("id", id)
        if not await store.delete(id):
            raise ValueError(f"Memory with ID {id} not found")
        return _dumps({"success": True, "message": "Memory deleted successfully", "id": id})

    async def list_memories(
        type: str | None = None,
        tags: list[str] | None = None,
        limit: int = 20,
    ) -> str:
        """List memories, most recently updated first."""
        tags = _optional_tags(tags)
        limit = _positive_int("limit", limit)
        memories = await store.list(type=type or None, tags=tags)
        shown = memories[:limit]
        return _dumps({
            "total_memories": len(memories),
            "showing": len(shown),
            "memories": [
                {**_summary(m), "content_preview": _truncate(m.content, 150)} for m in shown
            ],
        })

    async def sync_memories() -> str:
        """Pull from and push to the configured remote repository."""
        if git is None or not git.remote_url:
            return _dumps({"success": False, "message": "No remote repository configured"})
        try:
            await git.sync()
        except Exception as e:
            return _dumps({
                "success": False,
                "message": "Failed to synchronize memories with remote repository",
                "error": str(e),
            })
        return _dumps({
            "success": True,
            "message": "Successfully synchronized memories with remote repository",
        })

    async def recent_memories(limit: int = 10) -> str:
        """The most recently updated memories with short previews."""
        limit = _positive_int("limit", limit)
        memories = (await store.list())[:limit]
        return _dumps({
            "memories": [
                {**_summary(m), "summary": extract_summary(m.content)} for m in memories
            ],
        })

    async def memory_types() -> str:
        """Memory counts per type and the most used tags."""
        memories = await store.list()
        types = Counter(m.type for m in memories)
        tags = Counter(t for m in memories for t in m.tags)
        return _dumps({
            "total_memories": len(memories),
            "types": dict(sorted(types.items())),
            "top_tags": dict(tags.most_common(20)),
        })

    return {
        "search_memories": search_memories,
        "get_memory": get_memory,
        "add_memory": add_memory,
        "update_memory": update_memory,
        "delete_memory": delete_memory,
        "list_memories": list_memories,
        "sync_memories": sync_memories,
        "recent_memories": recent_memories,
        "memory_types": memory_types,
    }
