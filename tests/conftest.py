"""Shared fixtures: isolated git identity, a bare remote, and an in-memory index."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from llmem.errors import IndexUnavailableError
from llmem.memory.models import Memory


_LLMEM_ENV = [
    "LLMEM_STORE_PATH",
    "LLMEM_AUTO_COMMIT",
    "LLMEM_LOG_LEVEL",
    "LLMEM_REMOTE_URL",
    "LLMEM_AUTH_TYPE",
    "LLMEM_AUTH_TOKEN",
    "LLMEM_AUTO_SYNC",
    "LLMEM_SYNC_INTERVAL",
    "LLMEM_GIT_TIMEOUT",
    "LLMEM_INDEX_BACKEND",
    "LLMEM_AUTO_INDEX",
    "LLMEM_VECTOR_DB_PATH",
    "LLMEM_EMBEDDING_MODEL",
]


@pytest.fixture(autouse=True)
def git_env(tmp_path_factory, monkeypatch):
    """Commit identity via environment and no user/system git config."""
    home = tmp_path_factory.mktemp("home")
    global_config = home / ".gitconfig"
    global_config.write_text("")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    for key in _LLMEM_ENV:
        monkeypatch.delenv(key, raising=False)


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """Empty bare repository whose HEAD points at main."""
    remote = tmp_path / "remote.git"
    remote.mkdir()
    git(remote, "init", "--bare", "--quiet")
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")
    return remote


class FakeIndex:
    """In-memory SemanticIndex double.

    ``hits`` scripts search_similar results by query; ``fail_search`` makes
    the semantic channel raise.
    """

    def __init__(self) -> None:
        self.entries: dict[str, Memory] = {}
        self.calls: list[tuple[str, str]] = []
        self.hits: dict[str, list[tuple[Memory, float]]] = {}
        self.fail_search: Exception | None = None
        self.fail_writes = False

    async def add(self, memory: Memory) -> None:
        self.calls.append(("add", memory.id))
        if self.fail_writes:
            raise RuntimeError("index down")
        self.entries[memory.id] = memory

    async def update(self, memory: Memory) -> None:
        self.calls.append(("update", memory.id))
        if self.fail_writes:
            raise RuntimeError("index down")
        self.entries[memory.id] = memory

    async def remove(self, memory_id: str) -> None:
        self.calls.append(("remove", memory_id))
        if self.fail_writes:
            raise RuntimeError("index down")
        self.entries.pop(memory_id, None)

    async def search_similar(self, query: str, k: int) -> list[tuple[Memory, float]]:
        self.calls.append(("search", query))
        if self.fail_search:
            raise self.fail_search
        return self.hits.get(query, [])[:k]

    async def rebuild(self, memories: list[Memory]) -> None:
        self.calls.append(("rebuild", str(len(memories))))
        self.entries = {m.id: m for m in memories}

    async def stats(self) -> dict:
        return {"count": len(self.entries)}


@pytest.fixture
def fake_index() -> FakeIndex:
    return FakeIndex()


@pytest.fixture
def unavailable_index() -> FakeIndex:
    index = FakeIndex()
    index.fail_search = IndexUnavailableError("no backend")
    return index
