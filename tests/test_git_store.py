"""Tests for the git runner and local history."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from conftest import git
from llmem.errors import GitError
from llmem.sync.git import GitRepo
from llmem.sync.store import GitStore


class TestGitRepo:
    @pytest.mark.asyncio
    async def test_not_a_repo(self, tmp_path: Path):
        assert await GitRepo(tmp_path).is_repo() is False

    @pytest.mark.asyncio
    async def test_failure_raises(self, tmp_path: Path):
        with pytest.raises(GitError) as excinfo:
            await GitRepo(tmp_path).run("rev-parse", "HEAD")
        assert excinfo.value.returncode != 0
        assert excinfo.value.command == ["rev-parse", "HEAD"]

    @pytest.mark.asyncio
    async def test_check_false(self, tmp_path: Path):
        output = await GitRepo(tmp_path).run("rev-parse", "HEAD", check=False)
        assert isinstance(output, str)

    @pytest.mark.asyncio
    async def test_config_entries_are_passed(self, tmp_path: Path):
        repo = GitRepo(tmp_path, config=["user.name=Configured"])
        assert (await repo.run("config", "user.name")).strip() == "Configured"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path: Path):
        repo = GitRepo(tmp_path, config=["alias.slow=!sleep 3"])
        start = time.monotonic()
        with pytest.raises(GitError) as excinfo:
            await repo.run("slow", timeout=0.1)
        assert excinfo.value.returncode is None
        assert "timed out" in str(excinfo.value)
        assert time.monotonic() - start < 2

    @pytest.mark.asyncio
    async def test_missing_remote(self, tmp_path: Path):
        store = GitStore(tmp_path / "s")
        await store.initialize()
        assert await store.git.remote_url("origin") is None


class TestGitStore:
    @pytest.mark.asyncio
    async def test_initialize_creates_skeleton(self, tmp_path: Path):
        store = GitStore(tmp_path / "s")
        await store.initialize()

        assert (store.root / ".git").is_dir()
        assert (store.root / "contexts").is_dir()
        assert (store.root / ".llmem" / "cache").is_dir()
        assert ".llmem/" in (store.root / ".gitignore").read_text()
        assert (store.root / "README.md").exists()
        assert git(store.root, "symbolic-ref", "--short", "HEAD").strip() == "main"
        assert git(store.root, "log", "--format=%s").strip() == (
            "Initial commit: Created context store structure"
        )

    @pytest.mark.asyncio
    async def test_initialize_idempotent(self, tmp_path: Path):
        await GitStore(tmp_path / "s").initialize()
        store = GitStore(tmp_path / "s")
        await store.initialize()
        await store.initialize()
        assert len(git(store.root, "log", "--format=%H").splitlines()) == 1

    @pytest.mark.asyncio
    async def test_commit_nothing(self, tmp_path: Path):
        store = GitStore(tmp_path / "s")
        await store.initialize()
        assert await store.commit("empty") is False

    @pytest.mark.asyncio
    async def test_internal_dir_ignored(self, tmp_path: Path):
        store = GitStore(tmp_path / "s")
        await store.initialize()
        (store.internal_dir / "cache" / "blob").write_text("x")
        assert await store.status() == ""

    @pytest.mark.asyncio
    async def test_add_commit_history(self, tmp_path: Path):
        store = GitStore(tmp_path / "s")
        await store.initialize()
        note = store.contexts_dir / "note.md"
        note.write_text("one")
        await store.add("contexts/note.md")
        assert await store.commit("Add note") is True

        note.write_text("two")
        assert "+two" in await store.diff("contexts/note.md")
        await store.add("contexts/note.md")
        await store.commit("Edit note")

        history = await store.history("contexts/note.md")
        assert [h["message"] for h in history] == ["Edit note", "Add note"]
        assert all(len(h["hash"]) == 40 for h in history)
        assert len(await store.history(limit=1)) == 1
