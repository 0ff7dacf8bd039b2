"""Tests for remote mirroring, bootstrap-replace and conflict resolution."""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path

import pytest

from conftest import git
from llmem.errors import ConflictResolutionError, GitError, SyncError
from llmem.memory.store import MemoryStore
from llmem.sync.conflicts import RESOLVE_MESSAGE, ConflictStrategy, PreferRemoteStrategy
from llmem.sync.remote import RemoteGitStore, auth_config
from llmem.sync.store import GitStore


def client(root: Path, remote: Path, **kwargs) -> tuple[RemoteGitStore, MemoryStore]:
    git_store = RemoteGitStore(root, remote_url=str(remote), **kwargs)
    return git_store, MemoryStore(root, git=git_store)


class TestAuthConfig:
    def test_ssh_has_no_extra_config(self):
        assert auth_config("ssh", "secret") == []

    def test_token_header(self):
        [entry] = auth_config("token", "secret")
        encoded = entry.split("Basic ", 1)[1]
        assert base64.b64decode(encoded).decode() == "x-access-token:secret"

    def test_token_missing(self):
        assert auth_config("token", None) == []


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_clone_empty_remote(self, tmp_path: Path, bare_remote: Path):
        git_store = RemoteGitStore(tmp_path / "a", remote_url=str(bare_remote))
        await git_store.initialize()

        assert (git_store.root / ".git").is_dir()
        assert git_store.contexts_dir.is_dir()
        assert (await git_store.git.remote_url("origin")) == str(bare_remote)
        assert "/.llmem/" in (git_store.root / ".git" / "info" / "exclude").read_text()
        refspec = git(git_store.root, "config", "--get", "remote.origin.fetch").strip()
        assert refspec == "+refs/heads/main:refs/remotes/origin/main"

    @pytest.mark.asyncio
    async def test_pull_after_empty_bootstrap(self, tmp_path: Path, bare_remote: Path):
        git_a, a = client(tmp_path / "a", bare_remote)
        await a.initialize()
        await a.create("Seed", "x", "work")

        _, b = client(tmp_path / "b", bare_remote)
        await b.initialize()
        from_b = await b.create("From B", "y", "work")

        await git_a.pull()

        assert (await a.read(from_b.id)).title == "From B"
        assert await git_a.git.ahead_behind("origin/main") == (0, 0)

    @pytest.mark.asyncio
    async def test_commit_pushes(self, tmp_path: Path, bare_remote: Path):
        _, store = client(tmp_path / "a", bare_remote)
        await store.initialize()
        memory = await store.create("Shared", "x", "work")

        log = git(bare_remote, "log", "main", "--format=%s").splitlines()
        assert log[0] == "Add context: Shared"

        _, other = client(tmp_path / "b", bare_remote)
        await other.initialize()
        assert (await other.read(memory.id)).title == "Shared"

    @pytest.mark.asyncio
    async def test_existing_local_store_is_backed_up_and_replaced(
        self, tmp_path: Path, bare_remote: Path
    ):
        _, seeded = client(tmp_path / "seed", bare_remote)
        await seeded.initialize()
        remote_memory = await seeded.create("From remote", "x", "work")

        root = tmp_path / "local"
        local = MemoryStore(root, git=GitStore(root))
        await local.initialize()
        local_memory = await local.create("Local only", "x", "personal")

        _, replaced = client(root, bare_remote)
        await replaced.initialize()

        assert await replaced.read(local_memory.id) is None
        assert (await replaced.read(remote_memory.id)).title == "From remote"
        backups = list((root / ".llmem" / "backups").iterdir())
        assert len(backups) == 1
        backed_up = backups[0] / local_memory.filepath.relative_to(root)
        assert backed_up.exists()

    @pytest.mark.asyncio
    async def test_matching_origin_keeps_local_content(self, tmp_path: Path, bare_remote: Path):
        root = tmp_path / "a"
        _, store = client(root, bare_remote)
        await store.initialize()
        memory = await store.create("Keep me", "x", "work")

        _, reopened = client(root, bare_remote)
        await reopened.initialize()

        assert (await reopened.read(memory.id)).title == "Keep me"
        assert not (root / ".llmem" / "backups").exists()

    @pytest.mark.asyncio
    async def test_clone_failure_is_fatal(self, tmp_path: Path):
        git_store = RemoteGitStore(tmp_path / "a", remote_url=str(tmp_path / "missing.git"))
        with pytest.raises(SyncError):
            await git_store.initialize()


class TestPullAndConflicts:
    @pytest.mark.asyncio
    async def test_pull_fast_forward(self, tmp_path: Path, bare_remote: Path):
        _, a = client(tmp_path / "a", bare_remote)
        await a.initialize()
        await a.create("Seed", "x", "work")
        git_b, b = client(tmp_path / "b", bare_remote)
        await b.initialize()

        memory = await a.create("Later", "y", "work")
        assert await b.read(memory.id) is None

        await git_b.pull()
        assert (await b.read(memory.id)).content == "y"

    @pytest.mark.asyncio
    async def test_diverging_edits_prefer_remote(self, tmp_path: Path, bare_remote: Path):
        git_a, a = client(tmp_path / "a", bare_remote)
        await a.initialize()
        memory = await a.create("Contested", "original", "work")

        _, b = client(tmp_path / "b", bare_remote)
        await b.initialize()
        await b.update(memory.id, content="remote edit")

        # Push of this commit is rejected; the edit stays local.
        await a.update(memory.id, content="local edit")

        await git_a.pull()

        assert (await a.read(memory.id)).content == "remote edit"
        assert git(git_a.root, "log", "-1", "--format=%s").strip() == RESOLVE_MESSAGE
        backups = list((git_a.root / ".llmem" / "conflicts").rglob("*.md"))
        assert len(backups) == 1
        assert "local edit" in backups[0].read_text()
        assert "/" not in backups[0].name
        assert git(git_a.root, "status", "--porcelain") == ""

    @pytest.mark.asyncio
    async def test_sync_pushes_local_commits(self, tmp_path: Path, bare_remote: Path):
        git_a, a = client(tmp_path / "a", bare_remote, auto_sync=False)
        await a.initialize()
        await a.create("Pushed by sync", "x", "work")
        assert git(bare_remote, "branch", "--list", "main") == ""

        await git_a.push()
        await a.create("Second", "x", "work")
        await git_a.sync()

        log = git(bare_remote, "log", "main", "--format=%s").splitlines()
        assert log[0] == "Add context: Second"

    @pytest.mark.asyncio
    async def test_pull_without_remote_is_noop(self, tmp_path: Path):
        git_store = RemoteGitStore(tmp_path / "a")
        await git_store.pull()
        await git_store.sync()

    @pytest.mark.asyncio
    async def test_pull_swallows_network_errors(self, tmp_path: Path, bare_remote: Path):
        git_store, store = client(tmp_path / "a", bare_remote)
        await store.initialize()
        await store.create("x", "x", "work")
        git(git_store.root, "remote", "set-url", "origin", str(tmp_path / "gone.git"))
        await git_store.pull()

    @pytest.mark.asyncio
    async def test_strategy_is_pluggable(self, tmp_path: Path, bare_remote: Path):
        calls = []

        class RecordingStrategy:
            async def resolve(self, git_repo, root, upstream):
                calls.append(upstream)
                await git_repo.run("merge", "--abort")

        assert isinstance(RecordingStrategy(), ConflictStrategy)
        assert isinstance(PreferRemoteStrategy(tmp_path), ConflictStrategy)

        git_a, a = client(tmp_path / "a", bare_remote, strategy=RecordingStrategy())
        await a.initialize()
        memory = await a.create("Contested", "original", "work")
        _, b = client(tmp_path / "b", bare_remote)
        await b.initialize()
        await b.update(memory.id, content="remote edit")
        await a.update(memory.id, content="local edit")

        await git_a.pull()

        assert calls == ["origin/main"]
        assert (await a.read(memory.id)).content == "local edit"


class TestBackgroundSync:
    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self, tmp_path: Path, bare_remote: Path):
        git_store = RemoteGitStore(tmp_path / "a", remote_url=str(bare_remote), sync_interval=0.05)
        await git_store.initialize()

        git_store.start_background_sync()
        task = git_store._sync_task
        git_store.start_background_sync()
        assert git_store._sync_task is task
        assert git_store.background_sync_running

        await asyncio.sleep(0.15)
        await git_store.stop_background_sync()
        await git_store.stop_background_sync()
        assert not git_store.background_sync_running
        assert task.done()

    @pytest.mark.asyncio
    async def test_no_remote_no_task(self, tmp_path: Path):
        git_store = RemoteGitStore(tmp_path / "a")
        git_store.start_background_sync()
        assert not git_store.background_sync_running
        await git_store.stop_background_sync()


class ScriptedGit:
    """Stands in for GitRepo; subcommands listed in ``fail`` raise GitError."""

    def __init__(self, conflicted: list[str], fail: set[str] = frozenset()) -> None:
        self.conflicted = conflicted
        self.fail = set(fail)
        self.calls: list[tuple[str, ...]] = []

    async def conflicted_files(self) -> list[str]:
        return self.conflicted

    async def run(self, *args: str, **kwargs) -> str:
        self.calls.append(args)
        if args[0] in self.fail:
            raise GitError(list(args), 1, "scripted failure")
        if args[0] == "show":
            return "local version\n"
        return ""


class TestPreferRemoteStrategy:
    @pytest.mark.asyncio
    async def test_nothing_conflicted(self, tmp_path: Path):
        repo = ScriptedGit([])
        await PreferRemoteStrategy(tmp_path / "conflicts").resolve(repo, tmp_path, "origin/main")
        assert repo.calls == []

    @pytest.mark.asyncio
    async def test_backs_up_ours_and_commits(self, tmp_path: Path):
        repo = ScriptedGit(["contexts/work/a-12345678.md"])
        await PreferRemoteStrategy(tmp_path / "conflicts").resolve(repo, tmp_path, "origin/main")

        assert ("checkout", "--theirs", "--", "contexts/work/a-12345678.md") in repo.calls
        assert repo.calls[-1] == ("commit", "--no-verify", "-m", RESOLVE_MESSAGE)
        [backup] = (tmp_path / "conflicts").rglob("*.md")
        assert backup.name == "contexts_work_a-12345678.md"
        assert backup.read_text() == "local version\n"

    @pytest.mark.asyncio
    async def test_remote_deletion_removes_file(self, tmp_path: Path):
        repo = ScriptedGit(["contexts/gone-12345678.md"], fail={"checkout"})
        await PreferRemoteStrategy(tmp_path / "conflicts").resolve(repo, tmp_path, "origin/main")

        assert ("rm", "--quiet", "--", "contexts/gone-12345678.md") in repo.calls
        assert repo.calls[-1][0] == "commit"

    @pytest.mark.asyncio
    async def test_git_failure_falls_back_to_hard_reset(self, tmp_path: Path):
        repo = ScriptedGit(["contexts/a-12345678.md"], fail={"commit"})
        await PreferRemoteStrategy(tmp_path / "conflicts").resolve(repo, tmp_path, "origin/main")

        assert repo.calls[-1] == ("reset", "--hard", "origin/main")

    @pytest.mark.asyncio
    async def test_failed_reset_raises(self, tmp_path: Path):
        repo = ScriptedGit(["contexts/a-12345678.md"], fail={"commit", "reset"})
        with pytest.raises(ConflictResolutionError, match="origin/main"):
            await PreferRemoteStrategy(tmp_path / "conflicts").resolve(repo, tmp_path, "origin/main")
