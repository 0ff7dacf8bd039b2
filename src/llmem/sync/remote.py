"""Remote mirroring: bootstrap-replace, pull/push/sync and background sync.

When a remote URL is configured and differs from the local ``origin`` (or no
local repository exists yet), local content is backed up and replaced by a
fresh shallow clone of the remote. After that, every commit is pushed when
auto-sync is on, and a background task periodically pulls.

Network failures on pull/push are logged and swallowed. The only fatal
remote error is a failed bootstrap clone, since nothing can stand in for it.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import shutil
from pathlib import Path
from typing import Literal

from llmem.errors import GitError, SyncError
from llmem.sync.conflicts import ConflictStrategy, PreferRemoteStrategy, backup_timestamp
from llmem.sync.git import GitRepo
from llmem.sync.store import BRANCH, INTERNAL_DIR, GitStore

logger = logging.getLogger(__name__)

UPSTREAM = f"origin/{BRANCH}"
FETCH_REFSPEC = f"+refs/heads/{BRANCH}:refs/remotes/{UPSTREAM}"

AuthType = Literal["ssh", "token"]


def auth_config(auth_type: str | None, auth_token: str | None) -> list[str]:
    """Extra ``git -c`` settings for the configured auth mode.

    ``ssh`` relies on the user's keys/agent. ``token`` sends the token as an
    HTTP basic-auth header so it never lands in ``.git/config``.
    """
    if auth_type == "token" and auth_token:
        raw = f"x-access-token:{auth_token}".encode()
        return [f"http.extraHeader=Authorization: Basic {base64.b64encode(raw).decode()}"]
    return []


class RemoteGitStore(GitStore):
    """GitStore with an optional ``origin`` mirror."""

    def __init__(
        self,
        root: Path,
        *,
        remote_url: str | None = None,
        auth_type: AuthType | None = None,
        auth_token: str | None = None,
        auto_sync: bool = True,
        sync_interval: float = 300.0,
        timeout: float = 30.0,
        network_timeout: float = 120.0,
        strategy: ConflictStrategy | None = None,
    ) -> None:
        super().__init__(root, timeout=timeout)
        self.git = GitRepo(root, config=auth_config(auth_type, auth_token), timeout=timeout)
        self.remote_url = remote_url
        self.auto_sync = auto_sync
        self.sync_interval = sync_interval
        self.network_timeout = network_timeout
        self.strategy = strategy or PreferRemoteStrategy(self.internal_dir / "conflicts")
        self._sync_task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # ── Initialization ───────────────────────────────────────

    async def initialize(self) -> None:
        if self._initialized:
            return

        if self.remote_url and await self._should_replace_with_remote():
            await self._replace_with_remote(self.remote_url)
        else:
            await super().initialize()

        if self.remote_url:
            await self._configure_remote()
        self._exclude_internal()

    async def _should_replace_with_remote(self) -> bool:
        if not await self.git.is_repo():
            return True
        return await self.git.remote_url("origin") != self.remote_url

    async def _replace_with_remote(self, remote_url: str) -> None:
        """Back up local content, then swap in a fresh clone of the remote."""
        logger.warning("Remote URL changed or newly configured: %s", remote_url)
        self.root.mkdir(parents=True, exist_ok=True)
        clone_dir = self.internal_dir / "tmp-clone"
        if clone_dir.exists():
            shutil.rmtree(clone_dir)
        clone_dir.parent.mkdir(parents=True, exist_ok=True)

        try:
            await self.git.run(
                "clone", "--depth", "1", remote_url, str(clone_dir),
                cwd=self.internal_dir,
                timeout=self.network_timeout,
            )
        except GitError as e:
            shutil.rmtree(clone_dir, ignore_errors=True)
            raise SyncError(f"Failed to clone from remote {remote_url}: {e}") from e

        self._backup_current_state()
        self._wipe_local_content()
        for entry in clone_dir.iterdir():
            shutil.move(str(entry), str(self.root / entry.name))
        shutil.rmtree(clone_dir, ignore_errors=True)

        try:
            await self.git.run("rev-parse", "--verify", "HEAD")
        except GitError:
            await self._checkout_default_branch()

        self.ensure_skeleton()
        self._initialized = True
        logger.warning("Replaced local content with remote repository %s", remote_url)

    async def _checkout_default_branch(self) -> None:
        """Nothing checked out: the remote HEAD names a missing branch, or the remote is empty."""
        try:
            await self.git.run("checkout", "-B", BRANCH, UPSTREAM)
        except GitError:
            await self.git.run("symbolic-ref", "HEAD", f"refs/heads/{BRANCH}")

    def _local_entries(self) -> list[Path]:
        return [p for p in sorted(self.root.iterdir()) if p.name != INTERNAL_DIR]

    def _backup_current_state(self) -> Path | None:
        entries = self._local_entries()
        if not entries:
            return None
        backup_path = self.internal_dir / "backups" / backup_timestamp()
        backup_path.mkdir(parents=True, exist_ok=True)
        for entry in entries:
            if entry.is_dir():
                shutil.copytree(entry, backup_path / entry.name, symlinks=True)
            else:
                shutil.copy2(entry, backup_path / entry.name)
        logger.warning("Backed up previous state to %s", backup_path)
        return backup_path

    def _wipe_local_content(self) -> None:
        for entry in self._local_entries():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def _exclude_internal(self) -> None:
        """Keep the internal directory out of git even if the remote's .gitignore lacks it."""
        exclude = self.root / ".git" / "info" / "exclude"
        if not exclude.parent.is_dir():
            return
        existing = exclude.read_text(encoding="utf-8") if exclude.exists() else ""
        line = f"/{INTERNAL_DIR}/"
        if line not in existing.splitlines():
            with exclude.open("a", encoding="utf-8") as f:
                if existing and not existing.endswith("\n"):
                    f.write("\n")
                f.write(f"{line}\n")

    async def _configure_remote(self) -> None:
        try:
            if await self.git.remote_url("origin") is None:
                await self.git.run("remote", "add", "origin", self.remote_url)
                logger.info("Added remote origin: %s", self.remote_url)
            # A clone of an empty remote records no fetch refspec.
            refspec = await self.git.run("config", "--get", "remote.origin.fetch", check=False)
            if not refspec.strip():
                await self.git.run("config", "remote.origin.fetch", FETCH_REFSPEC)
        except GitError as e:
            logger.warning("Failed to configure remote: %s", e)

    # ── Commit / push / pull ─────────────────────────────────

    async def commit(self, message: str) -> bool:
        committed = await super().commit(message)
        if self.remote_url and self.auto_sync:
            await self.push()
        return committed

    async def push(self) -> None:
        if not self.remote_url:
            logger.warning("No remote URL configured, skipping push")
            return
        try:
            await self.initialize()
            await self.git.run("push", "-u", "origin", f"HEAD:{BRANCH}", timeout=self.network_timeout)
            logger.info("Pushed changes to remote repository")
        except Exception as e:
            logger.warning("Failed to push to remote: %s", e)

    async def pull(self) -> None:
        """Fetch and merge the remote branch. Never raises."""
        if not self.remote_url:
            return
        try:
            await self.initialize()
            await self.git.run("fetch", "origin", FETCH_REFSPEC, timeout=self.network_timeout)
            _, behind = await self.git.ahead_behind(UPSTREAM)
            if behind == 0:
                return

            logger.info("Pulling %d commit(s) from remote repository", behind)
            try:
                await self.git.run("merge", "--no-edit", UPSTREAM)
                logger.info("Merged remote changes")
            except GitError as e:
                logger.warning("Merge failed, resolving automatically: %s", e)
                await self.strategy.resolve(self.git, self.root, UPSTREAM)
        except Exception as e:
            logger.warning("Failed to pull from remote: %s", e)

    async def sync(self) -> None:
        """Pull, then push if there are local commits the remote lacks."""
        if not self.remote_url:
            logger.warning("No remote URL configured, skipping sync")
            return
        logger.info("Starting sync with remote repository")
        await self.pull()
        try:
            ahead, _ = await self.git.ahead_behind(UPSTREAM)
        except GitError as e:
            logger.warning("Could not compare with %s: %s", UPSTREAM, e)
            return
        if ahead > 0:
            await self.push()
        logger.info("Sync completed")

    # ── Background sync ──────────────────────────────────────

    @property
    def background_sync_running(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    def start_background_sync(self) -> None:
        """Start pulling every ``sync_interval`` seconds. Idempotent."""
        if not self.remote_url or self.background_sync_running:
            return
        self._stop_event = asyncio.Event()
        self._sync_task = asyncio.create_task(self._sync_loop(self._stop_event))
        logger.info("Background sync started (interval=%ss)", self.sync_interval)

    async def stop_background_sync(self) -> None:
        """Stop the background task and wait for it to finish. Idempotent."""
        if self._sync_task is None:
            return
        if self._stop_event:
            self._stop_event.set()
        try:
            await asyncio.wait_for(self._sync_task, timeout=self.network_timeout)
        except asyncio.TimeoutError:
            self._sync_task.cancel()
        except asyncio.CancelledError:
            pass
        self._sync_task = None
        self._stop_event = None
        logger.info("Background sync stopped")

    async def _sync_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.sync_interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.pull()
            except Exception as e:
                logger.error("Background sync error: %s", e)
