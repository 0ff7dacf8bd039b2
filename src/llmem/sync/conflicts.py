"""Merge-conflict resolution strategies.

The sync manager hands a failed merge to a strategy object, so the default
"remote wins" policy can be swapped for a real three-way merge without
touching the sync loop.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from llmem.errors import ConflictResolutionError, GitError
from llmem.sync.git import GitRepo

logger = logging.getLogger(__name__)

RESOLVE_MESSAGE = "Auto-resolve conflicts: prefer remote version"


def backup_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


@runtime_checkable
class ConflictStrategy(Protocol):
    async def resolve(self, git: GitRepo, root: Path, upstream: str) -> None:
        """Finish an in-progress conflicted merge against ``upstream``."""
        ...


class PreferRemoteStrategy:
    """Keep the remote version of every conflicted file.

    The local version of each file is copied to
    ``<backup_dir>/<timestamp>/`` (path separators replaced by ``_``) before
    the remote one is checked out. If git itself fails while resolving, the
    branch is hard-reset to ``upstream``; ConflictResolutionError is raised
    only when that reset fails too.
    """

    def __init__(self, backup_dir: Path) -> None:
        self.backup_dir = backup_dir

    async def resolve(self, git: GitRepo, root: Path, upstream: str) -> None:
        try:
            conflicted = await git.conflicted_files()
            if not conflicted:
                return
            logger.warning("Resolving %d conflicted file(s), preferring remote", len(conflicted))

            target = self.backup_dir / backup_timestamp()
            for path in conflicted:
                await self._resolve_file(git, root, path, target)

            await git.run("add", "-A")
            await git.run("commit", "--no-verify", "-m", RESOLVE_MESSAGE)
        except GitError as e:
            logger.error("Automatic conflict resolution failed: %s", e)
            try:
                await git.run("reset", "--hard", upstream)
            except GitError as reset_error:
                raise ConflictResolutionError(
                    f"could not reset to {upstream}: {reset_error}"
                ) from reset_error
            logger.warning("Reset to %s after unresolvable conflicts", upstream)

    async def _resolve_file(self, git: GitRepo, root: Path, path: str, target: Path) -> None:
        await self._backup_local(git, root, path, target)
        try:
            await git.run("checkout", "--theirs", "--", path)
        except GitError:
            # Remote side deleted the file.
            await git.run("rm", "--quiet", "--", path)

    async def _backup_local(self, git: GitRepo, root: Path, path: str, target: Path) -> None:
        target.mkdir(parents=True, exist_ok=True)
        dest = target / path.replace("/", "_")
        try:
            # Stage 2 holds "ours" without conflict markers.
            local = await git.run("show", f":2:{path}")
            dest.write_text(local, encoding="utf-8")
        except GitError:
            source = root / path
            if not source.exists():
                logger.debug("No local version of %s to back up", path)
                return
            shutil.copy2(source, dest)
        logger.warning("Backed up local version of %s -> %s", path, dest)
