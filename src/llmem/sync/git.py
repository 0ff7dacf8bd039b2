"""Async wrapper around the ``git`` command line."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from llmem.errors import GitError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GitRepo:
    """Runs git subcommands in one working directory.

    Every call is bounded by a timeout; a process that outlives it is killed
    and reported as GitError with ``returncode=None``.
    """

    def __init__(
        self,
        cwd: Path,
        *,
        config: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.cwd = cwd
        self.config = config or []
        self.timeout = timeout

    def _build_command(self, args: list[str]) -> list[str]:
        cmd = ["git"]
        for entry in self.config:
            cmd.extend(["-c", entry])
        cmd.extend(args)
        return cmd

    async def run(
        self,
        *args: str,
        timeout: float | None = None,
        cwd: Path | None = None,
        check: bool = True,
    ) -> str:
        """Run ``git <args>`` and return its stdout."""
        cmd = self._build_command(list(args))
        logger.debug("git %s", " ".join(args))
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd or self.cwd),
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout or self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise GitError(list(args), None, "timed out") from None

        output = stdout.decode(errors="replace")
        if check and process.returncode != 0:
            raise GitError(list(args), process.returncode, output + stderr.decode(errors="replace"))
        return output

    async def is_repo(self) -> bool:
        if not (self.cwd / ".git").exists():
            return False
        try:
            output = await self.run("rev-parse", "--is-inside-work-tree")
        except GitError:
            return False
        return output.strip() == "true"

    async def remote_url(self, name: str = "origin") -> str | None:
        try:
            output = await self.run("remote", "get-url", name)
        except GitError:
            return None
        return output.strip() or None

    async def ahead_behind(self, upstream: str = "origin/main") -> tuple[int, int]:
        """Commits (ahead, behind) of HEAD relative to ``upstream``."""
        output = await self.run("rev-list", "--left-right", "--count", f"HEAD...{upstream}")
        ahead, behind = output.split()
        return int(ahead), int(behind)

    async def conflicted_files(self) -> list[str]:
        output = await self.run("diff", "--name-only", "--diff-filter=U")
        return [line for line in output.splitlines() if line.strip()]
