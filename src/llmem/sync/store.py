"""Local git history for the memory store.

Layout::

    <store>/
    ├── .git/
    ├── .gitignore
    ├── README.md
    ├── contexts/                 # memory files, one directory per type path
    └── .llmem/                   # internal, never committed
        ├── cache/
        ├── backups/<timestamp>/  # content replaced by a remote clone
        └── conflicts/<timestamp>/# local versions of conflicted files
"""

from __future__ import annotations

import logging
from pathlib import Path

from llmem.errors import GitError
from llmem.sync.git import GitRepo

logger = logging.getLogger(__name__)

CONTEXTS_DIR = "contexts"
INTERNAL_DIR = ".llmem"
BRANCH = "main"

_NOTHING_TO_COMMIT = ("nothing to commit", "nothing added to commit", "no changes added to commit")

GITIGNORE = """\
.llmem/
*.tmp
*.swp
.DS_Store
"""

README = """\
# Memory Store

This repository contains your personal memories managed by LLMem.

Memories are organized in the `contexts/` directory.

You can organize memories in subdirectories however makes sense to you
(e.g., by year, topic, project, etc.).

Each memory is a Markdown file with YAML frontmatter containing metadata.
"""


class GitStore:
    """Local repository: skeleton, staging and commits."""

    def __init__(self, root: Path, *, timeout: float = 30.0) -> None:
        self.root = root
        self.git = GitRepo(root, timeout=timeout)
        self._initialized = False

    @property
    def contexts_dir(self) -> Path:
        return self.root / CONTEXTS_DIR

    @property
    def internal_dir(self) -> Path:
        return self.root / INTERNAL_DIR

    async def initialize(self) -> None:
        """Create the repository with an initial commit if it does not exist. Idempotent."""
        if self._initialized:
            return
        self.root.mkdir(parents=True, exist_ok=True)

        if not await self.git.is_repo():
            await self.git.run("init")
            await self.git.run("symbolic-ref", "HEAD", f"refs/heads/{BRANCH}")
            created = self.ensure_skeleton()
            if created:
                await self.git.run("add", "--", *created)
            self._initialized = True
            await self.commit("Initial commit: Created context store structure")
            logger.info("Initialized memory repository at %s", self.root)
        else:
            self.ensure_skeleton()

        self._initialized = True

    def ensure_skeleton(self) -> list[str]:
        """Create missing skeleton files. Returns paths of new tracked files."""
        self.contexts_dir.mkdir(parents=True, exist_ok=True)
        (self.internal_dir / "cache").mkdir(parents=True, exist_ok=True)

        created: list[str] = []
        for name, text in ((".gitignore", GITIGNORE), ("README.md", README)):
            path = self.root / name
            if not path.exists():
                path.write_text(text, encoding="utf-8")
                created.append(name)
        return created

    async def add(self, path: Path | str) -> None:
        """Stage a path, including its deletion."""
        await self.initialize()
        await self.git.run("add", "-A", "--", str(path))

    async def commit(self, message: str) -> bool:
        """Commit staged changes. Returns False when there was nothing to commit."""
        await self.initialize()
        try:
            await self.git.run("commit", "-m", message)
        except GitError as e:
            if any(marker in e.output for marker in _NOTHING_TO_COMMIT):
                logger.debug("Nothing to commit")
                return False
            raise
        logger.debug("Committed: %s", message)
        return True

    async def status(self) -> str:
        await self.initialize()
        return await self.git.run("status", "--porcelain")

    async def diff(self, path: Path | str | None = None) -> str:
        await self.initialize()
        args = ["diff", "HEAD"]
        if path:
            args.extend(["--", str(path)])
        return await self.git.run(*args)

    async def history(self, path: Path | str | None = None, limit: int = 10) -> list[dict[str, str]]:
        """Recent commits, newest first, as ``{hash, date, message}`` dicts."""
        await self.initialize()
        args = ["log", "-n", str(limit), "--format=%H%x1f%cI%x1f%s"]
        if path:
            args.extend(["--", str(path)])
        output = await self.git.run(*args)
        entries = []
        for line in output.splitlines():
            if not line.strip():
                continue
            commit_hash, date, message = line.split("\x1f", 2)
            entries.append({"hash": commit_hash, "date": date, "message": message})
        return entries
