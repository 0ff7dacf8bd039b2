"""LLMem orchestrator: wires the memory store to its secondary systems.

Responsibilities:
1. Build the semantic index, git layer and memory store from configuration
2. Initialize the store (git repository, optional remote bootstrap, index seed)
3. Run the index reconciler and background sync while started
4. Stop both idempotently on shutdown
"""

from __future__ import annotations

import logging

from llmem.config import LLMemConfig
from llmem.index import SemanticIndex, build_index
from llmem.index.base import NullIndex
from llmem.memory.store import MemoryStore
from llmem.memory.watcher import IndexReconciler
from llmem.sync.remote import RemoteGitStore

logger = logging.getLogger(__name__)


class LLMem:
    """One memory store plus its index, git history and background activities."""

    def __init__(self, config: LLMemConfig, *, index: SemanticIndex | None = None) -> None:
        self.config = config
        self.index = index if index is not None else build_index(config)
        self.git = RemoteGitStore(
            config.store_path,
            remote_url=config.remote.url,
            auth_type=config.remote.auth_type,
            auth_token=config.remote.auth_token,
            auto_sync=config.sync.auto_sync,
            sync_interval=config.sync.interval * 60,
            network_timeout=config.sync.timeout,
        )
        self.store = MemoryStore(
            config.store_path,
            index=self.index,
            git=self.git,
            auto_commit=config.auto_commit,
        )
        self.reconciler = IndexReconciler(self.store.contexts_dir, self.index)
        self._initialized = False
        self._started = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.store.initialize()
        self._initialized = True
        logger.info("Memory store ready at %s", self.config.store_path)

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        """Initialize, then start the reconciler and background sync."""
        await self.initialize()
        if self._started:
            return
        if self.config.index.auto_index and not isinstance(self.index, NullIndex):
            self.reconciler.start()
        if self.config.remote.url and self.config.sync.auto_sync:
            self.git.start_background_sync()
        self._started = True

    async def stop(self) -> None:
        """Stop background activities. Safe to call more than once."""
        await self.reconciler.stop()
        await self.git.stop_background_sync()
        if self._started:
            logger.info("LLMem stopped")
        self._started = False

    # ── Operations ───────────────────────────────────────────

    async def sync(self) -> None:
        await self.initialize()
        await self.git.sync()

    async def reindex(self) -> int:
        await self.initialize()
        count = await self.store.rebuild_index()
        logger.info("Rebuilt semantic index with %d memories", count)
        return count
