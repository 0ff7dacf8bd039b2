"""Keep the semantic index in step with out-of-band edits to the file tree.

A watchdog observer thread reports filesystem events; each one is bridged
onto the asyncio loop captured in ``start()`` and debounced per path before
the index is touched.

Deletions are only logged. The filename yields just an 8-char id prefix,
which may collide, so stale index entries are left for an explicit rebuild.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from llmem.errors import ValidationError
from llmem.index.base import SemanticIndex
from llmem.memory import parser

logger = logging.getLogger(__name__)

_ID_PREFIX_RE = re.compile(r"-([a-f0-9]{8})\.md$")


def id_prefix_from_filename(name: str) -> str | None:
    match = _ID_PREFIX_RE.search(name)
    return match.group(1) if match else None


class IndexReconciler:
    """Watches ``contexts_dir`` recursively and pushes changes to ``index``."""

    def __init__(self, contexts_dir: Path, index: SemanticIndex, debounce: float = 0.5) -> None:
        self.contexts_dir = contexts_dir
        self.index = index
        self.debounce = debounce
        self._observer: Observer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: dict[Path, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Begin watching. Must be called from the event loop. Idempotent."""
        if self._observer is not None:
            return
        self.contexts_dir.mkdir(parents=True, exist_ok=True)
        self._loop = asyncio.get_running_loop()

        observer = Observer()
        observer.schedule(_MemoryFileHandler(self), str(self.contexts_dir), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s for memory changes", self.contexts_dir)

    async def stop(self) -> None:
        """Release the observer and drop pending events. Idempotent."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        await asyncio.to_thread(observer.join, 5)
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        self._loop = None
        logger.info("Stopped watching %s", self.contexts_dir)

    # ── Event filtering ──────────────────────────────────────

    def is_memory_file(self, path: Path) -> bool:
        if path.suffix != ".md":
            return False
        try:
            rel = path.relative_to(self.contexts_dir)
        except ValueError:
            return False
        return not any(part.startswith(".") for part in rel.parts)

    def dispatch(self, kind: str, path: Path) -> None:
        """Called from the observer thread."""
        loop = self._loop
        if loop is None or loop.is_closed() or not self.is_memory_file(path):
            return
        try:
            asyncio.run_coroutine_threadsafe(self._schedule(kind, path), loop)
        except RuntimeError as e:
            logger.debug("Event loop gone, dropping %s event for %s: %s", kind, path, e)

    async def _schedule(self, kind: str, path: Path) -> None:
        if self._observer is None:
            return
        if kind == "unlink":
            self.handle_unlink(path)
            return
        existing = self._pending.pop(path, None)
        if existing:
            existing.cancel()
        self._pending[path] = asyncio.create_task(self._debounced(kind, path))

    async def _debounced(self, kind: str, path: Path) -> None:
        try:
            await asyncio.sleep(self.debounce)
            if kind == "add":
                await self.handle_add(path)
            else:
                await self.handle_change(path)
        except asyncio.CancelledError:
            logger.debug("Superseded %s event for %s", kind, path)
        finally:
            if self._pending.get(path) is asyncio.current_task():
                del self._pending[path]

    # ── Handlers ─────────────────────────────────────────────

    def _load(self, path: Path):
        try:
            return parser.load(path)
        except FileNotFoundError:
            logger.debug("File vanished before indexing: %s", path)
        except ValidationError as e:
            logger.error("Error parsing %s: %s", path, e)
        return None

    async def handle_add(self, path: Path) -> None:
        memory = self._load(path)
        if memory is None:
            return
        try:
            await self.index.add(memory)
            logger.debug("Indexed new memory %s", memory.id)
        except Exception as e:
            logger.warning("Failed to index %s: %s", path, e)

    async def handle_change(self, path: Path) -> None:
        memory = self._load(path)
        if memory is None:
            return
        try:
            await self.index.update(memory)
            logger.debug("Re-indexed memory %s", memory.id)
        except Exception as e:
            logger.warning("Failed to re-index %s: %s", path, e)

    def handle_unlink(self, path: Path) -> str | None:
        prefix = id_prefix_from_filename(path.name)
        if prefix:
            logger.info("Memory file removed: %s (id prefix %s, index entry kept)", path.name, prefix)
        return prefix


class _MemoryFileHandler(FileSystemEventHandler):
    def __init__(self, reconciler: IndexReconciler) -> None:
        super().__init__()
        self.reconciler = reconciler

    @staticmethod
    def _path(raw) -> Path:
        return Path(os.fsdecode(raw))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.reconciler.dispatch("add", self._path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.reconciler.dispatch("change", self._path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.reconciler.dispatch("unlink", self._path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.reconciler.dispatch("unlink", self._path(event.src_path))
        self.reconciler.dispatch("add", self._path(event.dest_path))
