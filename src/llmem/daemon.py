"""Daemon process: keeps the index and remote in step until signalled.

Usage: python -m llmem serve

Manages:
- Index reconciler (out-of-band file edits)
- Background pull from the remote
- PID file (one daemon per store)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from llmem.config import LLMemConfig, load_config
from llmem.core import LLMem

logger = logging.getLogger(__name__)


class LLMemDaemon:
    """Always-on daemon process."""

    def __init__(self, config: LLMemConfig | None = None, llmem: LLMem | None = None) -> None:
        self.config = config or load_config()
        self.llmem = llmem or LLMem(self.config)
        self._shutdown_event = asyncio.Event()

    @property
    def pid_file(self) -> Path:
        return self.config.store_path / ".llmem" / "llmem.pid"

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.pid_file.exists():
            self.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.pid_file.exists():
            return
        try:
            pid = int(self.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"LLMem daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _teardown_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._setup_signals()

        logger.info("LLMem daemon starting (store=%s)", self.config.store_path)
        try:
            await self.llmem.start()
            self._write_pid()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.llmem.stop()
            self._remove_pid()
            self._teardown_signals()
            logger.info("LLMem daemon stopped.")
