"""Entry point: python -m llmem <command>

- "serve":            Daemon mode (index reconciler + background sync)
- "init":             Create the store and a welcome memory
- "sync":             Pull from and push to the remote once
- "reindex":          Rebuild the semantic index from the files
- "search <query>":   Print matching memories
"""

from __future__ import annotations

import asyncio
import logging
import sys

from llmem.config import LLMemConfig, load_config

WELCOME_TITLE = "Welcome to LLMem"
WELCOME_CONTENT = """\
# Welcome to LLMem

This is your personal memory store. You can use it to store:

- Personal information and preferences
- Project-specific context
- Knowledge and reference material
- Conversation history

## Getting Started

1. Memories are organized by type in the `contexts/` directory
2. Each memory is a markdown file with YAML frontmatter
3. Expose the memory tools to let an LLM read and write your memories
4. All changes are tracked in git for version history
"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_serve(config: LLMemConfig) -> None:
    from llmem.daemon import LLMemDaemon

    daemon = LLMemDaemon(config)
    asyncio.run(daemon.run())


async def _init(config: LLMemConfig) -> None:
    from llmem.core import LLMem

    llmem = LLMem(config)
    await llmem.initialize()
    existing = [m for m in await llmem.store.list(type="knowledge") if m.title == WELCOME_TITLE]
    if not existing:
        await llmem.store.create(
            WELCOME_TITLE, WELCOME_CONTENT, "knowledge", {"tags": ["meta", "help"]}
        )
    print(f"Memory store initialized at {config.store_path}")


async def _sync(config: LLMemConfig) -> None:
    from llmem.core import LLMem

    if not config.remote.url:
        print("No remote configured (set LLMEM_REMOTE_URL)", file=sys.stderr)
        sys.exit(1)
    await LLMem(config).sync()


async def _reindex(config: LLMemConfig) -> None:
    from llmem.core import LLMem

    count = await LLMem(config).reindex()
    print(f"Indexed {count} memories")


async def _search(config: LLMemConfig, query: str) -> None:
    from llmem.core import LLMem

    llmem = LLMem(config)
    await llmem.initialize()
    results = await llmem.store.search_with_scores(query)
    if not results:
        print("No matches.")
        return
    for r in results:
        print(f"{r.score:.3f}  [{r.match_type}]  {r.memory.title}  ({r.memory.type}, {r.memory.id})")


def _usage() -> None:
    print("Usage: python -m llmem [serve|init|sync|reindex|search <query>]")
    print("  serve     Daemon mode: index reconciler + background sync")
    print("  init      Create the store with a welcome memory")
    print("  sync      Pull from and push to the remote once")
    print("  reindex   Rebuild the semantic index")
    print("  search    Search memories")
    sys.exit(1)


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "serve"

    config = load_config()
    _setup_logging(config.log_level)

    if cmd == "serve":
        _run_serve(config)
    elif cmd == "init":
        asyncio.run(_init(config))
    elif cmd == "sync":
        asyncio.run(_sync(config))
    elif cmd == "reindex":
        asyncio.run(_reindex(config))
    elif cmd == "search" and len(sys.argv) > 2:
        asyncio.run(_search(config, " ".join(sys.argv[2:])))
    else:
        _usage()


if __name__ == "__main__":
    main()
