"""Markdown + YAML frontmatter codec for memory files.

File layout::

    ---
    id: 2c1f...
    title: Trip to Kyoto
    type: travel/japan/2024
    tags: [food, temples]
    created: '2024-04-02T09:13:44.120Z'
    updated: '2024-04-02T09:13:44.120Z'
    expires: null
    relations: []
    ---

    Markdown body...
"""

from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from llmem.errors import ValidationError
from llmem.memory.models import Memory, MemoryMetadata, utc_now


def parse(text: str, filepath: Path | None = None) -> Memory:
    """Parse a memory file. Raises ValidationError on malformed frontmatter."""
    try:
        post = frontmatter.loads(text)
    except (yaml.YAMLError, TypeError, ValueError) as e:
        raise ValidationError(f"invalid YAML frontmatter: {e}") from e
    metadata = MemoryMetadata.from_dict(dict(post.metadata))
    return Memory(metadata=metadata, content=post.content.strip(), filepath=filepath)


def stringify(memory: Memory) -> str:
    """Render a memory as frontmatter + blank line + body."""
    post = frontmatter.Post(memory.content, **memory.metadata.to_dict())
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def load(path: Path) -> Memory:
    try:
        text = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"not valid UTF-8: {e}") from e
    return parse(text, filepath=path)


def new_memory(
    title: str,
    content: str,
    type: str,
    metadata: dict[str, Any] | None = None,
) -> Memory:
    """Build a fresh memory with a new id and matching created/updated stamps."""
    now = utc_now()
    base = MemoryMetadata(id=str(uuid.uuid4()), title=title, type=type, created=now, updated=now)
    if metadata:
        base = base.merged(metadata)
    return Memory(metadata=base, content=content)


def extract_summary(content: str, max_length: int = 200) -> str:
    """Plain-text preview of a markdown body, cut at a word boundary."""
    text = re.sub(r"^#+\s+", "", content, flags=re.MULTILINE)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"[*_~`]", "", text)
    text = re.sub(r"\n+", " ", text).strip()

    if len(text) <= max_length:
        return text

    truncated = text[: max_length - 3]
    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "..."
    return truncated + "..."
