"""Memory data model: metadata + markdown body + cached file location."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from llmem.errors import ValidationError

# Fields that never change after creation.
IMMUTABLE_FIELDS = frozenset({"id", "created"})


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_timestamp(value: Any, field_name: str) -> str:
    """Coerce a str/datetime/date into a normalized ISO-8601 UTC string.

    YAML loaders turn unquoted timestamps into datetime (or date) objects, so
    hand-edited files may hand us any of the three.
    """
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_timestamp(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return format_timestamp(datetime.fromisoformat(text))
        except ValueError:
            raise ValidationError(f"{field_name}: not an ISO-8601 timestamp: {value!r}") from None
    raise ValidationError(f"{field_name}: expected a timestamp, got {type(value).__name__}")


def _string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field_name}: expected a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _uuid(value: Any, field_name: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name}: not a UUID: {value!r}") from None


@dataclass
class MemoryMetadata:
    """Frontmatter of a memory file.

    ``type`` is a free-form slash-delimited path used both as taxonomy and as
    the directory the file was created in. Filtering on it is exact-match.
    """

    id: str
    title: str
    type: str
    tags: list[str] = field(default_factory=list)
    created: str = field(default_factory=utc_now)
    updated: str = field(default_factory=utc_now)
    expires: str | None = None
    relations: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryMetadata:
        """Validate raw frontmatter and build metadata from it."""
        if not isinstance(data, dict):
            raise ValidationError("frontmatter must be a mapping")
        missing = [k for k in ("id", "title", "type", "created", "updated") if data.get(k) in (None, "")]
        if missing:
            raise ValidationError(f"missing required field(s): {', '.join(missing)}")

        expires = data.get("expires")
        return cls(
            id=_uuid(data["id"], "id"),
            title=str(data["title"]),
            type=str(data["type"]),
            tags=_string_list(data.get("tags"), "tags"),
            created=normalize_timestamp(data["created"], "created"),
            updated=normalize_timestamp(data["updated"], "updated"),
            expires=normalize_timestamp(expires, "expires") if expires not in (None, "") else None,
            relations=_string_list(data.get("relations"), "relations"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Frontmatter mapping with timestamps normalized to ISO-8601 UTC."""
        data = asdict(self)
        data["created"] = normalize_timestamp(self.created, "created")
        data["updated"] = normalize_timestamp(self.updated, "updated")
        data["expires"] = normalize_timestamp(self.expires, "expires") if self.expires else None
        return data

    def merged(self, changes: dict[str, Any]) -> MemoryMetadata:
        """Shallow-merge ``changes``; ``id`` and ``created`` are kept as-is."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"unknown metadata field(s): {', '.join(sorted(unknown))}")
        updates = {k: v for k, v in changes.items() if k not in IMMUTABLE_FIELDS}
        if "tags" in updates:
            updates["tags"] = _string_list(updates["tags"], "tags")
        if "relations" in updates:
            updates["relations"] = _string_list(updates["relations"], "relations")
        return replace(self, **updates)


@dataclass
class Memory:
    """One stored memory.

    ``filepath`` caches where the file was written at creation. It is not
    recomputed when title or type change later.
    """

    metadata: MemoryMetadata
    content: str
    filepath: Path | None = None

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def type(self) -> str:
        return self.metadata.type

    @property
    def tags(self) -> list[str]:
        return self.metadata.tags
