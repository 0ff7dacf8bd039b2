"""Configuration loading from environment variables and llmem.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_STORE_PATH = Path.home() / "context-store"
_CONFIG_FILENAME = "llmem.toml"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return default


def _env_bool(name: str, fallback: object, default: bool) -> bool:
    return parse_bool(os.getenv(name, fallback), default)


@dataclass
class RemoteConfig:
    """Remote git mirror. An empty url means local-only."""

    url: str | None = None
    auth_type: str = "ssh"
    auth_token: str | None = None


@dataclass
class SyncConfig:
    auto_sync: bool = True
    interval: int = 5  # minutes
    timeout: int = 120  # seconds, network git calls


@dataclass
class IndexConfig:
    """Semantic index backend: "chroma" or "none"."""

    backend: str = "none"
    auto_index: bool = True
    path: Path | None = None
    collection: str = "memories"
    embedding_model: str = "all-MiniLM-L6-v2"


@dataclass
class LLMemConfig:
    """Top-level LLMem configuration."""

    store_path: Path = _DEFAULT_STORE_PATH
    auto_commit: bool = True
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    log_level: str = "INFO"

    @property
    def vector_db_path(self) -> Path:
        return self.index.path or self.store_path / ".llmem" / "vectors"


def _read_file(config_path: Path | None) -> dict:
    if config_path and config_path.exists():
        return tomllib.loads(config_path.read_text())
    for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".llmem" / _CONFIG_FILENAME]:
        if candidate.exists():
            return tomllib.loads(candidate.read_text())
    return {}


def load_config(config_path: Path | None = None) -> LLMemConfig:
    """Load configuration from environment variables and optional llmem.toml.

    Priority: environment variables > llmem.toml > defaults.
    """
    file_data = _read_file(config_path)
    remote_data = file_data.get("remote", {})
    sync_data = file_data.get("sync", {})
    index_data = file_data.get("index", {})

    store_path = Path(
        os.getenv("LLMEM_STORE_PATH", file_data.get("store_path", str(_DEFAULT_STORE_PATH)))
    ).expanduser()
    vector_path = os.getenv("LLMEM_VECTOR_DB_PATH", index_data.get("path"))

    auth_type = os.getenv("LLMEM_AUTH_TYPE", remote_data.get("auth_type", "ssh")).lower()
    if auth_type not in ("ssh", "token"):
        raise ValueError(f"Unknown auth type: {auth_type} (expected 'ssh' or 'token')")

    backend = os.getenv("LLMEM_INDEX_BACKEND", index_data.get("backend", "none")).lower()
    if backend not in ("chroma", "none"):
        raise ValueError(f"Unknown index backend: {backend} (expected 'chroma' or 'none')")

    return LLMemConfig(
        store_path=store_path,
        auto_commit=_env_bool("LLMEM_AUTO_COMMIT", file_data.get("auto_commit"), True),
        remote=RemoteConfig(
            url=os.getenv("LLMEM_REMOTE_URL", remote_data.get("url")) or None,
            auth_type=auth_type,
            auth_token=os.getenv("LLMEM_AUTH_TOKEN", remote_data.get("auth_token")) or None,
        ),
        sync=SyncConfig(
            auto_sync=_env_bool("LLMEM_AUTO_SYNC", sync_data.get("auto_sync"), True),
            interval=int(os.getenv("LLMEM_SYNC_INTERVAL", sync_data.get("interval", 5))),
            timeout=int(os.getenv("LLMEM_GIT_TIMEOUT", sync_data.get("timeout", 120))),
        ),
        index=IndexConfig(
            backend=backend,
            auto_index=_env_bool("LLMEM_AUTO_INDEX", index_data.get("auto_index"), True),
            path=Path(vector_path).expanduser() if vector_path else None,
            collection=index_data.get("collection", "memories"),
            embedding_model=os.getenv(
                "LLMEM_EMBEDDING_MODEL", index_data.get("embedding_model", "all-MiniLM-L6-v2")
            ),
        ),
        log_level=os.getenv("LLMEM_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
