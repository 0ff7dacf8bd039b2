"""LLMem: a local-first, git-versioned memory store with hybrid search."""

__version__ = "0.1.0"
