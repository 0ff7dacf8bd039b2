"""Exception types shared across llmem."""

from __future__ import annotations


class LLMemError(Exception):
    """Base class for llmem errors."""


class ValidationError(LLMemError, ValueError):
    """Memory metadata is missing fields or has malformed values."""


class IndexUnavailableError(LLMemError):
    """The semantic index backend is not available."""


class GitError(LLMemError):
    """A git subprocess exited non-zero or timed out."""

    def __init__(self, args: list[str], returncode: int | None, output: str) -> None:
        self.command = list(args)
        self.returncode = returncode
        self.output = output
        status = "timed out" if returncode is None else f"exit {returncode}"
        super().__init__(f"git {' '.join(args)} failed ({status}): {output.strip()}")


class SyncError(LLMemError):
    """Replacing local content with the remote repository failed."""


class ConflictResolutionError(LLMemError):
    """Merge conflicts could not be resolved, even by resetting to the remote."""
