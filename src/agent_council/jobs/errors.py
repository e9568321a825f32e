"""Error kinds raised by job operations."""

from __future__ import annotations

from pathlib import Path


class CouncilJobError(RuntimeError):
    """Base error for structural job failures that abort a command."""


class JobNotFoundError(CouncilJobError):
    """Job directory or one of its required components is missing."""

    def __init__(self, what: str, path: Path) -> None:
        super().__init__(f"{what} not found: {path}")
        self.path = path


class InvalidArgumentError(CouncilJobError, ValueError):
    """Malformed caller-supplied option."""
