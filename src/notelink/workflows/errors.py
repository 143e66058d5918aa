"""Exceptions raised across notelink workflows."""

from __future__ import annotations


class NotelinkError(Exception):
    """Base class for notelink errors."""


class StorageFailure(NotelinkError):
    """A note could not be read, written or created."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class RuleConfigError(NotelinkError):
    """The transformation rule file is missing, unreadable or invalid."""


__all__ = ["NotelinkError", "StorageFailure", "RuleConfigError"]
