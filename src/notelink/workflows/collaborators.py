"""Interfaces of the services the processor depends on, plus a console notifier."""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import typer

logger = logging.getLogger(__name__)


class NoteStorage(Protocol):
    """Read/write access to notes addressed by vault-relative paths."""

    def read(self, path: str) -> str: ...

    def write(self, path: str, text: str) -> None: ...

    def append(self, path: str, text: str) -> None: ...

    def create(self, path: str, text: str) -> str: ...

    def delete(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...

    def list_documents(self, prefix: str = "") -> List[str]: ...

    def get_active_document(self) -> Optional[str]: ...


class ArticleSource(Protocol):
    """Turns a URL into rendered markdown; ``None`` signals failure."""

    def fetch_rendered_markdown(self, url: str) -> Optional[str]: ...

    def fetch_rendered_markdown_batch(self, urls: str) -> None: ...


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class ConsoleNotifier:
    """Echo notifications to the terminal."""

    def __init__(self, err: bool = False) -> None:
        self.err = err

    def notify(self, message: str) -> None:
        logger.info("notice: %s", message)
        typer.echo(message, err=self.err)


class NullNotifier:
    def notify(self, message: str) -> None:
        logger.debug("notice (dropped): %s", message)


__all__ = ["ArticleSource", "ConsoleNotifier", "NoteStorage", "Notifier", "NullNotifier"]
