"""Filesystem-backed note storage rooted at a vault directory."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

from .errors import StorageFailure
from .notelink_config import NOTE_SUFFIX

logger = logging.getLogger(__name__)


class Vault:
    """Markdown notes under ``root``, addressed by vault-relative POSIX paths.

    Text is read and written as UTF-8 without newline translation so a note's
    line endings survive a round trip.
    """

    def __init__(self, root: Union[str, Path], active_note: Optional[str] = None) -> None:
        self.root = Path(root).resolve()
        self.active_note = active_note

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(str(path).replace("\\", "/").lstrip("/"))
        if not rel.parts:
            raise StorageFailure(str(path), "empty note path")
        target = (self.root / Path(*rel.parts)).resolve()
        if target != self.root and self.root not in target.parents:
            raise StorageFailure(str(path), "path escapes the vault root")
        return target

    def relative(self, target: Path) -> str:
        return target.resolve().relative_to(self.root).as_posix()

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except StorageFailure:
            return False

    def read(self, path: str) -> str:
        target = self._resolve(path)
        try:
            with target.open("r", encoding="utf-8", newline="") as fh:
                return fh.read()
        except OSError as exc:
            raise StorageFailure(path, f"read failed: {exc}") from exc

    def write(self, path: str, text: str) -> None:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageFailure(path, "note does not exist")
        try:
            with target.open("w", encoding="utf-8", newline="") as fh:
                fh.write(text)
        except OSError as exc:
            raise StorageFailure(path, f"write failed: {exc}") from exc

    def append(self, path: str, text: str) -> None:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageFailure(path, "note does not exist")
        try:
            with target.open("a", encoding="utf-8", newline="") as fh:
                fh.write(text)
        except OSError as exc:
            raise StorageFailure(path, f"append failed: {exc}") from exc

    def create(self, path: str, text: str) -> str:
        """Create a new note; refuses to overwrite. Returns the relative path."""

        target = self._resolve(path)
        if target.exists():
            raise StorageFailure(path, "note already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("x", encoding="utf-8", newline="") as fh:
                fh.write(text)
        except OSError as exc:
            raise StorageFailure(path, f"create failed: {exc}") from exc
        logger.info("created note %s", target)
        return self.relative(target)

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageFailure(path, "note does not exist")
        try:
            target.unlink()
        except OSError as exc:
            raise StorageFailure(path, f"delete failed: {exc}") from exc
        logger.info("deleted note %s", target)

    def list_documents(self, prefix: str = "") -> List[str]:
        """Sorted relative paths of notes whose path starts with ``prefix``."""

        needle = (prefix or "").replace("\\", "/").lstrip("/")
        paths: List[str] = []
        if not self.root.is_dir():
            return paths
        for candidate in self.root.rglob(f"*{NOTE_SUFFIX}"):
            if not candidate.is_file():
                continue
            rel = candidate.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            rel_posix = rel.as_posix()
            if rel_posix.startswith(needle):
                paths.append(rel_posix)
        return sorted(paths)

    def get_active_document(self) -> Optional[str]:
        if not self.active_note:
            return None
        if not self.exists(self.active_note):
            logger.warning("active note %s not found in %s", self.active_note, self.root)
            return None
        return self.relative(self._resolve(self.active_note))


__all__ = ["Vault"]
