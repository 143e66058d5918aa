"""Shared helper functions used by the notelink workflows."""

from __future__ import annotations

import os
import re
from typing import Optional
from urllib.parse import urlparse

_UNSAFE_TITLE_CHARS = re.compile(r'[\\/:*?"<>|#^\[\]\x00-\x1f]+')


def idna_normalize(host: str) -> str:
    """Return a lowercase, IDNA-normalized host name."""

    h = (host or "").strip().rstrip(".").lower()
    if not h:
        return ""
    try:
        h = h.encode("idna").decode("ascii")
    except UnicodeError:
        pass
    return h


def proxy_base_url(url: str) -> str:
    """Return ``scheme://host[:port]`` for ``url``.

    Raises ValueError when the URL has no scheme or host.
    """

    parsed = urlparse((url or "").strip())
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"cannot derive proxy base from {url!r}")
    host = idna_normalize(parsed.hostname or "")
    netloc = f"{host}:{parsed.port}" if parsed.port else host
    return f"{parsed.scheme.lower()}://{netloc}"


def last_path_segment(url: str) -> Optional[str]:
    """Last non-empty path segment of ``url`` (``None`` when the path is empty)."""

    path = urlparse((url or "").strip()).path
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None


def sanitize_note_title(title: str, *, max_length: int = 120) -> str:
    """Turn free text into a file-name-safe note title."""

    cleaned = _UNSAFE_TITLE_CHARS.sub(" ", title or "")
    cleaned = " ".join(cleaned.split()).strip(" .")
    return cleaned[:max_length].rstrip(" .")


def env_int(name: str, default: int) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def sanity_check() -> None:
    assert idna_normalize("ExAmple.COM.") == "example.com"
    assert proxy_base_url("https://R.Jina.ai/https://x.test/a") == "https://r.jina.ai"
    assert last_path_segment("https://youtu.be/abc123/") == "abc123"
    assert sanitize_note_title("a/b: c?") == "a b c"


sanity_check()

__all__ = [
    "idna_normalize",
    "proxy_base_url",
    "last_path_segment",
    "sanitize_note_title",
    "env_int",
    "env_float",
    "env_str",
    "sanity_check",
]
