"""Locate the source URL a note points at."""

from __future__ import annotations

import re
from typing import Mapping, Optional

from ..core.keys import K_URL_FIELD_PRIORITY
from .frontmatter import split_frontmatter

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_BARE_URL_RE = re.compile(r"(https?://[^\s]+)")


def extract_url_from_mapping(mapping: Mapping[str, object]) -> Optional[str]:
    """Return the first non-empty URL field, searched in priority order."""

    for field in K_URL_FIELD_PRIORITY:
        value = mapping.get(field)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def extract_url_from_frontmatter(text: str) -> Optional[str]:
    return extract_url_from_mapping(split_frontmatter(text)[1])


def extract_url_from_content(body: str) -> Optional[str]:
    """First markdown link target, else the first bare http(s) token."""

    match = _MARKDOWN_LINK_RE.search(body or "")
    if match and match.group(2).strip():
        return match.group(2).strip()
    match = _BARE_URL_RE.search(body or "")
    if match:
        return match.group(1)
    return None


def extract_url(text: str) -> Optional[str]:
    """Best-effort source URL for a note, or ``None``.

    Front-matter fields win over the body; inside the body a markdown link
    wins over a bare URL. Values are returned as found, without validation.
    """

    info, mapping, body = split_frontmatter(text or "")
    if info.exists:
        url = extract_url_from_mapping(mapping)
        if url:
            return url
    return extract_url_from_content(body)


__all__ = [
    "extract_url",
    "extract_url_from_content",
    "extract_url_from_frontmatter",
    "extract_url_from_mapping",
]
