"""HTML decoding and text cleanup for fetched articles.

Deterministic and provider-agnostic; used by the article fetcher before and
after markdown conversion.
"""

from __future__ import annotations

import re
import unicodedata
from typing import List, Mapping, Optional

import ftfy
from bs4 import BeautifulSoup
from charset_normalizer import from_bytes

__all__ = [
    "decode_bytes_auto",
    "minimal_text_fix",
    "extract_title",
    "html_to_markdown_fallback",
]

_ZERO_WIDTH = {0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF}
_REMOVE = {0x00, 0x0B, 0x0C}
_C1_TO_SPACE = {cp: " " for cp in range(0x80, 0xA0)}
_TRANSLATE = {**{cp: None for cp in _ZERO_WIDTH | _REMOVE}, **_C1_TO_SPACE}

_CONTENT_SELECTORS = (
    "article",
    "main",
    "[role='main']",
    "[class*='content']",
    "[id*='content']",
    "[class*='article']",
    "[class*='post']",
)


def decode_bytes_auto(body: bytes, headers: Optional[Mapping[str, str]] = None) -> str:
    """Decode HTTP bytes using charset header hints with charset-normalizer fallback."""

    enc = None
    if headers:
        ct = headers.get("content-type", "") or headers.get("Content-Type", "")
        match = re.search(r"charset=([^\s;]+)", ct, re.I)
        if match:
            enc = match.group(1).strip(' "\'').lower()
    if enc:
        try:
            return body.decode(enc, errors="replace")
        except LookupError:
            pass
    result = from_bytes(body).best()
    if result is None:
        return body.decode("utf-8", errors="replace")
    return str(result)


def minimal_text_fix(text: str) -> str:
    """Fix mojibake and strip zero-width/control noise without collapsing structure."""

    if not text:
        return ""
    normalized = unicodedata.normalize("NFC", text)
    fixed = ftfy.fix_text(normalized, normalization="NFC")
    return fixed.translate(_TRANSLATE)


def extract_title(html: str) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "lxml")
    for node in (soup.find("h1"), soup.title):
        if node is None:
            continue
        title = node.get_text(" ", strip=True)
        if title:
            return title
    return None


def html_to_markdown_fallback(html: str) -> str:
    """Heuristic content region selection rendered as plain paragraphs."""

    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript", "nav", "footer", "header"]):
        tag.decompose()

    root = None
    for selector in _CONTENT_SELECTORS:
        nodes = soup.select(selector)
        if nodes:
            root = nodes[0]
            break
    if root is None:
        root = soup.body or soup

    blocks: List[str] = []
    for node in root.find_all(["h1", "h2", "h3", "p", "li", "pre", "blockquote"])[:800]:
        text = node.get_text(" ", strip=True)
        if not text:
            continue
        if node.name in {"h1", "h2", "h3"}:
            blocks.append(f"{'#' * int(node.name[1])} {text}")
        elif node.name == "li":
            blocks.append(f"- {text}")
        elif node.name == "blockquote":
            blocks.append(f"> {text}")
        else:
            blocks.append(text)
    if not blocks:
        text = root.get_text(" ", strip=True)
        return text
    return "\n\n".join(blocks)
