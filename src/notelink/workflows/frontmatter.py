"""Front-matter block location, parsing and serialization.

Notes may open with a metadata block delimited by ``---`` lines::

    ---
    url: https://example.com/post
    article_processed: false
    ---
    body...

Only a flat ``key: value`` subset of YAML is understood. Nested lists,
mappings and multi-line scalars are skipped by the parser and are therefore
lost if the block is re-serialized. This is a stated limitation of the
line-oriented reader, not something callers should work around.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Tuple, Union

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool]

FRONTMATTER_DELIMITER = "---"
# Upper bound on lines scanned for the closing delimiter.
FRONTMATTER_MAX_LINES = 500

_LINE_RE = re.compile(r"^(?P<key>[A-Za-z0-9_][\w .\-]*?)\s*:(?:\s+(?P<value>.*))?$")
_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?$")


@dataclass(frozen=True)
class FrontmatterInfo:
    """Bounds of the leading metadata block.

    ``[start, end)`` covers both delimiter lines but not the line break that
    follows the closing delimiter; ``content_start`` is the offset of the body.
    """

    exists: bool
    start: int = 0
    end: int = 0
    content_start: int = 0


_MISSING = FrontmatterInfo(exists=False)


def _iter_lines(text: str, limit: int) -> Iterator[Tuple[int, str, int]]:
    """Yield ``(offset, line, next_offset)`` without the trailing ``\\n``."""

    pos = 0
    total = len(text)
    count = 0
    while pos < total and count < limit:
        newline = text.find("\n", pos)
        if newline == -1:
            yield pos, text[pos:], total
            return
        yield pos, text[pos:newline], newline + 1
        pos = newline + 1
        count += 1


def _is_delimiter(line: str) -> bool:
    return line.rstrip() == FRONTMATTER_DELIMITER


def locate_frontmatter(text: str) -> FrontmatterInfo:
    """Return the bounds of the metadata block opening ``text``, if any."""

    if not text or not text.startswith(FRONTMATTER_DELIMITER):
        return _MISSING
    lines = _iter_lines(text, FRONTMATTER_MAX_LINES + 1)
    first = next(lines, None)
    if first is None or not _is_delimiter(first[1]):
        return _MISSING
    for offset, line, next_offset in lines:
        if _is_delimiter(line):
            end = offset + len(line.rstrip("\r"))
            return FrontmatterInfo(exists=True, start=0, end=end, content_start=next_offset)
    return _MISSING


def coerce_scalar(raw: str) -> Scalar:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def _parse_lines(block_text: str) -> Dict[str, Scalar]:
    mapping: Dict[str, Scalar] = {}
    for raw_line in block_text.splitlines():
        line = raw_line.rstrip()
        if not line.strip() or _is_delimiter(line):
            continue
        if line[0] in {" ", "\t", "-", "#"}:
            continue
        match = _LINE_RE.match(line)
        if not match:
            continue
        mapping[match.group("key")] = coerce_scalar(match.group("value") or "")
    return mapping


def parse_frontmatter(block_text: str) -> Dict[str, Scalar]:
    """Parse a metadata block (with or without delimiters) into a flat dict.

    Malformed lines are skipped. Metadata is advisory, so an unexpected
    failure yields an empty mapping instead of raising.
    """

    try:
        return _parse_lines(block_text or "")
    except Exception:
        logger.debug("front-matter parse failed; treating as empty", exc_info=True)
        return {}


def format_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, str):
        text = value.replace("\r", " ").replace("\n", " ")
        # Quote only strings the parser would otherwise read back differently.
        if coerce_scalar(text) != text:
            return f'"{text}"'
        return text
    return str(value)


def serialize_frontmatter(mapping: Mapping[str, object]) -> str:
    """Render ``mapping`` as a delimited block without a trailing newline."""

    lines = [FRONTMATTER_DELIMITER]
    for key, value in mapping.items():
        lines.append(f"{key}: {format_scalar(value)}".rstrip())
    lines.append(FRONTMATTER_DELIMITER)
    return "\n".join(lines)


def split_frontmatter(text: str) -> Tuple[FrontmatterInfo, Dict[str, Scalar], str]:
    """Return ``(info, mapping, body)`` for a note."""

    info = locate_frontmatter(text)
    if not info.exists:
        return info, {}, text
    mapping = parse_frontmatter(text[info.start:info.end])
    return info, mapping, text[info.content_start:]


def read_frontmatter(text: str) -> Dict[str, Scalar]:
    return split_frontmatter(text)[1]


__all__ = [
    "FRONTMATTER_DELIMITER",
    "FRONTMATTER_MAX_LINES",
    "FrontmatterInfo",
    "Scalar",
    "coerce_scalar",
    "format_scalar",
    "locate_frontmatter",
    "parse_frontmatter",
    "read_frontmatter",
    "serialize_frontmatter",
    "split_frontmatter",
]
