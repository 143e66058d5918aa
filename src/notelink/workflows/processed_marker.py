"""Idempotent ``article_processed`` marker handling."""

from __future__ import annotations

import logging

from ..core.keys import K_ARTICLE_PROCESSED
from .frontmatter import FRONTMATTER_DELIMITER, serialize_frontmatter, split_frontmatter

logger = logging.getLogger(__name__)


def is_processed(text: str) -> bool:
    """True only when the metadata block carries ``article_processed: true``."""

    _, mapping, _ = split_frontmatter(text or "")
    return mapping.get(K_ARTICLE_PROCESSED) is True


def set_processed_marker(text: str) -> str:
    """Return ``text`` with ``article_processed: true`` in its metadata block.

    - no block: a new block holding only the marker is placed before the body;
    - marker already true: ``text`` is returned untouched;
    - otherwise every parsed field is re-serialized with the marker set and
      spliced over the old block, leaving the body verbatim.

    Marker mutation is advisory: on an unexpected failure the original text
    is returned and the failure is logged.
    """

    text = text or ""
    try:
        info, mapping, _ = split_frontmatter(text)
        if not info.exists:
            return (
                f"{FRONTMATTER_DELIMITER}\n{K_ARTICLE_PROCESSED}: true\n{FRONTMATTER_DELIMITER}\n\n{text}"
            )
        if mapping.get(K_ARTICLE_PROCESSED) is True:
            return text
        mapping[K_ARTICLE_PROCESSED] = True
        return text[: info.start] + serialize_frontmatter(mapping) + text[info.end:]
    except Exception:
        logger.exception("failed to set %s; leaving note unchanged", K_ARTICLE_PROCESSED)
        return text


__all__ = ["is_processed", "set_processed_marker"]
