"""Shared schema keys to avoid magic strings across notelink modules."""

from __future__ import annotations

# Front-matter fields that may carry the source URL
K_URL = "url"
K_LINK = "link"
K_SOURCE = "source"
K_WEB_URL = "web_url"
K_ARTICLE_URL = "article_url"

# Idempotency marker
K_ARTICLE_PROCESSED = "article_processed"

# Search order for the source URL; first non-empty field wins.
K_URL_FIELD_PRIORITY = (K_URL, K_LINK, K_SOURCE, K_WEB_URL, K_ARTICLE_URL)
