"""Fetch a URL and render it as markdown."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests
import trafilatura

from .html_normalize import decode_bytes_auto, extract_title, html_to_markdown_fallback, minimal_text_fix
from .notelink_config import (
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_USER_AGENT,
    MARKDOWN_CONTENT_TYPES,
)

logger = logging.getLogger(__name__)

BatchSink = Callable[[str, str], None]


@dataclass
class ArticleFetchConfig:
    """Configuration parameters for article fetching."""

    timeout: float = DEFAULT_FETCH_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE
    min_chars: int = 1
    include_tables: bool = True


def split_url_lines(urls: str) -> List[str]:
    return [line.strip() for line in (urls or "").splitlines() if line.strip()]


class ArticleFetcher:
    """Synchronous fetcher: one request in flight at a time."""

    def __init__(
        self,
        config: Optional[ArticleFetchConfig] = None,
        session: Optional[requests.Session] = None,
        batch_sink: Optional[BatchSink] = None,
    ) -> None:
        self.config = config or ArticleFetchConfig()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": self.config.user_agent,
                "Accept-Language": self.config.accept_language,
            }
        )
        self.batch_sink = batch_sink

    def _render(self, url: str, body: bytes, headers) -> str:
        content_type = (headers.get("content-type") or "").split(";")[0].strip().lower()
        text = decode_bytes_auto(body, headers)
        if content_type in MARKDOWN_CONTENT_TYPES:
            return text
        markdown = trafilatura.extract(
            text,
            url=url,
            output_format="markdown",
            include_comments=False,
            include_tables=self.config.include_tables,
            favor_recall=True,
        )
        if not markdown or not markdown.strip():
            markdown = html_to_markdown_fallback(text)
        if markdown and not markdown.lstrip().startswith("# "):
            title = extract_title(text)
            if title:
                markdown = f"# {title}\n\n{markdown.strip()}"
        return markdown or ""

    def fetch_rendered_markdown(self, url: str) -> Optional[str]:
        """Return rendered markdown for ``url`` or ``None`` on any failure."""

        try:
            resp = self.session.get(url, timeout=self.config.timeout, allow_redirects=True)
        except requests.RequestException as exc:
            logger.warning("fetch failed for %s: %s", url, exc)
            return None
        if resp.status_code != 200:
            logger.warning("fetch for %s returned HTTP %s", url, resp.status_code)
            return None
        try:
            markdown = self._render(url, resp.content or b"", resp.headers)
        except Exception:
            logger.exception("rendering failed for %s", url)
            return None
        markdown = minimal_text_fix(markdown).strip()
        if len(markdown) < max(1, self.config.min_chars):
            logger.info("no usable content at %s", url)
            return None
        return markdown

    def fetch_rendered_markdown_batch(self, urls: str) -> None:
        """Fetch newline-separated URLs in order and hand results to the sink."""

        for url in split_url_lines(urls):
            markdown = self.fetch_rendered_markdown(url)
            if markdown is None:
                continue
            if self.batch_sink is None:
                logger.info("fetched %s (%d chars); no batch sink configured", url, len(markdown))
                continue
            try:
                self.batch_sink(url, markdown)
            except Exception:
                logger.exception("batch sink failed for %s", url)


__all__ = ["ArticleFetchConfig", "ArticleFetcher", "BatchSink", "split_url_lines"]
