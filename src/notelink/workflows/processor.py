"""Per-note processing: extract URL, rewrite, fetch, merge, mark.

``DocumentProcessor.process_one`` is the unit of work. It never raises for
per-note problems; storage errors and unexpected exceptions are logged and
turned into a ``failed`` outcome so a batch keeps going. Notes are processed
strictly one after another, so marker writes never race a read of the same
note and the fetch collaborator sees a single request at a time.

A note is only modified after its article content has been fetched. In
append mode with tracking, the article section and the processed marker are
committed in one write. In create mode a new note whose source cannot be
marked is deleted again.
"""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

from ..core.keys import K_ARTICLE_PROCESSED, K_SOURCE
from .collaborators import ArticleSource, NoteStorage, Notifier, NullNotifier
from .frontmatter import serialize_frontmatter
from .link_utils import last_path_segment, sanitize_note_title
from .notelink_config import ARTICLE_SEPARATOR, CREATED_NOTE_SUFFIX, NOTE_SUFFIX
from .processed_marker import is_processed, set_processed_marker
from .url_extract import extract_url
from .url_transform import TransformationConfig, TransformationResult, UrlTransformer

logger = logging.getLogger(__name__)

MODE_APPEND = "append"
MODE_CREATE = "create"
MODES = (MODE_APPEND, MODE_CREATE)

STATUS_PROCESSED = "processed"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

REASON_ALREADY_PROCESSED = "already_processed"
REASON_NO_URL = "no_url_found"
REASON_FETCH_FAILED = "fetch_failed"
REASON_ERROR = "error"

_URL_LINE_RE = re.compile(r"^https?://", re.I)
_HEADING_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.M)


@dataclass
class Outcome:
    path: str
    status: str
    url: Optional[str] = None
    transformation: Optional[TransformationResult] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    created_path: Optional[str] = None

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status,
            "url": self.url,
            "transformation": self.transformation.to_dict() if self.transformation else None,
            "reason": self.reason,
            "error": self.error,
            "created_path": self.created_path,
        }


@dataclass
class BatchSummary:
    processed_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    outcomes: List[Outcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.processed_count + self.skipped_count + self.failed_count

    def record(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == STATUS_PROCESSED:
            self.processed_count += 1
        elif outcome.status == STATUS_SKIPPED:
            self.skipped_count += 1
        else:
            self.failed_count += 1

    def message(self) -> str:
        return (
            f"Completed: {self.processed_count} processed, "
            f"{self.skipped_count} skipped (already processed), "
            f"{self.failed_count} failed"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": {
                "total": self.total,
                "processed": self.processed_count,
                "skipped": self.skipped_count,
                "failed": self.failed_count,
            },
            "items": [outcome.to_dict() for outcome in self.outcomes],
        }


@dataclass
class ProcessorOptions:
    # Folder for notes created in create mode; None keeps the source note's folder.
    output_folder: Optional[str] = None
    separator: str = ARTICLE_SEPARATOR


def _join(folder: Optional[str], name: str) -> str:
    folder = (folder or "").strip("/")
    return f"{folder}/{name}" if folder else name


def _parent_folder(path: str) -> str:
    parent = PurePosixPath(path).parent.as_posix()
    return "" if parent == "." else parent


def article_title(markdown: str) -> Optional[str]:
    match = _HEADING_RE.search(markdown or "")
    if not match:
        return None
    return sanitize_note_title(match.group(1)) or None


class DocumentProcessor:
    """Runs notes through extraction, rewriting, fetching and merging."""

    def __init__(
        self,
        storage: NoteStorage,
        articles: ArticleSource,
        notifier: Optional[Notifier] = None,
        transformer: Optional[UrlTransformer] = None,
        options: Optional[ProcessorOptions] = None,
    ) -> None:
        self.storage = storage
        self.articles = articles
        self.notifier = notifier or NullNotifier()
        self.transformer = transformer or UrlTransformer(TransformationConfig())
        self.options = options or ProcessorOptions()
        # fetched URL -> URL the user listed; only populated during process_url_list
        self._batch_origins: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def process_one(self, path: str, mode: str = MODE_APPEND, track_processed: bool = False) -> Outcome:
        if mode not in MODES:
            raise ValueError(f"unknown mode {mode!r}; expected one of {', '.join(MODES)}")
        outcome = Outcome(path=path, status=STATUS_FAILED)
        try:
            self._process(outcome, mode, track_processed)
        except Exception as exc:
            logger.exception("error processing %s", path)
            outcome.status = STATUS_FAILED
            outcome.reason = REASON_ERROR
            outcome.error = f"{type(exc).__name__}: {exc}"
        return outcome

    def _process(self, outcome: Outcome, mode: str, track_processed: bool) -> None:
        path = outcome.path
        text = self.storage.read(path)
        if track_processed and is_processed(text):
            logger.info("skipping already processed note %s", path)
            outcome.status = STATUS_SKIPPED
            outcome.reason = REASON_ALREADY_PROCESSED
            return

        url = extract_url(text)
        if not url:
            logger.warning("no URL found in %s", path)
            outcome.reason = REASON_NO_URL
            return
        outcome.url = url
        logger.info("extracted URL from %s: %s", path, url)

        transformation = self.transformer.transform(url)
        outcome.transformation = transformation
        if transformation.rewritten:
            logger.info("rewrote %s -> %s (rule %s)", url, transformation.url, transformation.applied_rule)

        markdown = self.articles.fetch_rendered_markdown(transformation.url)
        if not markdown or not markdown.strip():
            logger.warning("failed to fetch content for %s from %s", path, transformation.url)
            outcome.reason = REASON_FETCH_FAILED
            return

        if mode == MODE_APPEND:
            addition = self.options.separator + markdown.strip() + "\n"
            if track_processed:
                # Mark before appending: the separator's `---` line must not close
                # an unterminated opening delimiter. One write for both.
                self.storage.write(path, set_processed_marker(text) + addition)
            else:
                self.storage.append(path, addition)
        else:
            folder = self.options.output_folder
            if folder is None:
                folder = _parent_folder(path)
            fallback = f"{PurePosixPath(path).stem}{CREATED_NOTE_SUFFIX}"
            created = self._write_article_note(folder, url, markdown, fallback)
            if track_processed:
                marked = set_processed_marker(text)
                if marked != text:
                    try:
                        self.storage.write(path, marked)
                    except Exception:
                        self._discard(created)
                        raise
            outcome.created_path = created
        outcome.status = STATUS_PROCESSED

    def _discard(self, path: str) -> None:
        """Remove a note created earlier in a unit of work that did not complete."""

        try:
            self.storage.delete(path)
        except Exception:
            logger.exception("could not roll back created note %s", path)
        else:
            logger.info("rolled back created note %s", path)

    def _unique_note_path(self, folder: Optional[str], title: str) -> str:
        candidate = _join(folder, f"{title}{NOTE_SUFFIX}")
        if not self.storage.exists(candidate):
            return candidate
        for idx in itertools.count(1):
            candidate = _join(folder, f"{title} {idx}{NOTE_SUFFIX}")
            if not self.storage.exists(candidate):
                return candidate
        raise AssertionError("unreachable")  # pragma: no cover

    def _write_article_note(self, folder: Optional[str], source_url: str, markdown: str, fallback_title: str) -> str:
        title = article_title(markdown) or sanitize_note_title(fallback_title) or "Untitled article"
        target = self._unique_note_path(folder, title)
        header = serialize_frontmatter({K_SOURCE: source_url, K_ARTICLE_PROCESSED: True})
        return self.storage.create(target, f"{header}\n\n{markdown.strip()}\n")

    def process_batch(
        self,
        paths: Iterable[str],
        mode: str = MODE_APPEND,
        track_processed: bool = True,
    ) -> BatchSummary:
        """Process notes in the given order, one at a time."""

        summary = BatchSummary()
        for path in paths:
            summary.record(self.process_one(path, mode, track_processed))
        logger.info(
            "batch done: %d processed, %d skipped, %d failed",
            summary.processed_count,
            summary.skipped_count,
            summary.failed_count,
        )
        return summary

    # ------------------------------------------------------------------
    # Commands (one notification per terminal outcome)
    # ------------------------------------------------------------------

    def describe(self, outcome: Outcome) -> str:
        if outcome.status == STATUS_PROCESSED:
            if outcome.created_path:
                return f"Created note {outcome.created_path} from: {outcome.url}"
            return f"Successfully appended article content to: {outcome.name}"
        if outcome.status == STATUS_SKIPPED:
            return f"Skipped already processed file: {outcome.name}"
        if outcome.reason == REASON_NO_URL:
            return f"No URL found in file: {outcome.name}"
        if outcome.reason == REASON_FETCH_FAILED:
            target = outcome.transformation.url if outcome.transformation else outcome.url
            return f"Failed to fetch content from: {target}"
        return f"Error processing file {outcome.name}: {outcome.error or 'unknown error'}"

    def process_document(self, path: str, mode: str = MODE_APPEND, track_processed: bool = False) -> Outcome:
        outcome = self.process_one(path, mode, track_processed)
        self.notifier.notify(self.describe(outcome))
        return outcome

    def process_active(self, mode: str = MODE_APPEND, track_processed: bool = False) -> Optional[Outcome]:
        path = self.storage.get_active_document()
        if not path:
            self.notifier.notify("No active file found")
            return None
        return self.process_document(path, mode, track_processed)

    def process_folder(self, prefix: str, mode: str = MODE_APPEND, track_processed: bool = True) -> BatchSummary:
        paths = self.storage.list_documents(prefix)
        if not paths:
            self.notifier.notify(f"No markdown files found in: {prefix}")
            return BatchSummary()
        logger.info("processing %d notes under %r", len(paths), prefix)
        summary = self.process_batch(paths, mode, track_processed)
        self.notifier.notify(summary.message())
        return summary

    def process_url_list(self, path: str) -> int:
        """Hand every http(s) line of a note to the batch fetcher.

        URLs that rewrite to an already listed target are fetched once. Returns
        the number of URLs submitted.
        """

        try:
            text = self.storage.read(path)
        except Exception as exc:
            logger.exception("error reading URL list %s", path)
            self.notifier.notify(f"Error processing URL batch: {exc}")
            return 0
        urls = [line.strip() for line in text.splitlines() if _URL_LINE_RE.match(line.strip())]
        if not urls:
            self.notifier.notify("No URLs found in file")
            return 0
        origins: Dict[str, str] = {}
        for url in urls:
            target = self.transformer.transform(url).url
            if target in origins:
                logger.info("skipping %s: already listed as %s", url, origins[target])
                continue
            origins[target] = url
        self._batch_origins = origins
        try:
            self.articles.fetch_rendered_markdown_batch("\n".join(origins))
        except Exception as exc:
            logger.exception("batch fetch failed for %s", path)
            self.notifier.notify(f"Error processing URL batch: {exc}")
            return 0
        finally:
            self._batch_origins = {}
        self.notifier.notify(f"Successfully processed {len(origins)} URLs")
        return len(origins)

    def save_article(self, fetched_url: str, markdown: str, folder: Optional[str] = None) -> str:
        """Create a note for an article fetched from a URL list."""

        source_url = self._batch_origins.get(fetched_url, fetched_url)
        fallback = last_path_segment(source_url) or source_url
        return self._write_article_note(folder, source_url, markdown, fallback)


__all__ = [
    "MODE_APPEND",
    "MODE_CREATE",
    "MODES",
    "STATUS_PROCESSED",
    "STATUS_SKIPPED",
    "STATUS_FAILED",
    "REASON_ALREADY_PROCESSED",
    "REASON_NO_URL",
    "REASON_FETCH_FAILED",
    "REASON_ERROR",
    "BatchSummary",
    "DocumentProcessor",
    "Outcome",
    "ProcessorOptions",
    "article_title",
]
