from typing import Dict, List, Optional

import pytest

from notelink.workflows.errors import StorageFailure
from notelink.workflows.processor import (
    MODE_APPEND,
    MODE_CREATE,
    REASON_ALREADY_PROCESSED,
    REASON_ERROR,
    REASON_FETCH_FAILED,
    REASON_NO_URL,
    STATUS_FAILED,
    STATUS_PROCESSED,
    STATUS_SKIPPED,
    DocumentProcessor,
    ProcessorOptions,
    article_title,
)
from notelink.workflows.url_transform import (
    ProxyHealthCache,
    TransformationConfig,
    TransformationRule,
    UrlTransformer,
)

SEP = "\n\n---\n\n## Retrieved Article Content\n\n"


class MemoryStorage:
    def __init__(self, files: Optional[Dict[str, str]] = None, active: Optional[str] = None) -> None:
        self.files = dict(files or {})
        self.active = active
        self.writes: List[str] = []
        self.appends: List[str] = []
        self.fail_writes_for: set = set()

    def read(self, path: str) -> str:
        if path not in self.files:
            raise StorageFailure(path, "note does not exist")
        return self.files[path]

    def write(self, path: str, content: str) -> None:
        if path in self.fail_writes_for:
            raise StorageFailure(path, "disk full")
        self.writes.append(path)
        self.files[path] = content

    def append(self, path: str, content: str) -> None:
        self.appends.append(path)
        self.files[path] = self.files[path] + content

    def create(self, path: str, content: str) -> str:
        if path in self.files:
            raise StorageFailure(path, "already exists")
        self.files[path] = content
        return path

    def delete(self, path: str) -> None:
        if path not in self.files:
            raise StorageFailure(path, "note does not exist")
        del self.files[path]

    def exists(self, path: str) -> bool:
        return path in self.files

    def list_documents(self, prefix: str = "") -> List[str]:
        return sorted(p for p in self.files if p.endswith(".md") and p.startswith(prefix))

    def get_active_document(self) -> Optional[str]:
        return self.active


class FakeArticles:
    def __init__(self, pages: Optional[Dict[str, str]] = None, sink=None) -> None:
        self.pages = pages or {}
        self.calls: List[str] = []
        self.batches: List[str] = []
        self.sink = sink

    def fetch_rendered_markdown(self, url: str) -> Optional[str]:
        self.calls.append(url)
        return self.pages.get(url)

    def fetch_rendered_markdown_batch(self, urls: str) -> None:
        self.batches.append(urls)
        if self.sink is not None:
            for url in urls.splitlines():
                if url in self.pages:
                    self.sink(url, self.pages[url])


class ListNotifier:
    def __init__(self) -> None:
        self.messages: List[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


def _processor(storage, articles, **kwargs):
    notifier = ListNotifier()
    return DocumentProcessor(storage, articles, notifier=notifier, **kwargs), notifier


def test_append_mode_adds_separator_and_article():
    storage = MemoryStorage({"a.md": "---\nurl: https://ex.test/a\n---\nMy notes"})
    articles = FakeArticles({"https://ex.test/a": "# Title\n\nText\n\n"})
    proc, notifier = _processor(storage, articles)

    outcome = proc.process_document("a.md")

    assert outcome.status == STATUS_PROCESSED
    assert storage.files["a.md"] == "---\nurl: https://ex.test/a\n---\nMy notes" + SEP + "# Title\n\nText\n"
    assert storage.appends == ["a.md"]
    assert storage.writes == []
    assert notifier.messages == ["Successfully appended article content to: a.md"]


def test_append_with_tracking_writes_content_and_marker_once():
    storage = MemoryStorage({"n/a.md": "---\ntitle: T\nurl: https://ex.test/a\n---\nBody"})
    articles = FakeArticles({"https://ex.test/a": "Article"})
    proc, _ = _processor(storage, articles)

    outcome = proc.process_one("n/a.md", MODE_APPEND, track_processed=True)

    assert outcome.status == STATUS_PROCESSED
    assert storage.writes == ["n/a.md"]
    assert storage.appends == []
    assert storage.files["n/a.md"] == (
        "---\ntitle: T\nurl: https://ex.test/a\narticle_processed: true\n---\nBody" + SEP + "Article\n"
    )


def test_append_with_tracking_keeps_body_after_unclosed_rule_line():
    original = "---\nMy intro paragraph about this link\nhttps://ex.test/a\n"
    storage = MemoryStorage({"a.md": original})
    articles = FakeArticles({"https://ex.test/a": "Article"})
    proc, _ = _processor(storage, articles)

    outcome = proc.process_one("a.md", MODE_APPEND, track_processed=True)

    assert outcome.status == STATUS_PROCESSED
    assert storage.files["a.md"] == "---\narticle_processed: true\n---\n\n" + original + SEP + "Article\n"

    second = proc.process_one("a.md", MODE_APPEND, track_processed=True)
    assert second.status == STATUS_SKIPPED
    assert articles.calls == ["https://ex.test/a"]


def test_tracked_note_is_skipped_without_fetching():
    storage = MemoryStorage({"a.md": "---\nurl: https://ex.test/a\narticle_processed: true\n---\n"})
    articles = FakeArticles({"https://ex.test/a": "Article"})
    proc, notifier = _processor(storage, articles)

    outcome = proc.process_document("a.md", MODE_APPEND, track_processed=True)

    assert outcome.status == STATUS_SKIPPED
    assert outcome.reason == REASON_ALREADY_PROCESSED
    assert articles.calls == []
    assert notifier.messages == ["Skipped already processed file: a.md"]


def test_untracked_run_ignores_marker():
    storage = MemoryStorage({"a.md": "---\nurl: https://ex.test/a\narticle_processed: true\n---\n"})
    articles = FakeArticles({"https://ex.test/a": "Article"})
    proc, _ = _processor(storage, articles)

    assert proc.process_one("a.md").status == STATUS_PROCESSED
    assert articles.calls == ["https://ex.test/a"]


def test_no_url_leaves_note_untouched():
    storage = MemoryStorage({"a.md": "just words"})
    articles = FakeArticles()
    proc, notifier = _processor(storage, articles)

    outcome = proc.process_document("a.md", track_processed=True)

    assert outcome.status == STATUS_FAILED
    assert outcome.reason == REASON_NO_URL
    assert storage.files["a.md"] == "just words"
    assert articles.calls == []
    assert notifier.messages == ["No URL found in file: a.md"]


def test_fetch_failure_leaves_note_untouched():
    original = "---\nsource: https://ex.test/gone\n---\nBody"
    storage = MemoryStorage({"a.md": original})
    articles = FakeArticles({"https://ex.test/gone": "   "})
    proc, notifier = _processor(storage, articles)

    outcome = proc.process_document("a.md", track_processed=True)

    assert outcome.status == STATUS_FAILED
    assert outcome.reason == REASON_FETCH_FAILED
    assert storage.files["a.md"] == original
    assert storage.writes == [] and storage.appends == []
    assert notifier.messages == ["Failed to fetch content from: https://ex.test/gone"]


def test_fetch_uses_transformed_url():
    rule = TransformationRule(
        id="jina",
        name="Jina",
        enabled=True,
        matchers=("ex.test",),
        transformation_type="prefix",
        template="https://r.jina.ai/{url}",
        priority=1,
    )
    transformer = UrlTransformer(
        TransformationConfig(rules=[rule]), cache=ProxyHealthCache(), probe=lambda base, timeout: True
    )
    storage = MemoryStorage({"a.md": "[post](https://ex.test/a)"})
    articles = FakeArticles({"https://r.jina.ai/https://ex.test/a": "Article"})
    proc, _ = _processor(storage, articles, transformer=transformer)

    outcome = proc.process_one("a.md")

    assert articles.calls == ["https://r.jina.ai/https://ex.test/a"]
    assert outcome.url == "https://ex.test/a"
    assert outcome.transformation.applied_rule == "jina"
    assert outcome.to_dict()["transformation"]["transformedUrl"] == "https://r.jina.ai/https://ex.test/a"


def test_create_mode_writes_new_note_and_marks_source():
    storage = MemoryStorage({"inbox/a.md": "---\nurl: https://ex.test/a\n---\nBody"})
    articles = FakeArticles({"https://ex.test/a": "# Great: Post\n\nText"})
    proc, notifier = _processor(storage, articles)

    outcome = proc.process_document("inbox/a.md", MODE_CREATE, track_processed=True)

    assert outcome.status == STATUS_PROCESSED
    assert outcome.created_path == "inbox/Great Post.md"
    assert storage.files["inbox/Great Post.md"] == (
        "---\nsource: https://ex.test/a\narticle_processed: true\n---\n\n# Great: Post\n\nText\n"
    )
    assert storage.files["inbox/a.md"] == "---\nurl: https://ex.test/a\narticle_processed: true\n---\nBody"
    assert notifier.messages == ["Created note inbox/Great Post.md from: https://ex.test/a"]


def test_create_mode_avoids_name_collisions_and_uses_output_folder():
    storage = MemoryStorage(
        {
            "a.md": "https://ex.test/a",
            "Articles/a (article).md": "existing",
        }
    )
    articles = FakeArticles({"https://ex.test/a": "no heading here"})
    proc, _ = _processor(storage, articles, options=ProcessorOptions(output_folder="Articles"))

    outcome = proc.process_one("a.md", MODE_CREATE)

    assert outcome.created_path == "Articles/a (article) 1.md"
    assert storage.files["a.md"] == "https://ex.test/a"


def test_storage_failure_becomes_failed_outcome():
    storage = MemoryStorage({"a.md": "---\nurl: https://ex.test/a\n---\n"})
    storage.fail_writes_for.add("a.md")
    articles = FakeArticles({"https://ex.test/a": "Article"})
    proc, notifier = _processor(storage, articles)

    outcome = proc.process_document("a.md", track_processed=True)

    assert outcome.status == STATUS_FAILED
    assert outcome.reason == REASON_ERROR
    assert "disk full" in outcome.error
    assert notifier.messages[0].startswith("Error processing file a.md:")


def test_create_mode_rolls_back_new_note_when_source_cannot_be_marked():
    storage = MemoryStorage({"a.md": "---\nurl: https://ex.test/a\n---\nBody"})
    storage.fail_writes_for.add("a.md")
    articles = FakeArticles({"https://ex.test/a": "# T\n\nText"})
    proc, _ = _processor(storage, articles)

    outcome = proc.process_one("a.md", MODE_CREATE, track_processed=True)

    assert outcome.status == STATUS_FAILED
    assert outcome.reason == REASON_ERROR
    assert outcome.created_path is None
    assert sorted(storage.files) == ["a.md"]

    storage.fail_writes_for.clear()
    retry = proc.process_one("a.md", MODE_CREATE, track_processed=True)
    assert retry.created_path == "T.md"
    assert sorted(storage.files) == ["T.md", "a.md"]


def test_missing_note_is_reported_not_raised():
    proc, _ = _processor(MemoryStorage(), FakeArticles())
    outcome = proc.process_one("missing.md")
    assert outcome.status == STATUS_FAILED
    assert outcome.reason == REASON_ERROR


def test_unknown_mode_is_rejected():
    proc, _ = _processor(MemoryStorage(), FakeArticles())
    with pytest.raises(ValueError):
        proc.process_one("a.md", "replace")


def test_batch_counts_and_order():
    storage = MemoryStorage(
        {
            "A/1.md": "---\narticle_processed: true\nurl: https://ex.test/1\n---\n",
            "A/2.md": "---\nurl: https://ex.test/2\n---\n",
            "A/3.md": "no link",
            "A/4.md": "---\nurl: https://ex.test/4\n---\n",
        }
    )
    articles = FakeArticles({"https://ex.test/2": "two"})
    proc, notifier = _processor(storage, articles)

    summary = proc.process_folder("A/")

    assert [o.path for o in summary.outcomes] == ["A/1.md", "A/2.md", "A/3.md", "A/4.md"]
    assert (summary.processed_count, summary.skipped_count, summary.failed_count) == (1, 1, 2)
    assert summary.total == 4
    assert articles.calls == ["https://ex.test/2", "https://ex.test/4"]
    assert notifier.messages == ["Completed: 1 processed, 1 skipped (already processed), 2 failed"]
    counts = summary.to_dict()["counts"]
    assert counts == {"total": 4, "processed": 1, "skipped": 1, "failed": 2}


def test_second_batch_run_skips_everything_processed():
    storage = MemoryStorage({"A/1.md": "https://ex.test/1", "A/2.md": "https://ex.test/2"})
    articles = FakeArticles({"https://ex.test/1": "one", "https://ex.test/2": "two"})
    proc, _ = _processor(storage, articles)

    first = proc.process_folder("A")
    second = proc.process_folder("A")

    assert first.processed_count == 2
    assert second.skipped_count == 2
    assert len(articles.calls) == 2


def test_empty_folder_notifies():
    proc, notifier = _processor(MemoryStorage(), FakeArticles())
    summary = proc.process_folder("Articles")
    assert summary.total == 0
    assert notifier.messages == ["No markdown files found in: Articles"]


def test_process_active():
    storage = MemoryStorage({"a.md": "https://ex.test/a"}, active="a.md")
    proc, _ = _processor(storage, FakeArticles({"https://ex.test/a": "Article"}))
    assert proc.process_active().status == STATUS_PROCESSED

    proc, notifier = _processor(MemoryStorage(), FakeArticles())
    assert proc.process_active() is None
    assert notifier.messages == ["No active file found"]


def test_url_list_creates_notes_through_sink():
    storage = MemoryStorage({"lists/urls.md": "# reading\nhttps://ex.test/one\nnot a url\n  http://ex.test/two  \n"})
    articles = FakeArticles({"https://ex.test/one": "# One\n\nbody", "http://ex.test/two": "body two"})
    proc, notifier = _processor(storage, articles)
    articles.sink = lambda url, markdown: proc.save_article(url, markdown, "lists")

    count = proc.process_url_list("lists/urls.md")

    assert count == 2
    assert articles.batches == ["https://ex.test/one\nhttp://ex.test/two"]
    assert storage.files["lists/One.md"].startswith("---\nsource: https://ex.test/one\narticle_processed: true\n---")
    assert "lists/two.md" in storage.files
    assert notifier.messages == ["Successfully processed 2 URLs"]


def test_url_list_fetches_shared_targets_once_and_forgets_origins():
    rule = TransformationRule(
        id="yt",
        name="YouTube",
        enabled=True,
        matchers=("youtu.be/",),
        transformation_type="path-extraction",
        template="https://www.youtube.com/watch?v={segment}",
    )
    transformer = UrlTransformer(TransformationConfig(rules=[rule]))
    storage = MemoryStorage(
        {"urls.md": "https://youtu.be/vid\nhttps://www.youtube.com/watch?v=vid\nhttps://ex.test/other\n"}
    )
    articles = FakeArticles({"https://www.youtube.com/watch?v=vid": "video", "https://ex.test/other": "# Other"})
    proc, notifier = _processor(storage, articles, transformer=transformer)
    articles.sink = lambda url, markdown: proc.save_article(url, markdown)

    count = proc.process_url_list("urls.md")

    assert count == 2
    assert articles.batches == ["https://www.youtube.com/watch?v=vid\nhttps://ex.test/other"]
    assert "source: https://youtu.be/vid" in storage.files["vid.md"]
    assert notifier.messages == ["Successfully processed 2 URLs"]
    assert proc._batch_origins == {}


def test_url_list_without_urls():
    storage = MemoryStorage({"urls.md": "nothing here"})
    articles = FakeArticles()
    proc, notifier = _processor(storage, articles)
    assert proc.process_url_list("urls.md") == 0
    assert articles.batches == []
    assert notifier.messages == ["No URLs found in file"]


def test_article_title():
    assert article_title("intro\n# Hello / World #\ntext") == "Hello World"
    assert article_title("## only h2") is None
