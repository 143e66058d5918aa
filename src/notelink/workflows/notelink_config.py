"""notelink defaults (paths, env var names, timeouts, note layout).

Centralizes static defaults so the workflow modules have no embedded magic
strings. Callers override them through environment variables (see
``settings.load_settings``) or by constructing configs directly.
"""

from __future__ import annotations

from pathlib import Path

# Paths (package-relative)
_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_RULES_PATH = _ROOT / "data" / "rules.json"

# Environment variables
ENV_VAULT_ROOT = "NOTELINK_VAULT_ROOT"
ENV_ACTIVE_NOTE = "NOTELINK_ACTIVE_NOTE"
ENV_DEFAULT_FOLDER = "NOTELINK_DEFAULT_FOLDER"
ENV_OUTPUT_FOLDER = "NOTELINK_OUTPUT_FOLDER"
ENV_RULES_PATH = "NOTELINK_RULES_PATH"
ENV_PROXY_TTL_MINUTES = "NOTELINK_PROXY_TTL_MINUTES"
ENV_PROXY_TIMEOUT_MS = "NOTELINK_PROXY_TIMEOUT_MS"
ENV_FETCH_TIMEOUT = "NOTELINK_FETCH_TIMEOUT"
ENV_LOG_LEVEL = "NOTELINK_LOG_LEVEL"

# Vault / note layout
DEFAULT_FOLDER = "Articles"
NOTE_SUFFIX = ".md"
ARTICLE_SEPARATOR = "\n\n---\n\n## Retrieved Article Content\n\n"
CREATED_NOTE_SUFFIX = " (article)"

# Proxy health cache
DEFAULT_PROXY_TTL_MINUTES = 5.0
DEFAULT_PROXY_TIMEOUT_MS = 3000

# Article fetching
DEFAULT_FETCH_TIMEOUT = 20.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"
MARKDOWN_CONTENT_TYPES = ("text/plain", "text/markdown", "text/x-markdown")

DEFAULT_LOG_LEVEL = "WARNING"
