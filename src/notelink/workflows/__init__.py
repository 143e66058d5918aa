"""High-level exports for the notelink workflows."""

from .article_fetch import ArticleFetchConfig, ArticleFetcher
from .frontmatter import locate_frontmatter, parse_frontmatter, serialize_frontmatter
from .processed_marker import is_processed, set_processed_marker
from .processor import BatchSummary, DocumentProcessor, Outcome, ProcessorOptions
from .url_extract import extract_url
from .url_transform import (
    ProxyHealthCache,
    TransformationConfig,
    TransformationResult,
    TransformationRule,
    UrlTransformer,
    transform_url,
)
from .vault import Vault

__all__ = [
    "ArticleFetchConfig",
    "ArticleFetcher",
    "BatchSummary",
    "DocumentProcessor",
    "Outcome",
    "ProcessorOptions",
    "ProxyHealthCache",
    "TransformationConfig",
    "TransformationResult",
    "TransformationRule",
    "UrlTransformer",
    "Vault",
    "extract_url",
    "is_processed",
    "locate_frontmatter",
    "parse_frontmatter",
    "serialize_frontmatter",
    "set_processed_marker",
    "transform_url",
]
