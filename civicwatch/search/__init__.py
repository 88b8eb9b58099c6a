"""Web search and page extraction used by affair enrichment."""

from .brave import (
    BraveSearchClient,
    SearchResult,
    TRUSTED_PUBLISHERS,
    build_affair_query,
    resolve_publisher,
)
from .extractor import ExtractedPage, PageExtractor, extract_main_text

__all__ = [
    "BraveSearchClient",
    "SearchResult",
    "TRUSTED_PUBLISHERS",
    "build_affair_query",
    "resolve_publisher",
    "ExtractedPage",
    "PageExtractor",
    "extract_main_text",
]
