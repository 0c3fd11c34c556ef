"""Incremental, resumable mirror of a documentation wiki."""

__version__ = "0.1.0"

from wikimirror.config import MirrorConfig, settings
from wikimirror.engine import CrawlContext, CrawlEngine, ExclusionPolicy, build_engine
from wikimirror.errors import (
    NormalizationError,
    ParseError,
    Result,
    StoreError,
    TransportError,
    WikiMirrorError,
)
from wikimirror.extractor import (
    BracketLinkStrategy,
    CompositeStrategy,
    LinkStrategy,
    RenderedAnchorStrategy,
    TemplateInvocationStrategy,
    find_text_between,
    get_link_strategy,
)
from wikimirror.fetcher import PageFetcher
from wikimirror.models import CrawlStats, FetchResponse, Page, StoredPage
from wikimirror.normalizer import normalize_markup
from wikimirror.store import (
    AbstractPageStore,
    FileMirrorStore,
    SqlitePageStore,
    get_page_store,
)

__all__ = [
    # Core
    "CrawlEngine",
    "CrawlContext",
    "ExclusionPolicy",
    "build_engine",
    "PageFetcher",
    "normalize_markup",
    # Extraction
    "LinkStrategy",
    "BracketLinkStrategy",
    "TemplateInvocationStrategy",
    "RenderedAnchorStrategy",
    "CompositeStrategy",
    "find_text_between",
    "get_link_strategy",
    # Storage
    "AbstractPageStore",
    "SqlitePageStore",
    "FileMirrorStore",
    "get_page_store",
    # Models
    "Page",
    "StoredPage",
    "FetchResponse",
    "CrawlStats",
    # Errors
    "WikiMirrorError",
    "TransportError",
    "NormalizationError",
    "ParseError",
    "StoreError",
    "Result",
    # Config
    "MirrorConfig",
    "settings",
]
