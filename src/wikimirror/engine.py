"""Crawl engine: expands the mirrored page set to a fixed point.

Starting from one page, every resolved page's links and templates are
processed in repeated sweeps until a sweep resolves nothing new. Pages
already in the store are loaded instead of fetched, so re-runs only
download what earlier runs did not capture.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from wikimirror.config import MirrorConfig
from wikimirror.constants import DEFAULT_EXCLUDED_PREFIXES
from wikimirror.errors import Result, StoreError, WikiMirrorError
from wikimirror.extractor import LinkStrategy, get_link_strategy
from wikimirror.fetcher import PageFetcher
from wikimirror.models import CrawlStats, Page
from wikimirror.normalizer import normalize_markup
from wikimirror.page_parser import parse_edit_page
from wikimirror.store import AbstractPageStore, get_page_store
from wikimirror.urls import url_builder_for

logger = logging.getLogger(__name__)


class ExclusionPolicy:
    """Prefix deny-list for identifiers that must never be crawled."""

    def __init__(self, prefixes: Iterable[str] = DEFAULT_EXCLUDED_PREFIXES):
        self.prefixes = tuple(prefixes)

    def is_excluded(self, identifier: str) -> bool:
        return not identifier or identifier.startswith(self.prefixes)


@dataclass
class CrawlContext:
    """State of one crawl run.

    `resolved` only ever grows. Identifiers in `failed` stay unresolved
    and are not attempted again until the next run.
    """

    start_page: str
    resolved: Dict[str, Page] = field(default_factory=dict)
    failed: Set[str] = field(default_factory=set)
    stats: CrawlStats = field(default_factory=CrawlStats)

    def is_resolved(self, identifier: str) -> bool:
        return identifier in self.resolved

    def mark_resolved(self, page: Page) -> None:
        self.resolved.setdefault(page.identifier, page)

    def frontier(self, exclusions: ExclusionPolicy) -> List[str]:
        """Referenced identifiers still waiting to be processed."""
        pending = set()
        for page in list(self.resolved.values()):
            for identifier in page.references():
                if (
                    identifier not in self.resolved
                    and identifier not in self.failed
                    and not exclusions.is_excluded(identifier)
                ):
                    pending.add(identifier)
        return sorted(pending)


class CrawlEngine:
    """Drives fetch, extraction and storage of wiki pages."""

    def __init__(
        self,
        store: AbstractPageStore,
        fetcher,
        strategy: LinkStrategy,
        url_for: Callable[[str], str],
        normalizer: Callable[[bytes], Result[str]] = normalize_markup,
        exclusions: Optional[ExclusionPolicy] = None,
        max_workers: int = 1,
    ):
        """Initialize the crawl engine.

        Args:
            store: Page store consulted before any fetch
            fetcher: Object with fetch(url) -> Result[FetchResponse]
            strategy: Link extraction strategy
            url_for: Deterministic identifier -> URL function
            normalizer: Markup repair function
            exclusions: Identifier deny-list (default namespaces and languages)
            max_workers: Concurrent fetches per sweep; 1 crawls sequentially
        """
        self.store = store
        self.fetcher = fetcher
        self.strategy = strategy
        self.url_for = url_for
        self.normalizer = normalizer
        self.exclusions = exclusions or ExclusionPolicy()
        self.max_workers = max(1, max_workers)

    def run(self, start_page: str) -> CrawlContext:
        """Crawl everything reachable from a start page.

        Args:
            start_page: Identifier to seed the crawl with

        Returns:
            The finished CrawlContext
        """
        ctx = CrawlContext(start_page=start_page)
        logger.info(f"Starting crawl from {start_page} using '{self.strategy.name}' links")

        self.process(ctx, start_page)

        while True:
            before = len(ctx.resolved)
            ctx.stats.sweeps += 1
            self._sweep(ctx)
            added = len(ctx.resolved) - before
            logger.info(
                f"Sweep {ctx.stats.sweeps}: {added} new pages, "
                f"{len(ctx.resolved)} resolved, {len(ctx.failed)} failed"
            )
            if added == 0:
                break

        logger.info(
            f"Crawl finished: {len(ctx.resolved)} pages "
            f"({ctx.stats.fetched} fetched, {ctx.stats.loaded} from store, "
            f"{ctx.stats.failed} failed)"
        )
        return ctx

    def process(self, ctx: CrawlContext, identifier: str) -> bool:
        """Resolve one page from the store or the network.

        Args:
            ctx: Current crawl context
            identifier: Page identifier

        Returns:
            True if the page was newly resolved by this call
        """
        if self.exclusions.is_excluded(identifier):
            ctx.stats.excluded += 1
            return False
        if ctx.is_resolved(identifier) or identifier in ctx.failed:
            return False

        try:
            if self._load_cached(ctx, identifier):
                return True
        except StoreError as e:
            self._record_failure(ctx, identifier, e)
            return False

        return self._resolve_fetched(ctx, identifier, self._fetch_page(identifier))

    def _sweep(self, ctx: CrawlContext) -> None:
        frontier = ctx.frontier(self.exclusions)
        if self.max_workers == 1:
            for identifier in frontier:
                self.process(ctx, identifier)
            return

        misses = []
        for identifier in frontier:
            try:
                if not self._load_cached(ctx, identifier):
                    misses.append(identifier)
            except StoreError as e:
                self._record_failure(ctx, identifier, e)
        if not misses:
            return

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="fetch") as executor:
            future_to_identifier = {
                executor.submit(self._fetch_page, identifier): identifier
                for identifier in misses
            }
            for future in as_completed(future_to_identifier):
                identifier = future_to_identifier[future]
                self._resolve_fetched(ctx, identifier, future.result())

    def _load_cached(self, ctx: CrawlContext, identifier: str) -> bool:
        stored = self.store.exists_or_load(identifier)
        if stored is None:
            return False

        page = Page(
            identifier=identifier,
            raw_content=stored.content,
            links=frozenset(self.strategy.extract(identifier, stored.content)),
            templates=frozenset(stored.templates),
            from_cache=True,
        )
        ctx.mark_resolved(page)
        ctx.stats.loaded += 1
        logger.debug(f"Loaded {identifier} from store")
        return True

    def _fetch_page(self, identifier: str) -> Result[Page]:
        """Fetch, normalize, parse and extract a page. Touches no shared state."""
        logger.info(f"parsing {identifier}")

        response = self.fetcher.fetch(self.url_for(identifier))
        if not response.success:
            return Result.fail(response.error)

        markup = self.normalizer(response.value.body)
        if not markup.success:
            return Result.fail(markup.error)

        if self.strategy.source_kind == "rendered":
            source, templates = markup.value, set()
        else:
            parsed = parse_edit_page(markup.value)
            if not parsed.success:
                return Result.fail(parsed.error)
            source, templates = parsed.value

        return Result.ok(Page(
            identifier=identifier,
            raw_content=source,
            links=frozenset(self.strategy.extract(identifier, source)),
            templates=frozenset(templates),
        ))

    def _resolve_fetched(self, ctx: CrawlContext, identifier: str, result: Result[Page]) -> bool:
        if not result.success:
            self._record_failure(ctx, identifier, result.error)
            return False

        page = result.value
        ctx.mark_resolved(page)
        ctx.stats.fetched += 1

        try:
            self.store.commit(page.identifier, page.raw_content, page.templates)
        except StoreError as e:
            ctx.stats.store_errors += 1
            logger.error(f"Failed to store {identifier}: {e.message}")
        return True

    def _record_failure(self, ctx: CrawlContext, identifier: str, error: WikiMirrorError) -> None:
        error.identifier = error.identifier or identifier
        ctx.failed.add(identifier)
        ctx.stats.failed += 1
        logger.error(f"Failed to process {identifier}: {type(error).__name__}: {error.message}")


def build_engine(config: MirrorConfig, store: Optional[AbstractPageStore] = None) -> CrawlEngine:
    """Wire a CrawlEngine from configuration.

    Args:
        config: Mirror configuration
        store: Existing store to use instead of the configured backend

    Returns:
        A ready CrawlEngine
    """
    strategy = get_link_strategy(config.link_strategy, config.anchor_prefix)

    if store is None:
        if config.store_backend == "files":
            store = get_page_store("files", root=config.mirror_root)
        else:
            store = get_page_store(config.store_backend, db_url=config.database_url)

    fetcher = PageFetcher(
        user_agent=config.user_agent,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )

    return CrawlEngine(
        store=store,
        fetcher=fetcher,
        strategy=strategy,
        url_for=url_builder_for(config, strategy.source_kind),
        exclusions=ExclusionPolicy(config.excluded_prefixes),
        max_workers=config.max_workers,
    )
