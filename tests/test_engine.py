"""Tests for the crawl engine."""

import pytest

from wikimirror.config import MirrorConfig
from wikimirror.engine import CrawlContext, CrawlEngine, ExclusionPolicy, build_engine
from wikimirror.errors import StoreError
from wikimirror.extractor import (
    BracketLinkStrategy,
    RenderedAnchorStrategy,
    get_link_strategy,
)
from wikimirror.models import Page
from wikimirror.store import FileMirrorStore, SqlitePageStore

from conftest import FakeWikiFetcher, edit_url

WIKI_PAGES = {
    "Main_Page",
    "cpp/language",
    "c/language",
    "cpp/language/noreturn",
    "c/language/goto",
    "Template:mainpage",
    "Template:dsc",
}


@pytest.fixture
def store(tmp_path):
    db = SqlitePageStore(db_url=f"sqlite:///{tmp_path / 'pages.db'}")
    yield db
    db.close()


def make_engine(store, fetcher, strategy=None, **kwargs):
    return CrawlEngine(
        store=store,
        fetcher=fetcher,
        strategy=strategy or BracketLinkStrategy(),
        url_for=edit_url,
        **kwargs,
    )


class TestExclusionPolicy:
    """Test cases for ExclusionPolicy."""

    @pytest.mark.parametrize("identifier", [
        "Talk:Foo",
        "Template talk:dsc",
        "Template_talk:dsc",
        "User:Bar",
        "User talk:Bar",
        "File:Baz.png",
        "ru:Something",
        "de:cpp/language",
        "zh:Main_Page",
        "",
    ])
    def test_excluded(self, identifier):
        """Test the default deny-list."""
        assert ExclusionPolicy().is_excluded(identifier)

    @pytest.mark.parametrize("identifier", [
        "Main_Page",
        "cpp/language/noreturn",
        "Template:dsc",
        "c/language/goto",
    ])
    def test_not_excluded(self, identifier):
        """Test ordinary pages and templates pass."""
        assert not ExclusionPolicy().is_excluded(identifier)

    def test_custom_prefixes(self):
        """Test a configured deny-list replaces the default."""
        policy = ExclusionPolicy(["cpp/experimental"])
        assert policy.is_excluded("cpp/experimental/optional")
        assert not policy.is_excluded("Talk:Foo")


class TestCrawlContext:
    """Test cases for CrawlContext."""

    def test_mark_resolved_keeps_first_page(self):
        """Test a resolved page is never replaced."""
        ctx = CrawlContext(start_page="A")
        first = Page(identifier="A", raw_content="one")
        ctx.mark_resolved(first)
        ctx.mark_resolved(Page(identifier="A", raw_content="two"))

        assert ctx.resolved["A"] is first

    def test_frontier(self):
        """Test the frontier skips resolved, failed and excluded identifiers."""
        ctx = CrawlContext(start_page="A")
        ctx.mark_resolved(Page(
            identifier="A",
            raw_content="",
            links=frozenset({"A", "B", "C", "Talk:A"}),
            templates=frozenset({"Template:t"}),
        ))
        ctx.failed.add("C")

        assert ctx.frontier(ExclusionPolicy()) == ["B", "Template:t"]


class TestCrawlEngine:
    """Test cases for CrawlEngine."""

    def test_crawl_reaches_fixed_point(self, store, wiki):
        """Test the crawl resolves the whole reachable wiki and stops."""
        ctx = make_engine(store, wiki).run("Main_Page")

        assert set(ctx.resolved) == WIKI_PAGES
        assert ctx.failed == set()
        assert ctx.stats.fetched == len(WIKI_PAGES)
        assert ctx.stats.loaded == 0
        assert set(store.identifiers()) == WIKI_PAGES

    def test_cycles_fetch_each_page_once(self, store, wiki):
        """Test cyclic links never cause a page to be processed twice."""
        make_engine(store, wiki).run("Main_Page")

        fetched = wiki.fetched_identifiers()
        assert len(fetched) == len(set(fetched))

    def test_links_and_templates_recorded(self, store, wiki):
        """Test a fetched page carries its links and templates."""
        ctx = make_engine(store, wiki).run("Main_Page")

        page = ctx.resolved["Main_Page"]
        assert page.links == {"cpp/language", "c/language"}
        assert page.templates == {"Template:mainpage"}
        assert page.from_cache is False

    def test_templates_persisted_as_edges(self, store, wiki):
        """Test template edges are committed with the page."""
        make_engine(store, wiki).run("Main_Page")

        stored = store.exists_or_load("cpp/language")
        assert stored.templates == {"Template:dsc"}
        assert store.edge_count() == 3

    def test_idempotent_rerun(self, store, wiki):
        """Test a second run loads everything from the store and fetches nothing."""
        make_engine(store, wiki).run("Main_Page")
        pages_after_first = store.identifiers()
        edges_after_first = store.edge_count()

        second_fetcher = FakeWikiFetcher(wiki.pages)
        ctx = make_engine(store, second_fetcher).run("Main_Page")

        assert second_fetcher.requested == []
        assert set(ctx.resolved) == WIKI_PAGES
        assert ctx.stats.loaded == len(WIKI_PAGES)
        assert ctx.stats.fetched == 0
        assert all(page.from_cache for page in ctx.resolved.values())
        assert store.identifiers() == pages_after_first
        assert store.edge_count() == edges_after_first

    def test_cache_hit_recomputes_links(self, store):
        """Test links of a stored page come from its content, templates from the store."""
        store.commit("A", "[[B]]", ["Template:t"])
        fetcher = FakeWikiFetcher()
        fetcher.add("B", "")
        fetcher.add("Template:t", "")

        ctx = make_engine(store, fetcher).run("A")

        assert ctx.resolved["A"].links == {"B"}
        assert ctx.resolved["A"].templates == {"Template:t"}
        assert fetcher.fetched_identifiers() == ["B", "Template:t"]

    def test_excluded_pages_never_fetched(self, store):
        """Test deny-listed identifiers are neither fetched nor resolved."""
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[Talk:Foo]] [[User:Bar]] [[File:Baz]] [[ru:Something]] [[B]]")
        for identifier in ("Talk:Foo", "User:Bar", "File:Baz", "ru:Something", "B"):
            fetcher.add(identifier, "")

        ctx = make_engine(store, fetcher).run("A")

        assert set(ctx.resolved) == {"A", "B"}
        assert sorted(fetcher.fetched_identifiers()) == ["A", "B"]

    def test_excluded_start_page(self, store, wiki):
        """Test an excluded start page ends the crawl immediately."""
        ctx = make_engine(store, wiki).run("Talk:Main_Page")

        assert ctx.resolved == {}
        assert wiki.requested == []
        assert ctx.stats.excluded == 1

    def test_partial_failure_isolation(self, store):
        """Test a failing page leaves its referrer resolved and the crawl finishing."""
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[B]] [[C]]")
        fetcher.add("C", "")

        ctx = make_engine(store, fetcher).run("A")

        assert set(ctx.resolved) == {"A", "C"}
        assert ctx.resolved["A"].links == {"B", "C"}
        assert ctx.failed == {"B"}
        assert ctx.stats.failed == 1
        assert not store.contains("B")

    def test_failed_page_not_retried_in_run(self, store):
        """Test a page referenced from several pages is attempted once per run."""
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[B]] [[C]]")
        fetcher.add("C", "[[B]]")

        make_engine(store, fetcher).run("A")

        assert fetcher.fetched_identifiers().count("B") == 1

    def test_failed_page_retried_next_run(self, store):
        """Test a page missing from the store is attempted again on the next run."""
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[B]]")
        make_engine(store, fetcher).run("A")

        fetcher.add("B", "")
        ctx = make_engine(store, fetcher).run("A")

        assert "B" in ctx.resolved
        assert ctx.resolved["B"].from_cache is False
        assert store.contains("B")

    def test_parse_error_is_page_failure(self, store):
        """Test an edit page without the source textarea fails only that page."""
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[B]]")
        fetcher.pages[edit_url("B")] = b"<html><body><p>No source here</p></body></html>"

        ctx = make_engine(store, fetcher).run("A")

        assert ctx.failed == {"B"}
        assert not store.contains("B")

    def test_normalization_error_is_page_failure(self, store):
        """Test an empty response body fails only that page."""
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[B]]")
        fetcher.pages[edit_url("B")] = b""

        ctx = make_engine(store, fetcher).run("A")

        assert ctx.failed == {"B"}

    def test_store_error_keeps_page_resolved(self, tmp_path, wiki):
        """Test a failed commit is logged while the page's links still count."""

        class FailingStore(SqlitePageStore):
            def commit(self, identifier, content, templates):
                if identifier == "cpp/language":
                    raise StoreError("disk full", identifier)
                super().commit(identifier, content, templates)

        store = FailingStore(db_url=f"sqlite:///{tmp_path / 'pages.db'}")
        ctx = make_engine(store, wiki).run("Main_Page")

        assert set(ctx.resolved) == WIKI_PAGES
        assert ctx.stats.store_errors == 1
        assert not store.contains("cpp/language")
        assert store.contains("cpp/language/noreturn")
        store.close()

    def test_process_return_value(self, store, wiki):
        """Test process reports only newly resolved pages."""
        engine = make_engine(store, wiki)
        ctx = CrawlContext(start_page="Main_Page")

        assert engine.process(ctx, "Main_Page") is True
        assert engine.process(ctx, "Main_Page") is False
        assert engine.process(ctx, "Talk:Main_Page") is False
        assert engine.process(ctx, "no/such/page") is False
        assert engine.process(ctx, "no/such/page") is False
        assert wiki.fetched_identifiers() == ["Main_Page", "no/such/page"]

    def test_parallel_fetching(self, store, wiki):
        """Test concurrent fetching resolves the same pages, each fetched once."""
        ctx = make_engine(store, wiki, max_workers=4).run("Main_Page")

        assert set(ctx.resolved) == WIKI_PAGES
        fetched = wiki.fetched_identifiers()
        assert sorted(fetched) == sorted(WIKI_PAGES)
        assert set(store.identifiers()) == WIKI_PAGES

    def test_parallel_rerun_uses_store(self, store, wiki):
        """Test concurrent mode still resolves stored pages without fetching."""
        make_engine(store, wiki).run("Main_Page")

        fetcher = FakeWikiFetcher(wiki.pages)
        ctx = make_engine(store, fetcher, max_workers=4).run("Main_Page")

        assert fetcher.requested == []
        assert set(ctx.resolved) == WIKI_PAGES

    def test_wikitext_strategy_follows_invocations(self, store, wiki):
        """Test template invocation targets join the frontier."""
        wiki.add("c/language/attributes/noreturn", "")

        ctx = make_engine(store, wiki, strategy=get_link_strategy("wikitext")).run("Main_Page")

        assert "c/language/attributes/noreturn" in ctx.resolved

    def test_rendered_strategy(self, store):
        """Test the rendered strategy stores whole pages and follows anchors."""
        fetcher = FakeWikiFetcher()
        fetcher.pages[edit_url("A")] = (
            b'<html><body><a href="/w/B#Notes">B</a> '
            b'<a href="https://example.org/w/C">C</a></body></html>'
        )
        fetcher.pages[edit_url("B")] = b"<html><body><p>leaf</p></body></html>"

        ctx = make_engine(store, fetcher, strategy=RenderedAnchorStrategy("/w/")).run("A")

        assert set(ctx.resolved) == {"A", "B"}
        assert ctx.resolved["A"].templates == frozenset()
        assert "<p>leaf</p>" in store.exists_or_load("B").content

    def test_file_store_backend(self, tmp_path, wiki):
        """Test the crawl works unchanged over the mirror tree store."""
        store = FileMirrorStore(root=str(tmp_path / "mirror"))

        make_engine(store, wiki).run("Main_Page")
        second = FakeWikiFetcher(wiki.pages)
        ctx = make_engine(store, second).run("Main_Page")

        assert set(ctx.resolved) == WIKI_PAGES
        assert second.requested == []
        assert (tmp_path / "mirror" / "Template" / "dsc.txt").exists()

    def test_file_store_rejects_links_leaving_the_root(self, tmp_path):
        """Test relative and absolute links outside the mirror fail without writing there."""
        root = tmp_path / "wiki" / "mirror"
        absolute = str(tmp_path / "absolute")
        store = FileMirrorStore(root=str(root))
        fetcher = FakeWikiFetcher()
        fetcher.add("A", f"[[../../escaped]] [[{absolute}]] [[B]]")
        for identifier in ("../../escaped", absolute, "B"):
            fetcher.add(identifier, "")

        ctx = make_engine(store, fetcher).run("A")

        assert set(ctx.resolved) == {"A", "B"}
        assert ctx.failed == {"../../escaped", absolute}
        assert fetcher.fetched_identifiers() == ["A", "B"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["wiki"]
        assert sorted(p.name for p in (tmp_path / "wiki").iterdir()) == ["mirror"]

    @pytest.mark.parametrize("max_workers", [1, 4])
    def test_file_store_overlong_link_is_page_failure(self, tmp_path, max_workers):
        """Test a link too long for a file name fails alone and the crawl goes on."""
        long_name = "x" * 300
        store = FileMirrorStore(root=str(tmp_path / "mirror"))
        fetcher = FakeWikiFetcher()
        fetcher.add("A", f"[[{long_name}]] [[B]]")
        fetcher.add("B", "")

        ctx = make_engine(store, fetcher, max_workers=max_workers).run("A")

        assert set(ctx.resolved) == {"A", "B"}
        assert ctx.failed == {long_name}
        assert ctx.stats.failed == 1
        assert long_name not in fetcher.fetched_identifiers()
        assert store.contains("B")

    def test_load_error_is_page_failure(self, tmp_path):
        """Test a store that cannot read a page fails only that page."""

        class UnreadableStore(SqlitePageStore):
            def exists_or_load(self, identifier):
                if identifier == "B":
                    raise StoreError("disk error", identifier)
                return super().exists_or_load(identifier)

        store = UnreadableStore(db_url=f"sqlite:///{tmp_path / 'pages.db'}")
        fetcher = FakeWikiFetcher()
        fetcher.add("A", "[[B]] [[C]]")
        fetcher.add("B", "")
        fetcher.add("C", "")

        ctx = make_engine(store, fetcher).run("A")

        assert set(ctx.resolved) == {"A", "C"}
        assert ctx.failed == {"B"}
        assert "B" not in fetcher.fetched_identifiers()
        store.close()


class TestBuildEngine:
    """Test cases for build_engine."""

    def test_build_from_config(self, tmp_path):
        """Test configuration is wired into the engine."""
        config = MirrorConfig(
            database_url=f"sqlite:///{tmp_path / 'pages.db'}",
            link_strategy="wikitext",
            max_workers=3,
        )
        engine = build_engine(config)

        assert isinstance(engine.store, SqlitePageStore)
        assert engine.strategy.source_kind == "wikitext"
        assert engine.max_workers == 3
        assert engine.url_for("Main_Page") == (
            "https://en.cppreference.com/mwiki/index.php?title=Main_Page&action=edit"
        )
        engine.store.close()
        engine.fetcher.close()

    def test_build_rendered(self, tmp_path):
        """Test the rendered strategy fetches rendered pages."""
        config = MirrorConfig(store_backend="files", mirror_root=str(tmp_path), link_strategy="rendered")
        engine = build_engine(config)

        assert isinstance(engine.store, FileMirrorStore)
        assert engine.url_for("cpp/language") == "https://en.cppreference.com/w/cpp/language"
        engine.fetcher.close()

    def test_unknown_strategy(self):
        """Test an unknown strategy name is rejected."""
        with pytest.raises(ValueError):
            build_engine(MirrorConfig(link_strategy="guess"))
