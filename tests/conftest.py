"""Shared fixtures: an in-memory fake wiki served through the fetcher interface."""

import html
import threading

import pytest

from wikimirror.errors import Result, TransportError
from wikimirror.models import FetchResponse

EDIT_PAGE = """<!DOCTYPE html>
<html><head><title>Editing {title}</title></head>
<body>
<form id="editform"><textarea name="wpTextbox1" rows="25">{source}</textarea></form>
<div class="templatesUsed"><p>Templates used on this page:</p><ul>{items}</ul></div>
</body></html>"""


def edit_page(identifier, source, templates=()):
    """Render a MediaWiki-style edit page for a page source."""
    items = "".join(
        f'<li><a href="/w/{t}" title="{t}">{t}</a> '
        f'(<a href="/mwiki/index.php?title={t}&amp;action=edit">view source</a>)</li>'
        for t in templates
    )
    return EDIT_PAGE.format(
        title=html.escape(identifier), source=html.escape(source), items=items
    ).encode("utf-8")


def edit_url(identifier):
    return f"https://wiki.test/edit/{identifier}"


class FakeWikiFetcher:
    """Serves pages keyed by URL and records every request."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.requested = []
        self._lock = threading.Lock()
        self.closed = False

    def add(self, identifier, source, templates=()):
        self.pages[edit_url(identifier)] = edit_page(identifier, source, templates)

    def fetch(self, url):
        with self._lock:
            self.requested.append(url)
        if url not in self.pages:
            return Result.fail(TransportError(
                f"url = {url}, http code = 404", status_code=404, url=url
            ))
        return Result.ok(FetchResponse(url=url, body=self.pages[url]))

    def fetched_identifiers(self):
        prefix = edit_url("")
        return [url[len(prefix):] for url in self.requested]

    def close(self):
        self.closed = True


@pytest.fixture
def wiki():
    """A small wiki with a cycle, a template and a dangling link."""
    fetcher = FakeWikiFetcher()
    fetcher.add(
        "Main_Page",
        "Welcome. See [[cpp/language|C++ language]] and [[c/language]].",
        templates=["Template:mainpage"],
    )
    fetcher.add(
        "cpp/language",
        "[[cpp/language/noreturn]] [[Main_Page]] [[Talk:Main_Page]]",
        templates=["Template:dsc"],
    )
    fetcher.add("c/language", "[[c/language/goto|goto]] [[cpp/language]]")
    fetcher.add("cpp/language/noreturn", "[[cpp/language]]", templates=["Template:dsc"])
    fetcher.add("c/language/goto", "{{attr|noreturn}}")
    fetcher.add("Template:mainpage", "<div>[[Main_Page]]</div>")
    fetcher.add("Template:dsc", "")
    return fetcher
