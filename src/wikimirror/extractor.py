# src/wikimirror/extractor.py
"""Link extraction from wiki source text and rendered pages.

The source format is not valid enough to parse structurally, so wiki
markup is scanned with an explicit delimiter tokenizer
(find_text_between) rather than regular expressions. Each extraction
rule set is a strategy object; the crawl engine is handed one strategy,
chosen once from configuration.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Set
from urllib.parse import unquote

from bs4 import BeautifulSoup

from wikimirror.constants import (
    BRACKET_LINK_MARKERS,
    DEFAULT_ANCHOR_PREFIX,
    DSC_TARGET_NOISE,
    LANGUAGE_ROOTS,
    LINK_TEMPLATE_PREFIXES,
    REJECTED_TARGET_CHARS,
    TEMPLATE_MARKERS,
)


def find_text_between(text: str, left: str, right: str) -> List[str]:
    """Return every fragment enclosed by a left and right marker.

    Scanning is leftmost-first and non-greedy: each left marker pairs with
    the first right marker after it. The next search for a left marker
    resumes one character past the start of the current one, so adjacent
    or overlapping left markers are all seen.

    >>> find_text_between("[[a]] [[b|c]]", "[[", "]]")
    ['a', 'b|c']
    """
    fragments = []
    pos = text.find(left)
    while pos != -1:
        start = pos + len(left)
        end = text.find(right, start)
        if end == -1:
            break
        fragments.append(text[start:end])
        pos = text.find(left, pos + 1)
    return fragments


def _is_rejected(target: str) -> bool:
    return any(c in target for c in REJECTED_TARGET_CHARS)


def language_root(identifier: str) -> Optional[str]:
    """'c' for c/... pages, 'cpp' for cpp/... pages, otherwise None."""
    for prefix, lang in LANGUAGE_ROOTS.items():
        if identifier.startswith(prefix):
            return lang
    return None


class LinkStrategy(ABC):
    """A set of rules turning page content into referenced page identifiers."""

    name = "custom"

    # 'wikitext' strategies read the page source from the edit page,
    # 'rendered' strategies read the rendered page
    source_kind = "wikitext"

    @abstractmethod
    def extract(self, identifier: str, source: str) -> Set[str]:
        """Return the identifiers referenced by a page.

        Args:
            identifier: Identifier of the page being scanned
            source: Page content of this strategy's source_kind
        """
        pass


class BracketLinkStrategy(LinkStrategy):
    """[[target|text]] links."""

    name = "brackets"

    def extract(self, identifier: str, source: str) -> Set[str]:
        links = set()
        for fragment in find_text_between(source, *BRACKET_LINK_MARKERS):
            if not fragment:
                continue
            target = fragment.split("|")[0]
            if _is_rejected(target):
                continue
            target = target.strip()
            if target:
                links.add(target)
        return links


class TemplateInvocationStrategy(LinkStrategy):
    """{{name|target|...}} invocations of the link-bearing templates.

    attr and header targets are relative to the language of the containing
    page and get expanded to full paths; every other allowed template uses
    its target as is. Some invocations render to a page other than the
    target names (there is no visible mapping between link text and the
    final page), so results are best effort.
    """

    name = "templates"

    def __init__(self, prefixes=LINK_TEMPLATE_PREFIXES):
        self.prefixes = tuple(prefixes)

    def extract(self, identifier: str, source: str) -> Set[str]:
        links = set()
        for fragment in find_text_between(source, *TEMPLATE_MARKERS):
            fields = fragment.split("|")
            if len(fields) < 2:
                continue
            template = fields[0].strip()
            if not template.startswith(self.prefixes):
                continue
            target = fields[1].strip().replace(DSC_TARGET_NOISE, "").strip()
            if not target or _is_rejected(target):
                continue
            link = self._resolve(identifier, template, target)
            if link:
                links.add(link)
        return links

    def _resolve(self, identifier: str, template: str, target: str) -> Optional[str]:
        if template == "attr":
            lang = language_root(identifier)
            return f"{lang}/language/attributes/{target}" if lang else None
        if template == "header":
            lang = language_root(identifier)
            return f"{lang}/header/{target}" if lang else None
        return target


class RenderedAnchorStrategy(LinkStrategy):
    """<a href="/w/..."> hyperlinks of a rendered page."""

    name = "rendered"
    source_kind = "rendered"

    def __init__(self, prefix: str = DEFAULT_ANCHOR_PREFIX):
        self.prefix = prefix

    def extract(self, identifier: str, source: str) -> Set[str]:
        links = set()
        soup = BeautifulSoup(source, "html.parser")
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"]
            if not href.startswith(self.prefix):
                continue
            target = href[len(self.prefix):].split("#", 1)[0]
            # index.php?title=...&action=... style links are not pages
            if not target or "?" in target:
                continue
            links.add(unquote(target))
        return links


class CompositeStrategy(LinkStrategy):
    """Union of several strategies reading the same kind of source."""

    def __init__(self, *strategies: LinkStrategy):
        kinds = {s.source_kind for s in strategies}
        if len(kinds) != 1:
            raise ValueError("Composite strategies must share one source kind")
        self.strategies = strategies
        self.source_kind = kinds.pop()
        self.name = "+".join(s.name for s in strategies)

    def extract(self, identifier: str, source: str) -> Set[str]:
        links = set()
        for strategy in self.strategies:
            links |= strategy.extract(identifier, source)
        return links


STRATEGY_NAMES = ("brackets", "wikitext", "rendered")


def get_link_strategy(name: str, anchor_prefix: str = DEFAULT_ANCHOR_PREFIX) -> LinkStrategy:
    """Build the strategy for a configured name.

    Args:
        name: 'brackets' (bracket links only), 'wikitext' (bracket links and
            template invocations) or 'rendered' (rendered page anchors)
        anchor_prefix: Site-relative href prefix for the rendered strategy

    Raises:
        ValueError: If the name is unknown.
    """
    if name == "brackets":
        return BracketLinkStrategy()
    elif name == "wikitext":
        return CompositeStrategy(BracketLinkStrategy(), TemplateInvocationStrategy())
    elif name == "rendered":
        return RenderedAnchorStrategy(anchor_prefix)
    else:
        raise ValueError(
            f"Unknown link strategy: '{name}'. "
            f"Supported strategies: {', '.join(STRATEGY_NAMES)}"
        )
