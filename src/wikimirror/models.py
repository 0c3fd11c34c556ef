"""Data models for the wiki mirror."""

from dataclasses import dataclass, field
from typing import FrozenSet


@dataclass(frozen=True)
class Page:
    """A resolved wiki page.

    Pages are never mutated once built. `links` is always recomputed from
    `raw_content`; `templates` comes from the edit page or the store.
    """

    identifier: str
    raw_content: str
    links: FrozenSet[str] = frozenset()
    templates: FrozenSet[str] = frozenset()
    from_cache: bool = False

    def references(self) -> FrozenSet[str]:
        """All page identifiers this page points at."""
        return self.links | self.templates


@dataclass
class StoredPage:
    """A page record as held by a page store."""

    identifier: str
    content: str
    templates: set[str] = field(default_factory=set)


@dataclass
class FetchResponse:
    """Successful HTTP response for a page URL."""

    url: str
    body: bytes
    status_code: int = 200


@dataclass
class CrawlStats:
    """Counters for one crawl run."""

    loaded: int = 0  # resolved from the store
    fetched: int = 0  # resolved over the network
    failed: int = 0
    excluded: int = 0
    store_errors: int = 0
    sweeps: int = 0

    def to_dict(self) -> dict:
        return {
            "loaded": self.loaded,
            "fetched": self.fetched,
            "failed": self.failed,
            "excluded": self.excluded,
            "store_errors": self.store_errors,
            "sweeps": self.sweeps,
        }
