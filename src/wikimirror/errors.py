"""Error taxonomy for per-page crawl failures.

Fetch, normalize and parse failures are returned inside a Result rather
than raised; StoreError is raised by page stores and caught by the engine.
None of these abort a crawl.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class WikiMirrorError(Exception):
    """Base class for all per-page failures."""
    def __init__(self, message: str, identifier: Optional[str] = None):
        self.message = message
        self.identifier = identifier
        super().__init__(message)


class TransportError(WikiMirrorError):
    """Non-success HTTP status or network failure."""
    def __init__(
        self,
        message: str,
        identifier: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        self.status_code = status_code
        self.url = url
        super().__init__(message, identifier)


class NormalizationError(WikiMirrorError):
    """Fetched markup too malformed to repair."""


class ParseError(WikiMirrorError):
    """Cleaned markup lacks the structure the mirror needs."""


class StoreError(WikiMirrorError):
    """A page could not be read or durably written; a failed write leaves nothing visible."""


@dataclass
class Result(Generic[T]):
    """Value-or-error outcome of a fetch, normalize or parse step."""
    value: Optional[T] = None
    error: Optional[WikiMirrorError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: WikiMirrorError) -> "Result[T]":
        return cls(error=error)
