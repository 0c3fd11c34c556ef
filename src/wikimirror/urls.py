"""Mapping from page identifiers to wiki URLs."""

from typing import Callable
from urllib.parse import quote

from wikimirror.config import MirrorConfig

# Keep namespace separators and subpage slashes readable
_SAFE_CHARS = "/:"


def make_normal_page_url(config: MirrorConfig, identifier: str) -> str:
    """URL of the rendered page, e.g. https://en.cppreference.com/w/cpp/language."""
    return f"{config.base_url}/{config.normal_page}/{quote(identifier, safe=_SAFE_CHARS)}"


def make_edit_page_url(config: MirrorConfig, identifier: str) -> str:
    """URL of the edit form, which carries the page source and its templates."""
    return (
        f"{config.base_url}/{config.edit_page}/index.php"
        f"?title={quote(identifier, safe=_SAFE_CHARS)}&action=edit"
    )


def url_builder_for(config: MirrorConfig, source_kind: str) -> Callable[[str], str]:
    """Pick the identifier -> URL function matching a link strategy's input.

    Args:
        config: Mirror configuration
        source_kind: 'wikitext' (edit page source) or 'rendered'

    Returns:
        Deterministic function from page identifier to fetch URL
    """
    if source_kind == "rendered":
        return lambda identifier: make_normal_page_url(config, identifier)
    return lambda identifier: make_edit_page_url(config, identifier)
