"""Interpretation of normalized MediaWiki edit pages."""

from typing import Set, Tuple

from bs4 import BeautifulSoup

from wikimirror.constants import SOURCE_TEXTAREA_NAME, TEMPLATES_USED_SELECTOR
from wikimirror.errors import ParseError, Result


def parse_edit_page(markup: str) -> Result[Tuple[str, Set[str]]]:
    """Pull the page source and the templates it uses out of an edit page.

    The source is the text of the wpTextbox1 textarea. Templates are the
    link texts of the "Templates used on this page" list, first anchor
    of each item.

    Args:
        markup: Normalized edit page markup

    Returns:
        Result holding (source, templates) or a ParseError
    """
    soup = BeautifulSoup(markup, "html.parser")

    textarea = soup.find("textarea", attrs={"name": SOURCE_TEXTAREA_NAME})
    if textarea is None:
        return Result.fail(ParseError(f"no textarea named {SOURCE_TEXTAREA_NAME}"))
    source = textarea.get_text()

    templates = set()
    for item in soup.select(TEMPLATES_USED_SELECTOR):
        anchor = item.find("a")
        if anchor is None:
            continue
        name = anchor.get_text(strip=True)
        if name:
            templates.add(name)

    return Result.ok((source, templates))
