"""Best-effort repair of fetched markup."""

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from wikimirror.errors import NormalizationError, Result


def normalize_markup(raw_markup: bytes) -> Result[str]:
    """Repair malformed or partial HTML into well-formed markup.

    Unclosed tags are closed and stray end tags dropped by the parser;
    the repaired tree is serialized back to a string.

    Args:
        raw_markup: Response body as fetched

    Returns:
        Result holding the cleaned markup or a NormalizationError
    """
    if not raw_markup or not raw_markup.strip():
        return Result.fail(NormalizationError("cannot normalize empty document"))

    try:
        soup = BeautifulSoup(raw_markup, "html.parser")
    except (ParserRejectedMarkup, ValueError) as e:
        return Result.fail(NormalizationError(f"cannot convert html: {e}"))

    if soup.find(True) is None:
        return Result.fail(NormalizationError("cannot convert html: no elements found"))

    return Result.ok(str(soup))
