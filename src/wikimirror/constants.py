# src/wikimirror/constants.py
"""Centralized constants for the wiki mirror.

Site layout defaults and the fixed heuristics used by the link extractor
and the crawl engine. For user-configurable values, see config.py and
MirrorConfig.
"""

# =============================================================================
# Site Layout Defaults
# =============================================================================

DEFAULT_PROTOCOL = "https"
DEFAULT_HOST = "cppreference.com"
DEFAULT_LANG = "en"

# Path segment for rendered pages (https://en.cppreference.com/w/<page>)
DEFAULT_NORMAL_PAGE = "w"

# Path segment for the MediaWiki script directory used by edit/source pages
DEFAULT_EDIT_PAGE = "mwiki"

DEFAULT_START_PAGE = "Main_Page"

# Site-relative prefix of hyperlinks pointing at other wiki pages
DEFAULT_ANCHOR_PREFIX = "/w/"

DEFAULT_MIRROR_ROOT = "cppreference"
DEFAULT_DATABASE_URL = "sqlite:///cppreference.db"
DEFAULT_USER_AGENT = "wikimirror/0.1 (+https://en.cppreference.com mirror)"

# =============================================================================
# Fetching
# =============================================================================

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_RETRIES = 3
EXPONENTIAL_BACKOFF_BASE = 2

# =============================================================================
# Edit Page Structure
# =============================================================================

# Name of the <textarea> holding the page source on an edit page
SOURCE_TEXTAREA_NAME = "wpTextbox1"

# CSS selector for the "Templates used on this page" list of an edit page
TEMPLATES_USED_SELECTOR = "div.templatesUsed li"

# =============================================================================
# Link Extraction Heuristics
# =============================================================================

BRACKET_LINK_MARKERS = ("[[", "]]")
TEMPLATE_MARKERS = ("{{", "}}")

# A candidate target containing any of these is an embedded template,
# a section anchor, a disambiguator or HTML, never a plain page link
REJECTED_TARGET_CHARS = ("{", "#", "(", "<")

# Template invocation names that carry a page reference in their first argument
LINK_TEMPLATE_PREFIXES = (
    "dsc",
    "ltt",
    "ltf",
    "lc",
    "lt",
    "ls",
    "tt",
    "header",
    "attr",
)

# Removed from invocation targets ("{{dsc inc|dsc cpp/...}}" style arguments)
DSC_TARGET_NOISE = "dsc "

# Page identifier prefix -> language directory for path-synthesising templates
LANGUAGE_ROOTS = {
    "c/": "c",
    "cpp/": "cpp",
}

# =============================================================================
# Crawl Exclusions
# =============================================================================

# Discussion, user, file and special namespaces are never mirrored
EXCLUDED_NAMESPACE_PREFIXES = (
    "Talk:",
    "Template talk:",
    "Template_talk:",
    "File:",
    "File talk:",
    "File_talk:",
    "User:",
    "User talk:",
    "User_talk:",
    "Special:",
    "Cppreference talk:",
    "Cppreference_talk:",
)

# Interwiki prefixes of the non-English editions
EXCLUDED_LANGUAGE_CODES = (
    "ar",
    "cs",
    "de",
    "es",
    "fr",
    "it",
    "ja",
    "ko",
    "pl",
    "pt",
    "ru",
    "tr",
    "zh",
)

DEFAULT_EXCLUDED_PREFIXES = EXCLUDED_NAMESPACE_PREFIXES + tuple(
    f"{code}:" for code in EXCLUDED_LANGUAGE_CODES
)
