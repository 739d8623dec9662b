"""
Allow-list HTML cleaning for post bodies coming out of the rich-text editor.

Anything not listed is *stripped* (tag removed, inner text kept); nothing
is entity-escaped.  The raw-text elements in DISCARD_TAGS are the
exception: they go together with everything inside them.
"""

import re

import bleach
from bleach.sanitizer import ALLOWED_ATTRIBUTES, ALLOWED_PROTOCOLS, ALLOWED_TAGS

DISCARD_TAGS = ("script", "style", "textarea", "option", "noscript")

# element + body up to its closing tag; an unclosed one runs to the end,
# as it would in a browser
_DISCARD_RE = re.compile(
    r"<(%s)\b[^>]*>.*?(?:</\1\s*>|\Z)" % "|".join(DISCARD_TAGS),
    re.IGNORECASE | re.DOTALL,
)

# bleach's baseline set is tiny (a, b, em, li, …); add the block/inline
# elements an editor produces, plus h1/h2 and img.
EDITOR_TAGS = {
    # sections + headings
    "address", "article", "aside", "footer", "header", "hgroup", "main",
    "nav", "section", "h1", "h2", "h3", "h4", "h5", "h6",
    # block text
    "blockquote", "dd", "div", "dl", "dt", "figcaption", "figure", "hr",
    "li", "ol", "p", "pre", "ul",
    # inline text
    "a", "abbr", "b", "bdi", "bdo", "br", "cite", "code", "data", "dfn",
    "em", "i", "kbd", "mark", "q", "rb", "rp", "rt", "rtc", "ruby", "s",
    "samp", "small", "span", "strong", "sub", "sup", "time", "u", "var",
    "wbr",
    # tables
    "caption", "col", "colgroup", "table", "tbody", "td", "tfoot", "th",
    "thead", "tr",
    # media
    "img",
}

POST_TAGS = frozenset(ALLOWED_TAGS) | EDITOR_TAGS

POST_ATTRIBUTES = {
    **ALLOWED_ATTRIBUTES,
    "img": ["src", "alt", "title"],
    "a": ["href", "target", "rel"],
}


def sanitize_html(html: str | None) -> str:
    """Return *html* with every tag / attribute outside the allow-list removed."""
    if not html:
        return ""
    return bleach.clean(
        _DISCARD_RE.sub("", html),
        tags=POST_TAGS,
        attributes=POST_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
    )
