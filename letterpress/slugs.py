import re

# ASCII word characters only; accented letters are dropped, not transliterated
_NON_SLUG_RE = re.compile(r"[^A-Za-z0-9_\s-]")
_SPACE_RE = re.compile(r"\s+")
_DASH_RE = re.compile(r"-+")


def slugify(title: str) -> str:
    """
    Turn a post title into its URL token.

    "Hello,  World -- again!" → "hello-world-again"

    Deterministic: equal titles give equal slugs, so two posts with the
    same title collide on the UNIQUE(slug) constraint.
    """
    slug = _NON_SLUG_RE.sub("", (title or "").lower().strip())
    slug = _SPACE_RE.sub("-", slug)
    return _DASH_RE.sub("-", slug)
