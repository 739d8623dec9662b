"""
Import posts from the old JSON-file store.

The pre-SQLite build kept everything in one document::

    {"posts": [{"id": 1, "title": "...", "slug": "...", "excerpt": "...",
                "content": "<p>...</p>", "author": "Jane",
                "createdAt": "2024-05-01T10:00:00.000Z",
                "updatedAt": "2024-05-01T10:00:00.000Z"}],
     "nextId": 2}

Authors were free text.  They are matched to existing authors by exact
name (or created); "Anonymous" and blanks become "no author".
"""

import json
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from letterpress import store
from letterpress.sanitize import sanitize_html
from letterpress.slugs import slugify

ANONYMOUS = "anonymous"


@dataclass
class ImportResult:
    imported: int = 0
    skipped: list[str] = field(default_factory=list)


def load_legacy_file(path: str | Path) -> dict:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not isinstance(data.get("posts"), list):
        raise ValueError("expected a JSON object with a 'posts' list")
    return data


def _text(entry: dict, key: str) -> str:
    value = entry.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key!r} must be a string, got {type(value).__name__}")
    return value.strip()


def _legacy_post(entry) -> dict[str, str]:
    """The string fields of one legacy post; ValueError for a malformed entry."""
    if not isinstance(entry, dict):
        raise ValueError(f"expected an object, got {type(entry).__name__}")
    fields = {
        k: _text(entry, k)
        for k in ("title", "slug", "excerpt", "content", "author", "createdAt", "updatedAt")
    }
    if not (fields["title"] and fields["excerpt"] and fields["content"]):
        raise ValueError("title, excerpt and content are required")
    fields["slug"] = fields["slug"] or slugify(fields["title"])
    return fields


def _author_id(name: str, *, db: sqlite3.Connection) -> int | None:
    if not name or name.lower() == ANONYMOUS:
        return None
    row = db.execute(
        "SELECT id FROM authors WHERE name=? ORDER BY id LIMIT 1", (name,)
    ).fetchone()
    if row:
        return row["id"]
    now = store.now_iso()
    cur = db.execute(
        "INSERT INTO authors (name, created_at, updated_at) VALUES (?,?,?)",
        (name, now, now),
    )
    return cur.lastrowid


def import_legacy_posts(data: dict, *, db: sqlite3.Connection) -> ImportResult:
    """
    Copy every post of *data* into the store.  Posts whose slug already
    exists are skipped, not updated; so are malformed entries (not an
    object, non-string fields, missing title/excerpt/content), reported as
    ``#<id>`` or ``#<position>``.
    """
    result = ImportResult()
    for n, entry in enumerate(data.get("posts", []), 1):
        try:
            p = _legacy_post(entry)
        except ValueError:
            ref = entry.get("id", n) if isinstance(entry, dict) else n
            result.skipped.append(f"#{ref}")
            continue
        if db.execute("SELECT 1 FROM posts WHERE slug=?", (p["slug"],)).fetchone():
            result.skipped.append(p["slug"])
            continue

        created = p["createdAt"] or store.now_iso()
        db.execute(
            """
            INSERT INTO posts
                   (title, slug, excerpt, content, author_id, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?)
            """,
            (
                p["title"],
                p["slug"],
                p["excerpt"],
                sanitize_html(p["content"]),
                _author_id(p["author"], db=db),
                created,
                p["updatedAt"] or created,
            ),
        )
        result.imported += 1
    db.commit()
    return result
