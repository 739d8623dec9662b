"""
Data access for authors and posts.

Every public method either returns data or a falsy value (``None`` /
``False`` / ``[]``); store errors are logged and swallowed here, so a
caller cannot tell "not found" from "constraint violated" from "database
locked".  Nothing is cached: each call re-queries the connection it was
built with.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Protocol

from letterpress import store
from letterpress.sanitize import sanitize_html
from letterpress.slugs import slugify

logger = logging.getLogger(__name__)


###############################################################################
# Records
###############################################################################
@dataclass
class Author:
    id: int
    name: str
    email: str | None
    bio: str | None
    created_at: str
    updated_at: str
    post_count: int | None = None  # only filled by list_with_post_count()

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Author":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            bio=row["bio"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            post_count=row["post_count"] if "post_count" in row.keys() else None,
        )


@dataclass
class Post:
    id: int
    title: str
    slug: str
    excerpt: str
    content: str
    author_id: int | None
    created_at: str
    updated_at: str
    author_name: str | None = None
    author_email: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Post":
        return cls(
            id=row["id"],
            title=row["title"],
            slug=row["slug"],
            excerpt=row["excerpt"],
            content=row["content"],
            author_id=row["author_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            author_name=row["author_name"],
            author_email=row["author_email"],
        )


###############################################################################
# Capabilities
###############################################################################
class AuthorRepository(Protocol):
    def list_all(self) -> list[Author]: ...

    def get_by_id(self, author_id: int | str) -> Author | None: ...

    def create(
        self, *, name: str, email: str | None = None, bio: str | None = None
    ) -> Author | None: ...

    def update(
        self,
        author_id: int | str,
        *,
        name: str,
        email: str | None = None,
        bio: str | None = None,
    ) -> Author | None: ...

    def delete(self, author_id: int | str) -> bool: ...

    def search(self, query: str) -> list[Author]: ...

    def list_with_post_count(self) -> list[Author]: ...


class PostRepository(Protocol):
    def list_all(self) -> list[Post]: ...

    def get_by_id(self, post_id: int | str) -> Post | None: ...

    def get_by_slug(self, slug: str) -> Post | None: ...

    def create(
        self,
        *,
        title: str,
        excerpt: str,
        content: str,
        author_id: int | None = None,
    ) -> Post | None: ...

    def update(
        self,
        post_id: int | str,
        *,
        title: str,
        excerpt: str,
        content: str,
        author_id: int | None = None,
    ) -> Post | None: ...

    def delete(self, post_id: int | str) -> bool: ...

    def search(self, query: str) -> list[Post]: ...


###############################################################################
# Helpers
###############################################################################
def parse_id(value) -> int | None:
    """'12' / 12 → 12; anything non-numeric → None."""
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def like_pattern(query: str) -> str:
    """Substring pattern for ``LIKE ? ESCAPE '\\'`` with wildcards neutralised."""
    escaped = (
        (query or "").replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


def _blank_to_none(value: str | None) -> str | None:
    return value if value else None


def _read(db: sqlite3.Connection, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    """Run a SELECT; a store error is logged and reads as "no rows"."""
    try:
        return db.execute(sql, params).fetchall()
    except sqlite3.Error:
        logger.exception("Error reading from the store")
        return []


###############################################################################
# SQLite implementations
###############################################################################
AUTHOR_COLS = "id, name, email, bio, created_at, updated_at"


class SQLiteAuthorRepository:
    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def list_all(self) -> list[Author]:
        rows = _read(self.db, f"SELECT {AUTHOR_COLS} FROM authors ORDER BY name ASC")
        return [Author.from_row(r) for r in rows]

    def get_by_id(self, author_id: int | str) -> Author | None:
        aid = parse_id(author_id)
        if aid is None:
            return None
        rows = _read(self.db, f"SELECT {AUTHOR_COLS} FROM authors WHERE id=?", (aid,))
        return Author.from_row(rows[0]) if rows else None

    def create(
        self, *, name: str, email: str | None = None, bio: str | None = None
    ) -> Author | None:
        now = store.now_iso()
        try:
            cur = self.db.execute(
                """
                INSERT INTO authors (name, email, bio, created_at, updated_at)
                     VALUES (?,?,?,?,?)
                """,
                (name, _blank_to_none(email), _blank_to_none(bio), now, now),
            )
            self.db.commit()
        except sqlite3.Error:
            self.db.rollback()
            logger.exception("Error creating author %r", name)
            return None
        return self.get_by_id(cur.lastrowid)

    def update(
        self,
        author_id: int | str,
        *,
        name: str,
        email: str | None = None,
        bio: str | None = None,
    ) -> Author | None:
        aid = parse_id(author_id)
        if aid is None:
            return None
        try:
            cur = self.db.execute(
                """
                UPDATE authors
                   SET name=?, email=?, bio=?, updated_at=?
                 WHERE id=?
                """,
                (name, _blank_to_none(email), _blank_to_none(bio), store.now_iso(), aid),
            )
            self.db.commit()
        except sqlite3.Error:
            self.db.rollback()
            logger.exception("Error updating author %s", aid)
            return None
        if cur.rowcount == 0:
            return None
        return self.get_by_id(aid)

    def delete(self, author_id: int | str) -> bool:
        aid = parse_id(author_id)
        if aid is None:
            return False
        try:
            # posts.author_id is cleared by ON DELETE SET NULL
            cur = self.db.execute("DELETE FROM authors WHERE id=?", (aid,))
            self.db.commit()
        except sqlite3.Error:
            self.db.rollback()
            logger.exception("Error deleting author %s", aid)
            return False
        return cur.rowcount > 0

    def search(self, query: str) -> list[Author]:
        pattern = like_pattern(query)
        rows = _read(
            self.db,
            f"""
            SELECT {AUTHOR_COLS}
              FROM authors
             WHERE name  LIKE ? ESCAPE '\\'
                OR email LIKE ? ESCAPE '\\'
             ORDER BY name ASC
            """,
            (pattern, pattern),
        )
        return [Author.from_row(r) for r in rows]

    def list_with_post_count(self) -> list[Author]:
        rows = _read(
            self.db,
            """
            SELECT a.id, a.name, a.email, a.bio, a.created_at, a.updated_at,
                   COUNT(p.id) AS post_count
              FROM authors a
         LEFT JOIN posts p ON p.author_id = a.id
          GROUP BY a.id
          ORDER BY a.name ASC
            """
        )
        return [Author.from_row(r) for r in rows]


POST_SELECT = """
    SELECT p.id, p.title, p.slug, p.excerpt, p.content, p.author_id,
           p.created_at, p.updated_at,
           a.name  AS author_name,
           a.email AS author_email
      FROM posts p
 LEFT JOIN authors a ON a.id = p.author_id
"""
POST_ORDER = "ORDER BY p.created_at DESC, p.id DESC"


class SQLitePostRepository:
    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def _one(self, where: str, params: tuple) -> Post | None:
        rows = _read(self.db, f"{POST_SELECT} WHERE {where}", params)
        return Post.from_row(rows[0]) if rows else None

    def list_all(self) -> list[Post]:
        rows = _read(self.db, f"{POST_SELECT} {POST_ORDER}")
        return [Post.from_row(r) for r in rows]

    def get_by_id(self, post_id: int | str) -> Post | None:
        pid = parse_id(post_id)
        if pid is None:
            return None
        return self._one("p.id=?", (pid,))

    def get_by_slug(self, slug: str) -> Post | None:
        return self._one("p.slug=?", (slug,))

    def create(
        self,
        *,
        title: str,
        excerpt: str,
        content: str,
        author_id: int | None = None,
    ) -> Post | None:
        slug = slugify(title)
        now = store.now_iso()
        try:
            cur = self.db.execute(
                """
                INSERT INTO posts
                       (title, slug, excerpt, content, author_id, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?)
                """,
                (title, slug, excerpt, sanitize_html(content), author_id, now, now),
            )
            self.db.commit()
        except sqlite3.Error:
            self.db.rollback()
            logger.exception("Error creating post %r (slug %r)", title, slug)
            return None
        return self.get_by_id(cur.lastrowid)

    def update(
        self,
        post_id: int | str,
        *,
        title: str,
        excerpt: str,
        content: str,
        author_id: int | None = None,
    ) -> Post | None:
        pid = parse_id(post_id)
        if pid is None:
            return None
        # the slug follows the title, so renaming a post moves its URL
        slug = slugify(title)
        try:
            cur = self.db.execute(
                """
                UPDATE posts
                   SET title=?, slug=?, excerpt=?, content=?, author_id=?, updated_at=?
                 WHERE id=?
                """,
                (
                    title,
                    slug,
                    excerpt,
                    sanitize_html(content),
                    author_id,
                    store.now_iso(),
                    pid,
                ),
            )
            self.db.commit()
        except sqlite3.Error:
            self.db.rollback()
            logger.exception("Error updating post %s (slug %r)", pid, slug)
            return None
        if cur.rowcount == 0:
            return None
        return self.get_by_id(pid)

    def delete(self, post_id: int | str) -> bool:
        pid = parse_id(post_id)
        if pid is None:
            return False
        try:
            cur = self.db.execute("DELETE FROM posts WHERE id=?", (pid,))
            self.db.commit()
        except sqlite3.Error:
            self.db.rollback()
            logger.exception("Error deleting post %s", pid)
            return False
        return cur.rowcount > 0

    def search(self, query: str) -> list[Post]:
        pattern = like_pattern(query)
        rows = _read(
            self.db,
            f"""
            {POST_SELECT}
             WHERE p.title   LIKE ? ESCAPE '\\'
                OR p.excerpt LIKE ? ESCAPE '\\'
                OR p.content LIKE ? ESCAPE '\\'
            {POST_ORDER}
            """,
            (pattern, pattern, pattern),
        )
        return [Post.from_row(r) for r in rows]
