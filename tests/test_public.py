"""
tests/test_public.py – public blog pages
"""
from __future__ import annotations

import re


def _titles(html: str) -> list[str]:
    return re.findall(r'href="/posts/[^"]+">([^<]+)</a></h2>', html)


def test_root_redirects_to_posts(client):
    rv = client.get("/")
    assert rv.status_code == 302
    assert rv.headers["Location"] == "/posts"


def test_empty_blog(client):
    rv = client.get("/posts")
    assert rv.status_code == 200
    assert b"No posts yet." in rv.data


def test_public_listing_pages_by_six(client, posts):
    for n in range(8):
        posts.create(title=f"Story {n}", excerpt=f"about {n}", content="c")

    page1 = client.get("/posts").data.decode()
    assert _titles(page1) == [f"Story {n}" for n in (7, 6, 5, 4, 3, 2)]
    assert "Next →" in page1 and "← Previous" not in page1

    page2 = client.get("/posts?page=2").data.decode()
    assert _titles(page2) == ["Story 1", "Story 0"]
    assert "← Previous" in page2 and "Next →" not in page2

    assert _titles(client.get("/posts?page=3").data.decode()) == []


def test_bad_page_numbers_fall_back_to_first_page(client, posts):
    posts.create(title="Only", excerpt="e", content="c")
    for q in ("abc", "0", "-4"):
        assert _titles(client.get(f"/posts?page={q}").data.decode()) == ["Only"]


def test_public_search(client, posts):
    posts.create(title="Alpha", excerpt="e", content="<p>one</p>")
    posts.create(title="Beta", excerpt="e", content="<p>two</p>")
    assert _titles(client.get("/posts?search=two").data.decode()) == ["Beta"]


def test_show_post_renders_sanitized_html(client, posts, authors):
    a = authors.create(name="Poet")
    posts.create(
        title="Rendered",
        excerpt="e",
        content="<p>Some <strong>bold</strong> text</p><script>x()</script>",
        author_id=a.id,
    )
    rv = client.get("/posts/rendered")
    assert rv.status_code == 200
    assert b"<strong>bold</strong>" in rv.data
    assert b"<script>" not in rv.data
    assert b"x()" not in rv.data
    assert b"by Poet" in rv.data
    assert b"January 1, 2099" in rv.data


def test_show_missing_post_is_404(client):
    rv = client.get("/posts/nothing-here")
    assert rv.status_code == 404
    assert b"Page not found" in rv.data
