"""
tests/test_pagination.py – handler paging over an in-memory repository
"""
from __future__ import annotations

import math

import pytest

import letterpress.blog as blog
from letterpress.blog import paginate
from letterpress.repositories import Post


class InMemoryPostRepository:
    """Just enough of PostRepository for the listing handlers."""

    def __init__(self, count: int):
        self.calls: list[tuple] = []
        self.rows = [
            Post(
                id=n,
                title=f"Fake {n:03d}",
                slug=f"fake-{n:03d}",
                excerpt="e",
                content="c",
                author_id=None,
                created_at=f"2030-01-01T00:{n // 60:02d}:{n % 60:02d}+00:00",
                updated_at=f"2030-01-01T00:{n // 60:02d}:{n % 60:02d}+00:00",
            )
            for n in range(count, 0, -1)                    # newest first
        ]

    def list_all(self):
        self.calls.append(("list_all",))
        return list(self.rows)

    def search(self, query):
        self.calls.append(("search", query))
        return [p for p in self.rows if query in p.title]


@pytest.mark.parametrize("total,per_page", [(0, 6), (5, 6), (6, 6), (23, 10), (61, 6)])
def test_paginate_slices_and_flags(total, per_page):
    items = list(range(total))
    pages = math.ceil(total / per_page)
    for k in range(1, pages + 2):
        pg = paginate(items, page=k, per_page=per_page)
        assert pg.items == items[(k - 1) * per_page : k * per_page]
        assert pg.total == total
        assert pg.pages == pages
        assert pg.has_next is (k < pages)
        assert pg.has_previous is (k > 1)


def test_public_listing_uses_list_all(client, monkeypatch):
    fake = InMemoryPostRepository(20)
    monkeypatch.setattr(blog, "post_repository", lambda: fake)

    html = client.get("/posts?page=4").data.decode()
    assert fake.calls == [("list_all",)]
    assert "Fake 002" in html and "Fake 001" in html and "Fake 003" not in html
    assert "Page 4 of 4" in html


def test_admin_listing_switches_to_search(admin, monkeypatch):
    fake = InMemoryPostRepository(30)
    monkeypatch.setattr(blog, "post_repository", lambda: fake)

    html = admin.get("/admin/posts?search=Fake 01&page=1").data.decode()
    assert fake.calls == [("search", "Fake 01")]
    # "Fake 010" … "Fake 019" → ten hits, exactly one admin page
    assert html.count("Fake 01") >= 10
    assert "Page 1 of" not in html
