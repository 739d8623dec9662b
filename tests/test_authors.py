"""
tests/test_authors.py – author repository against the SQLite store
"""
from __future__ import annotations

from letterpress.store import get_db


def _count(table: str) -> int:
    return get_db().execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def test_create_then_get_round_trips(authors):
    a = authors.create(name="Ada Lovelace", email="ada@example.com", bio="Notes.")
    assert a is not None

    got = authors.get_by_id(a.id)
    assert got == a
    assert (got.name, got.email, got.bio) == ("Ada Lovelace", "ada@example.com", "Notes.")
    assert got.created_at == got.updated_at
    assert got.created_at.startswith("2099-")


def test_get_by_id_accepts_numeric_strings(authors):
    a = authors.create(name="Grace")
    assert authors.get_by_id(str(a.id)) == a
    assert authors.get_by_id("nope") is None
    assert authors.get_by_id(a.id + 1000) is None


def test_optional_fields_are_stored_as_null(authors):
    a = authors.create(name="No Email", email="", bio="")
    b = authors.create(name="Also No Email")
    assert a.email is None and a.bio is None
    assert b is not None                        # two NULL emails don't collide


def test_duplicate_email_fails_without_second_row(authors):
    assert authors.create(name="First", email="dup@example.com")
    assert authors.create(name="Second", email="dup@example.com") is None
    assert _count("authors") == 1


def test_update_overwrites_and_refreshes_timestamp(authors):
    a = authors.create(name="Old", email="old@example.com", bio="old bio")
    b = authors.update(a.id, name="New", email="", bio="new bio")

    assert b.id == a.id
    assert (b.name, b.email, b.bio) == ("New", None, "new bio")
    assert b.created_at == a.created_at
    assert b.updated_at > a.updated_at


def test_update_missing_or_conflicting(authors):
    assert authors.update(99999, name="Ghost") is None

    authors.create(name="Taken", email="taken@example.com")
    other = authors.create(name="Other", email="other@example.com")
    assert authors.update(other.id, name="Other", email="taken@example.com") is None
    assert authors.get_by_id(other.id).email == "other@example.com"


def test_delete(authors):
    a = authors.create(name="Temp")
    assert authors.delete(a.id) is True
    assert authors.delete(a.id) is False
    assert authors.get_by_id(a.id) is None


def test_delete_orphans_posts_instead_of_deleting_them(authors, posts):
    a = authors.create(name="Prolific")
    for n in range(3):
        posts.create(title=f"Orphan {n}", excerpt="e", content="<p>c</p>", author_id=a.id)

    assert authors.delete(a.id)

    assert _count("posts") == 3
    remaining = posts.list_all()
    assert all(p.author_id is None and p.author_name is None for p in remaining)


def test_list_all_orders_by_name(authors):
    for name in ("Zed", "amy", "Mike"):
        authors.create(name=name)
    # SQLite's default BINARY collation: upper-case sorts before lower-case
    assert [a.name for a in authors.list_all()] == ["Mike", "Zed", "amy"]


def test_search_matches_name_or_email(authors):
    authors.create(name="Alice", email="alice@wonder.land")
    authors.create(name="Bob", email="bob@builder.example")
    authors.create(name="Carol")

    assert [a.name for a in authors.search("wonder")] == ["Alice"]
    assert [a.name for a in authors.search("bo")] == ["Bob"]
    assert authors.search("%") == []            # wildcard is literal


def test_search_empty_query_returns_everyone(authors):
    for name in ("A", "B", "C"):
        authors.create(name=name)
    assert len(authors.search("")) == 3


def test_list_with_post_count(authors, posts):
    busy = authors.create(name="Busy")
    authors.create(name="Idle")
    posts.create(title="One", excerpt="e", content="c", author_id=busy.id)
    posts.create(title="Two", excerpt="e", content="c", author_id=busy.id)
    posts.create(title="Nobody's", excerpt="e", content="c")

    counts = {a.name: a.post_count for a in authors.list_with_post_count()}
    assert counts == {"Busy": 2, "Idle": 0}
