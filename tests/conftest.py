"""
tests/conftest.py
"""
from __future__ import annotations

import datetime as _dt
import itertools
from pathlib import Path
from typing import Generator

import pytest
from flask.testing import FlaskClient
from pytest import MonkeyPatch

from letterpress.blog import app
from letterpress.repositories import SQLiteAuthorRepository, SQLitePostRepository
from letterpress.store import get_db, init_db

ADMIN_PASSWORD = "correct horse battery staple"
CSRF = "test-token"          # shared constant so the token matches the session

_ip_counter = itertools.count(1)


@pytest.fixture(scope="session")
def _tmp_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """One temp file for the whole test session (faster than per-test)."""
    return tmp_path_factory.mktemp("data") / "test.sqlite3"


@pytest.fixture(scope="session", autouse=True)
def _configure_app(_tmp_db_path: Path) -> None:
    """
    Configure the Flask app *once* before the first test is collected.
    """
    app.config.update(
        TESTING=True,
        DATABASE=str(_tmp_db_path),
        ADMIN_PASSWORD=ADMIN_PASSWORD,
    )
    with app.app_context():
        init_db()


@pytest.fixture(autouse=True, scope="session")
def _fast_clock():
    """
    Patch letterpress.store.utc_now for the whole session so every call
    returns an ever-increasing timestamp: creation order is always strict.
    """
    from letterpress import store  # import here to avoid early import

    counter = itertools.count()         # 0, 1, 2, …
    base = _dt.datetime(2099, 1, 1, tzinfo=_dt.timezone.utc)

    def _fake_now():
        return base + _dt.timedelta(seconds=next(counter))

    mp = MonkeyPatch()
    mp.setattr(store, "utc_now", _fake_now)

    yield                               # tests run here

    mp.undo()


@pytest.fixture(autouse=True)
def _empty_tables() -> None:
    """Every test starts with no posts and no authors."""
    with app.app_context():
        db = get_db()
        db.execute("DELETE FROM posts")
        db.execute("DELETE FROM authors")
        db.commit()


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    """
    Test client + app context.  Each test gets its own REMOTE_ADDR so the
    /login rate limit (keyed by IP) never bleeds between tests.
    """
    with app.test_client() as client:
        n = next(_ip_counter)
        client.environ_base["REMOTE_ADDR"] = f"10.0.{n // 250}.{n % 250 + 1}"
        with app.app_context():
            yield client


@pytest.fixture
def admin(client: FlaskClient) -> FlaskClient:
    """The same client, already past the session gate."""
    with client.session_transaction() as sess:
        sess["logged_in"] = True
        sess["csrf"] = CSRF
    return client


@pytest.fixture
def authors(client) -> SQLiteAuthorRepository:
    return SQLiteAuthorRepository(get_db())


@pytest.fixture
def posts(client) -> SQLitePostRepository:
    return SQLitePostRepository(get_db())
