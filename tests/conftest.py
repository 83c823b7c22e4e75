"""
Shared fixtures: an app on in-memory SQLite with a fixed clock, a few users and
titles, and helpers to log in over HTTP.
"""
from datetime import datetime

import pytest

from booklend import create_app
from booklend.clock import FixedClock
from booklend.config import TestConfig
from booklend.extensions import db
from booklend.models.enums import Role
from booklend.models.title import Title
from booklend.services.auth_service import AuthService, session_for
from booklend.services.change_feed import current_feed
from booklend.services.notification_center import current_center

PASSWORD = "secret-pass"


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 10, 0, 0))


@pytest.fixture
def app(clock):
    app = create_app(TestConfig, clock=clock)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def feed(app):
    return current_feed()


@pytest.fixture
def center(app):
    return current_center()


@pytest.fixture
def librarian(app):
    return AuthService.register("libby", "libby@library.local", PASSWORD, "Libby Librarian", Role.LIBRARIAN)


@pytest.fixture
def patron_a(app):
    return AuthService.register("alice", "alice@example.com", PASSWORD, "Alice Reader")


@pytest.fixture
def patron_b(app):
    return AuthService.register("bob", "bob@example.com", PASSWORD, "Bob Reader")


@pytest.fixture
def lib_ctx(librarian):
    return session_for(librarian)


@pytest.fixture
def ctx_a(patron_a):
    return session_for(patron_a)


@pytest.fixture
def ctx_b(patron_b):
    return session_for(patron_b)


def _add_title(name="Dune", total=1, available=None, **extra):
    t = Title(
        title=name,
        author_name=extra.pop("author_name", "Frank Herbert"),
        category=extra.pop("category", "sci-fi"),
        total_copies=total,
        available_copies=total if available is None else available,
        borrow_count=0,
        **extra,
    )
    db.session.add(t)
    db.session.commit()
    return t


@pytest.fixture
def make_title(app):
    return _add_title


@pytest.fixture
def single_copy(app):
    return _add_title("Dune", total=1)


@pytest.fixture
def shelf(app):
    return _add_title("Clean Code", total=3, author_name="Robert C. Martin", category="software")


@pytest.fixture
def login(client):
    """Log in over HTTP and return the auth header."""

    def _login(username, password=PASSWORD):
        resp = client.post("/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}

    return _login
