"""
Shared fixtures for the moderation test suite.

Run with: pytest -v
"""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from flask import g
from flask.testing import FlaskClient

from app import create_app, db
from authorization import Caller
from config import TestingSettings
from content_directory import InMemoryContentDirectory
from notifier import Notifier


class FrozenClock:
    """Injectable clock that only moves when a test moves it."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 3, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def directory():
    """Two discussions with one post each.

    d1 is owned by owner-1, d2 by owner-2; both posts are written by author-1.
    """
    directory = InMemoryContentDirectory()
    directory.add_discussion('d1', 'owner-1', 'Gardening')
    directory.add_discussion('d2', 'owner-2', 'Cooking')
    directory.add_content('c1', 'd1', 'author-1', 'Tomatoes need full sun. ' * 20)
    directory.add_content('c2', 'd2', 'author-1', 'Slow roast at 150C for four hours.')
    return directory


@pytest.fixture
def notifier():
    notifier = MagicMock(spec=Notifier)
    notifier.notify.return_value = True
    notifier.send.return_value = True
    return notifier


@pytest.fixture
def app(directory, notifier, clock):
    """Create app with an in-memory database."""
    app = create_app(
        settings=TestingSettings(),
        content_directory=directory,
        notifier=notifier,
        clock=clock,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


class PerRequestCallerClient(FlaskClient):
    """Clears Flask-Login's cached user before each request.

    The app fixture holds one app context open for the whole test, so `g`
    outlives a single request.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture
def client(app):
    app.test_client_class = PerRequestCallerClient
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions['moderation']


@pytest.fixture
def admin():
    return Caller('admin-1', 'admin')


@pytest.fixture
def owner():
    return Caller('owner-1', 'creator')


@pytest.fixture
def other_owner():
    return Caller('owner-2', 'creator')


@pytest.fixture
def author():
    return Caller('author-1', 'contributor')


@pytest.fixture
def viewer():
    return Caller('viewer-1', 'viewer')


def headers_for(user_id, role='viewer'):
    return {'X-User-Id': user_id, 'X-User-Role': role}


@pytest.fixture
def as_admin():
    return headers_for('admin-1', 'admin')


@pytest.fixture
def as_owner():
    return headers_for('owner-1', 'creator')


@pytest.fixture
def as_author():
    return headers_for('author-1', 'contributor')


@pytest.fixture
def as_viewer():
    return headers_for('viewer-1', 'viewer')
