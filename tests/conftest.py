"""Pytest configuration for access_gate tests."""
from datetime import timedelta

import pytest

from access_gate import create_app
from access_gate.models import db
from access_gate.services.tokens import issue_session

OWNER_KEY = 'test-owner-key'
SESSION_SECRET = 'test-session-secret-0123456789abcdef'
GROUP_KEY_SECRET = 'test-group-key-secret'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'gate.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'OWNER_KEY': OWNER_KEY,
        'SESSION_SECRET': SESSION_SECRET,
        'GROUP_KEY_SECRET': GROUP_KEY_SECRET,
        'BASE_URL': 'http://testserver',
        'USE_REDIS': False,
        'CHECK_RATE_LIMIT': 0,
        'LINK_EXPIRY_GRACE_SECONDS': 0,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def owner_headers():
    return {'X-Owner-Key': OWNER_KEY}


@pytest.fixture
def session_for():
    """Build a bearer header for a user id."""
    def make(user_id, ttl=timedelta(minutes=10), secret=SESSION_SECRET, **claims):
        token = issue_session({'id': user_id, **claims}, ttl, secret=secret)
        return {'Authorization': f'Bearer {token}'}
    return make


@pytest.fixture
def make_link():
    from access_gate.services import links

    def make(mode='paid', ttl_hours=1, **kwargs):
        kwargs.setdefault('group_key_secret', GROUP_KEY_SECRET)
        return links.create_link(kwargs.pop('target_id', 'lecture-1'), mode, ttl_hours, **kwargs)
    return make
