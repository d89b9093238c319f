"""
Shared fixtures: a fake backend behind a real ApiClient, in-memory session
storage, and repositories wired to one session store.
"""

import pytest

from shared.api_client import ApiClient
from shared.storage import MemoryStorage
from session import SessionStore
from repositories import (
    AudioItemRepository,
    FavoritesRepository,
    SoundspotRepository,
    SubscriptionRepository,
)

from tests.fake_backend import BASE_URL, FakeBackend


@pytest.fixture
def backend():
    backend = FakeBackend()
    backend.add_user("ana@example.com", "secret", role="user", name="Ana")
    backend.add_user("root@example.com", "admin-pass", role="admin", name="Root")
    backend.add_user("rita@example.com", "review-pass", role="reviewer", name="Rita")
    return backend


@pytest.fixture
def api(backend):
    return ApiClient(base_url=BASE_URL, timeout=5, session=backend)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def session(api, storage):
    return SessionStore(api, storage)


@pytest.fixture
def logged_in(session):
    session.login("ana@example.com", "secret")
    return session


@pytest.fixture
def admin(session):
    session.admin_login("root@example.com", "admin-pass")
    return session


@pytest.fixture
def spots(api, session):
    return SoundspotRepository(api, session)


@pytest.fixture
def audio_items(api, session):
    return AudioItemRepository(api, session)


@pytest.fixture
def favorites(api, session):
    return FavoritesRepository(api, session)


@pytest.fixture
def subscriptions(api, session):
    return SubscriptionRepository(api, session)
