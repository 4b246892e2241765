import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from tracking_api.auth import create_access_token
from tracking_api.config import Settings
from tracking_api.main import create_app
from tracking_api.memory import MemoryBeaconRegistry, MemoryCredentialStore, MemoryEntityStore
from tracking_api.notifier import Notifier
from tracking_api.schemas import Role
from tracking_api.services import TrackedItemService, TrackedUserService

from .helpers import UNTRACKED_USER_ID, USER_ID, demo_beacons


@pytest.fixture
def settings():
    return Settings(secret_key="test-secret-key", store_backend="memory", history_limit=500)


@pytest.fixture
def users():
    credentials = MemoryCredentialStore()
    credentials.add_user("testingName", Role.operator, uid=USER_ID)
    credentials.add_user("dummyuser", Role.viewer, uid=UNTRACKED_USER_ID)
    return credentials


@pytest.fixture
def store(settings):
    return MemoryEntityStore(history_limit=settings.history_limit)


@pytest.fixture
def notifier():
    return Notifier(maxsize=100)


@pytest.fixture
def beacons():
    registry = MemoryBeaconRegistry()
    for beacon in demo_beacons():
        registry.add(beacon)
    return registry


@pytest.fixture
def user_service(store, users, notifier, beacons, settings):
    return TrackedUserService(store, users, notifier, beacons, settings)


@pytest.fixture
def item_service(store, users, notifier):
    return TrackedItemService(store, users, notifier)


@pytest.fixture
def app(settings):
    application = create_app(settings)
    application.state.users.add_user("testingName", Role.operator, uid=USER_ID)
    application.state.users.add_user("dummyuser", Role.viewer, uid=UNTRACKED_USER_ID)
    for beacon in demo_beacons():
        application.state.beacons.add(beacon)
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(settings):
    def _headers(uid=USER_ID, role="operator"):
        token = create_access_token(settings, subject=uid, role=role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
