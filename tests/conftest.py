import pytest
from fastapi.testclient import TestClient

from database import InMemoryDocumentStore
from handlers import Dispatcher, get_dispatcher
from main import app


class Clock:
    """A clock the tests move by hand."""

    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * 1000)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def dispatcher(store, clock):
    return Dispatcher(store, clock=clock).attach()


@pytest.fixture
def client(dispatcher):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    # No context manager: the background sweep is not started
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(store):
    """Register a device for a user, the way POST /registrations does."""

    def _register(device_id, user_id, name=None):
        document = {"deviceId": device_id, "addedBy": user_id}
        if name:
            document["name"] = name
        registration_id = store.new_id()
        store.set(f"registrations/{registration_id}", document)
        return registration_id

    return _register
