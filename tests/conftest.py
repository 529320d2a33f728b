import pytest
from fastapi.testclient import TestClient

from invitegate.auth.verify import JWTAuthenticator
from invitegate.main import create_app
from invitegate.middleware.pipeline import SecurityComponents
from invitegate.repositories.guest_content_repository import GuestContentRepository
from invitegate.repositories.user_repository import UserRepository
from invitegate.services.security_store import SecurityStore

TEST_SECRET = "test-secret-key-with-at-least-32-bytes"
START_MS = 1_700_000_000_000.0


class FakeClock:
    """Controllable epoch-millisecond clock for the security store."""

    def __init__(self, start: float = START_MS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SecurityStore(clock=clock)


@pytest.fixture
def users():
    return UserRepository()


@pytest.fixture
def content():
    return GuestContentRepository()


@pytest.fixture
def authenticator(users):
    return JWTAuthenticator(secret=TEST_SECRET, resolve_user=users.resolve_claims)


@pytest.fixture
def security(store, authenticator):
    return SecurityComponents.build(store=store, authenticator=authenticator)


@pytest.fixture
def app(security, users, content):
    return create_app(security=security, users=users, content=content)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(users, authenticator):
    """Create a stored user and return (record, bearer token)."""

    def _make(email="guest@example.com", tier="free", role="user"):
        record = users.create(email, "correct-horse-battery", role=role, membership_tier=tier)
        return record, authenticator.issue_token(record.to_user())

    return _make


@pytest.fixture
def csrf_token(client):
    """Fetch a CSRF token the way the front end does, from /healthz."""

    def _fetch() -> str:
        return client.get("/healthz").headers["X-CSRF-Token"]

    return _fetch
