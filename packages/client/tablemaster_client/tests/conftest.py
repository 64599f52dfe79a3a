"""
Pytest configuration for the API client tests.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import jwt
import pytest

from tablemaster_client.auth import AuthApi
from tablemaster_client.client import ApiClient
from tablemaster_client.config import ClientSettings
from tablemaster_client.session import AuthSession
from tablemaster_client.storage import CookieMirror, MemoryCredentialStore

API_URL = "http://api.test"
SIGNING_KEY = "test-signing-key-0123456789abcdef"


def make_token(
    expires_in: timedelta = timedelta(hours=1), subject: str = "user-1"
) -> str:
    """Create a signed three-segment token expiring after ``expires_in``."""
    payload = {
        "userId": subject,
        "email": f"{subject}@restaurant.test",
        "exp": int((datetime.now(UTC) + expires_in).timestamp()),
    }
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return make_token


@pytest.fixture
def fresh_token() -> str:
    return make_token(timedelta(hours=1), subject="fresh")


@pytest.fixture
def expired_token() -> str:
    return make_token(timedelta(minutes=-5), subject="expired")


@pytest.fixture
def settings() -> ClientSettings:
    """Settings pointed at the mocked API, with a short backoff delay."""
    return ClientSettings(api_url=API_URL, retry_backoff=0.01)


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def cookie_mirror() -> CookieMirror:
    return CookieMirror()


@pytest.fixture
def session(store: MemoryCredentialStore, cookie_mirror: CookieMirror) -> AuthSession:
    return AuthSession(store=store, cookie_mirror=cookie_mirror)


@pytest.fixture
def on_session_ended() -> MagicMock:
    return MagicMock(name="on_session_ended")


@pytest.fixture
def client(
    settings: ClientSettings, session: AuthSession, on_session_ended: MagicMock
) -> ApiClient:
    """Client with the session-ended callback configured."""
    api = ApiClient(settings, session=session)
    api.set_on_unauthorized(on_session_ended)
    return api


@pytest.fixture
def auth_api(settings: ClientSettings, session: AuthSession) -> AuthApi:
    """Auth client sharing the same session as ``client``."""
    return AuthApi(settings, session=session)
