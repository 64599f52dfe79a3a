"""Tablemaster Client - authenticated, resilient access to the dashboard API."""

import httpx

from tablemaster_client.auth import AuthApi
from tablemaster_client.client import ApiClient
from tablemaster_client.config import ClientSettings, load_settings
from tablemaster_client.credentials import Credential, is_well_formed
from tablemaster_client.exceptions import (
    ApiError,
    MalformedResponseError,
    ServerRejectedError,
    SessionExpiredError,
    TransientTransportError,
    TwoFactorRequiredError,
)
from tablemaster_client.session import AuthSession, RefreshState, build_session
from tablemaster_client.storage import (
    CookieMirror,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)


def get_client(
    settings: ClientSettings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AuthApi:
    """
    Get a dashboard client with its own session built from settings.

    This is the main entry point. Domain API classes that need the same
    session are created with ``ApiClient(settings, session=client.session)``.

    Example:
        client = get_client()
        client.set_on_unauthorized(redirect_to_login)
        await client.login("chef@example.com", "secret")
        menu = await client.invoke("/api/menu/categories")
    """
    return AuthApi(settings or load_settings(), http_client=http_client)


__all__ = [
    "ApiClient",
    "ApiError",
    "AuthApi",
    "AuthSession",
    "ClientSettings",
    "CookieMirror",
    "Credential",
    "CredentialStore",
    "FileCredentialStore",
    "MalformedResponseError",
    "MemoryCredentialStore",
    "RefreshState",
    "ServerRejectedError",
    "SessionExpiredError",
    "TransientTransportError",
    "TwoFactorRequiredError",
    "build_session",
    "get_client",
    "is_well_formed",
    "load_settings",
]
