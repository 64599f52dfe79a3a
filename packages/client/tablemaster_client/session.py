"""
Shared authentication session.

One ``AuthSession`` holds the bearer credential and the refresh coordination
state for every client that uses it. All access happens on the event loop
thread, so state transitions that must not interleave are written without
any ``await`` between the check and the update.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

import httpx

from tablemaster_client.config import ClientSettings
from tablemaster_client.credentials import Credential
from tablemaster_client.exceptions import ApiError, SessionExpiredError
from tablemaster_client.storage import (
    CookieMirror,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)

logger = logging.getLogger(__name__)

RefreshFunc = Callable[[], Awaitable[str]]
SessionEndedCallback = Callable[[], None]


class RefreshState(str, Enum):
    """Refresh coordination state."""

    IDLE = "idle"
    REFRESHING = "refreshing"


class AuthSession:
    """
    Bearer credential plus single-flight refresh coordination.

    The credential is mirrored into the durable store and the cookie mirror
    on every change, and re-read from the store before each request so a
    token written by another process is picked up.
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        cookie_mirror: CookieMirror | None = None,
        on_session_ended: SessionEndedCallback | None = None,
        expiry_warning_seconds: int = 300,
    ) -> None:
        self.store = store if store is not None else MemoryCredentialStore()
        self.cookie_mirror = cookie_mirror
        self.on_session_ended = on_session_ended
        self.expiry_warning_seconds = expiry_warning_seconds

        self._token: str | None = None
        self._token = self._read_store()
        self._generation = 0
        self._last_refresh_error: ApiError | None = None

        self._state = RefreshState.IDLE
        self._pending: asyncio.Task[str] | None = None

        self.requests_in_flight = 0
        self.peak_requests_in_flight = 0

    # =========================================================================
    # Credential
    # =========================================================================

    @property
    def token(self) -> str | None:
        """The raw token currently held, valid or not."""
        return self._token

    @property
    def generation(self) -> int:
        """Incremented every time the held credential changes."""
        return self._generation

    @property
    def state(self) -> RefreshState:
        return self._state

    def set_token(self, token: str | None) -> None:
        """
        Commit a new credential, or clear it with None.

        A malformed token is rejected and treated as None. The change is
        mirrored to the store and the cookie before this returns.
        """
        credential = Credential.parse(token)
        if credential is None:
            if token is not None:
                logger.error("Invalid token format, clearing credential")
            token = None
        else:
            self._log_expiry(credential, "Token set")
            self._last_refresh_error = None

        self._token = token
        self._generation += 1
        self._persist(token)

    def current_credential(self) -> tuple[Credential | None, int]:
        """
        Sync from the durable store and return the attachable credential.

        Returns:
            The structurally valid credential (or None) and the generation it
            belongs to.
        """
        stored = self._read_store()
        if stored != self._token:
            logger.info(
                "Credential changed in store (%s -> %s)",
                "set" if self._token else "empty",
                "set" if stored else "empty",
            )
            self._token = stored
            self._generation += 1

        credential = Credential.parse(self._token)
        if credential is not None:
            remaining = credential.seconds_remaining()
            if credential.is_expired():
                logger.info("Token expired, sending it for the server to reject")
            elif remaining is not None and remaining < self.expiry_warning_seconds:
                logger.warning("Token expires soon: %d seconds left", int(remaining))
        return credential, self._generation

    def _read_store(self) -> str | None:
        try:
            return self.store.load()
        except OSError as e:
            logger.warning("Could not read credential store: %s", e)
            return self._token

    def _persist(self, token: str | None) -> None:
        try:
            if token:
                self.store.save(token)
            else:
                self.store.clear()
        except OSError as e:
            logger.warning("Could not write credential store: %s", e)

        if self.cookie_mirror is None:
            return
        try:
            if token:
                self.cookie_mirror.write(token)
            else:
                self.cookie_mirror.clear()
        except Exception:
            logger.warning("Cookie mirror update failed", exc_info=True)

    def _log_expiry(self, credential: Credential, prefix: str) -> None:
        remaining = credential.seconds_remaining()
        if remaining is None:
            logger.info("%s (length %d, no expiry)", prefix, len(credential.raw))
        else:
            logger.info(
                "%s (length %d, expires %s, %dm %ds left)",
                prefix,
                len(credential.raw),
                credential.expires_at.isoformat() if credential.expires_at else "-",
                max(0, int(remaining)) // 60,
                max(0, int(remaining)) % 60,
            )

    # =========================================================================
    # Request bookkeeping
    # =========================================================================

    def request_started(self) -> None:
        self.requests_in_flight += 1
        self.peak_requests_in_flight = max(
            self.peak_requests_in_flight, self.requests_in_flight
        )

    def request_finished(self) -> None:
        self.requests_in_flight -= 1

    # =========================================================================
    # Single-flight refresh
    # =========================================================================

    async def recover(self, refresh: RefreshFunc, seen_generation: int) -> None:
        """
        Recover from a 401 produced by the credential of ``seen_generation``.

        Returns once the caller may retry its request with the current
        credential. Exactly one refresh runs at a time; concurrent callers
        share its outcome.

        Raises:
            SessionExpiredError: If the refresh failed.
        """
        if self._state is RefreshState.REFRESHING:
            pending = self._pending
            if pending is None:
                logger.warning("Refresh in flight without a pending result, retrying")
                return
            logger.info("Waiting for in-flight token refresh")
            await asyncio.shield(pending)
            return

        if seen_generation != self._generation:
            if self._token is None and self._last_refresh_error is not None:
                raise SessionExpiredError(
                    f"Session expired: {self._last_refresh_error.message}"
                ) from self._last_refresh_error
            logger.info("Credential replaced since request was sent, retrying")
            return

        # No await between the state check above and this transition
        self._state = RefreshState.REFRESHING
        self._pending = asyncio.get_running_loop().create_task(self._refresh(refresh))
        self._pending.add_done_callback(_consume_result)
        await asyncio.shield(self._pending)

    async def _refresh(self, refresh: RefreshFunc) -> str:
        logger.info("Refreshing token")
        try:
            token = await refresh()
        except ApiError as e:
            logger.error("Token refresh failed: %s", e)
            self.set_token(None)
            self._last_refresh_error = e
            self._notify_session_ended()
            raise SessionExpiredError(
                f"Session expired: {e.message}", endpoint=e.endpoint
            ) from e
        else:
            self.set_token(token)
            logger.info("Token refreshed successfully")
            return token
        finally:
            self._state = RefreshState.IDLE
            self._pending = None

    def _notify_session_ended(self) -> None:
        if self.on_session_ended is None:
            return
        logger.info("Triggering session-ended callback")
        try:
            self.on_session_ended()
        except Exception:
            logger.exception("Session-ended callback raised")


def _consume_result(task: "asyncio.Task[str]") -> None:
    # Waiters may all have been cancelled; mark the outcome as retrieved
    if not task.cancelled():
        task.exception()


def build_session(
    settings: ClientSettings,
    http_client: httpx.AsyncClient | None = None,
) -> AuthSession:
    """
    Assemble an auth session from settings.

    The credential is stored in ``settings.token_file`` when set, in memory
    otherwise. When an HTTP client is given, the cookie mirror writes into
    its cookie jar so the token cookie travels with every request.
    """
    store: CredentialStore
    if settings.token_file is not None:
        store = FileCredentialStore(settings.token_file)
    else:
        store = MemoryCredentialStore()

    mirror = CookieMirror(
        jar=http_client.cookies if http_client is not None else None,
        secure=settings.is_secure,
        max_age=settings.cookie_max_age,
    )
    return AuthSession(
        store=store,
        cookie_mirror=mirror,
        expiry_warning_seconds=settings.expiry_warning_seconds,
    )
