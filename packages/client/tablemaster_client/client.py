"""Dashboard API client - authenticated, retrying access to the REST API."""

import asyncio
import logging
import mimetypes
import time
from pathlib import Path
from typing import IO, Any
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError
from tablemaster_schemas import ErrorEnvelope, RefreshResponse

from tablemaster_client.config import HEALTH_ENDPOINT, ClientSettings, load_settings
from tablemaster_client.credentials import is_well_formed
from tablemaster_client.exceptions import (
    MalformedResponseError,
    ServerRejectedError,
    SessionExpiredError,
    TransientTransportError,
)
from tablemaster_client.session import (
    AuthSession,
    SessionEndedCallback,
    build_session,
)

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An error occurred"

UploadFile = (
    bytes
    | Path
    | IO[bytes]
    | tuple[str, bytes]
    | tuple[str, bytes, str]
)

# (filename, content, content type), read once so retries resend the same bytes
_PreparedFile = tuple[str, bytes, str]
_RequestBody = dict[str, Any]


class ApiClient:
    """
    Client for the dashboard REST API.

    Every call attaches the session's bearer credential, retries transport
    failures with a linear backoff, and recovers from an expired credential
    with one shared token refresh. Domain API classes build on ``invoke``.

    Several clients may share one ``AuthSession``; they then share the
    credential and the refresh coordination.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        session: AuthSession | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Client settings; loaded from the environment if omitted.
            session: Shared auth session; built from settings if omitted.
            http_client: Optional HTTP client for dependency injection (testing).
        """
        self.settings = settings or load_settings()
        self.base_url = self.settings.api_url
        self._timeout = httpx.Timeout(self.settings.request_timeout)
        self._client = http_client or httpx.AsyncClient(timeout=self._timeout)
        self._owns_client = http_client is None
        self.session = session or build_session(self.settings, self._client)

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # Session passthrough
    # =========================================================================

    def set_token(self, token: str | None) -> None:
        """Set or clear the session credential."""
        self.session.set_token(token)

    def set_on_unauthorized(self, callback: SessionEndedCallback | None) -> None:
        """Register the hook fired when the session cannot be recovered."""
        self.session.on_session_ended = callback

    def is_auth_endpoint(self, endpoint: str) -> bool:
        """Whether an endpoint is exempt from 401 refresh recovery."""
        path = urlsplit(endpoint).path
        if path == self.settings.refresh_endpoint:
            return True
        return any(path.startswith(prefix) for prefix in self.settings.auth_prefixes)

    # =========================================================================
    # Public operations
    # =========================================================================

    async def invoke(
        self,
        endpoint: str,
        method: str = "GET",
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Call a JSON endpoint.

        Args:
            endpoint: Path relative to the API base URL, e.g. ``/api/menu``.
            method: HTTP method.
            json: Optional JSON-serializable request body.
            headers: Extra request headers. ``Authorization`` is always
                taken from the session.

        Returns:
            The parsed JSON body, or None for 204 responses.

        Raises:
            TransientTransportError: If the network kept failing.
            ServerRejectedError: If the API rejected the request.
            SessionExpiredError: If the credential expired and refresh failed.
        """
        body: _RequestBody = {} if json is None else {"json": json}
        request_headers = httpx.Headers({"Content-Type": "application/json"})
        request_headers.update(headers or {})
        return await self._perform(endpoint, method.upper(), body, request_headers)

    async def upload(
        self,
        endpoint: str,
        file: UploadFile,
        field_name: str = "file",
    ) -> Any:
        """
        POST a file as a single-field multipart form.

        The multipart Content-Type (with its boundary) is left to httpx.
        Resilience rules are the same as for ``invoke``.
        """
        filename, content, content_type = _prepare_file(file)
        logger.debug("Uploading %s (%d bytes) to %s", filename, len(content), endpoint)
        body: _RequestBody = {"files": {field_name: (filename, content, content_type)}}
        return await self._perform(endpoint, "POST", body, httpx.Headers())

    async def refresh_token(self) -> str:
        """
        Exchange the current credential for a new one.

        Returns:
            The new, structurally valid token.

        Raises:
            SessionExpiredError: If the server returned no usable token.
            ApiError: If the refresh request itself failed.
        """
        data = await self.invoke(self.settings.refresh_endpoint, method="POST")
        try:
            token = RefreshResponse.model_validate(data).token
        except ValidationError as e:
            raise SessionExpiredError(
                "Invalid token received from server",
                endpoint=self.settings.refresh_endpoint,
            ) from e

        if not is_well_formed(token):
            logger.error("Refresh returned a malformed token (length %d)", len(token))
            raise SessionExpiredError(
                "Invalid token received from server",
                endpoint=self.settings.refresh_endpoint,
            )
        return token

    async def health_check(self) -> dict[str, Any]:
        """Check API availability."""
        data = await self.invoke(HEALTH_ENDPOINT)
        return data if isinstance(data, dict) else {}

    # =========================================================================
    # Request pipeline
    # =========================================================================

    async def _perform(
        self,
        endpoint: str,
        method: str,
        body: _RequestBody,
        headers: httpx.Headers,
        allow_recovery: bool = True,
    ) -> Any:
        """Send a request and apply the status handling rules."""
        response, generation = await self._send_with_retry(
            endpoint, method, body, headers
        )

        if response.status_code == 204:
            return None

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise MalformedResponseError(
                    f"Invalid JSON in response from {endpoint}", endpoint=endpoint
                ) from e

        if self._should_recover(endpoint, response):
            if not allow_recovery:
                logger.error("401 again for %s after token refresh", endpoint)
                raise SessionExpiredError(
                    _error_message(response), endpoint=endpoint
                )

            logger.info("401 Unauthorized for %s, attempting token refresh", endpoint)
            await self.session.recover(self.refresh_token, generation)
            return await self._perform(
                endpoint, method, body, headers, allow_recovery=False
            )

        message = _error_message(response)
        logger.error(
            "Request failed for %s: %d %s", endpoint, response.status_code, message
        )
        raise ServerRejectedError(
            message,
            endpoint=endpoint,
            status_code=response.status_code,
            response_body=response.text,
        )

    def _should_recover(self, endpoint: str, response: httpx.Response) -> bool:
        return (
            response.status_code == 401
            and self.session.on_session_ended is not None
            and not self.is_auth_endpoint(endpoint)
        )

    async def _send_with_retry(
        self,
        endpoint: str,
        method: str,
        body: _RequestBody,
        headers: httpx.Headers,
    ) -> tuple[httpx.Response, int]:
        """
        Send with retries on transport failure.

        Returns:
            The response and the credential generation it was sent with.

        Raises:
            TransientTransportError: If every attempt failed.
        """
        url = f"{self.base_url}{endpoint}"
        attempts = self.settings.max_retries + 1
        last_error: httpx.RequestError | TimeoutError | None = None

        for attempt in range(1, attempts + 1):
            credential, generation = self.session.current_credential()
            request_headers = httpx.Headers({"Accept": "application/json"})
            request_headers.update(headers)
            if request_headers.pop("Authorization", None) is not None:
                logger.warning("Ignoring caller Authorization header for %s", endpoint)
            if credential is not None:
                request_headers["Authorization"] = credential.authorization
            else:
                logger.debug("Request to %s without token", endpoint)

            self.session.request_started()
            start = time.monotonic()
            try:
                # Deadline for the whole attempt, body included
                async with asyncio.timeout(self.settings.request_timeout):
                    response = await self._client.request(
                        method,
                        url,
                        headers=request_headers,
                        timeout=self._timeout,
                        **body,
                    )
            except (httpx.RequestError, TimeoutError) as e:
                last_error = e
            else:
                logger.debug(
                    "%s %s -> %d in %.0fms (concurrent: %d, peak: %d)",
                    method,
                    endpoint,
                    response.status_code,
                    (time.monotonic() - start) * 1000,
                    self.session.requests_in_flight,
                    self.session.peak_requests_in_flight,
                )
                return response, generation
            finally:
                self.session.request_finished()

            if attempt < attempts:
                backoff = self.settings.retry_backoff * attempt
                logger.warning(
                    "Network error for %s (attempt %d/%d), retry in %.1fs: %s",
                    endpoint,
                    attempt,
                    attempts,
                    backoff,
                    _describe(last_error),
                )
                await asyncio.sleep(backoff)

        logger.error(
            "Network error for %s after %d attempts: %s",
            endpoint,
            attempts,
            _describe(last_error),
        )
        raise TransientTransportError(
            f"Request to {endpoint} failed after {attempts} attempts: "
            f"{_describe(last_error)}",
            endpoint=endpoint,
            attempts=attempts,
        ) from last_error


# =============================================================================
# Helpers
# =============================================================================


def _error_message(response: httpx.Response) -> str:
    """Extract ``error.message`` from an error body, with a generic fallback."""
    try:
        envelope = ErrorEnvelope.model_validate(response.json())
    except (ValueError, ValidationError):
        return DEFAULT_ERROR_MESSAGE
    if envelope.error and envelope.error.message:
        return envelope.error.message
    return DEFAULT_ERROR_MESSAGE


def _describe(error: Exception | None) -> str:
    if error is None:
        return "unknown error"
    if isinstance(error, httpx.TimeoutException | TimeoutError):
        return f"timeout ({type(error).__name__})"
    return str(error) or type(error).__name__


def _prepare_file(file: UploadFile) -> _PreparedFile:
    """Normalize an upload into (filename, content, content type)."""
    if isinstance(file, tuple):
        if len(file) == 3:
            filename, content, content_type = file  # type: ignore[misc]
        else:
            filename, content = file  # type: ignore[misc]
            content_type = _guess_type(filename)
        return filename, content, content_type

    if isinstance(file, bytes):
        return "upload", file, "application/octet-stream"

    if isinstance(file, Path):
        return file.name, file.read_bytes(), _guess_type(file.name)

    name = Path(str(getattr(file, "name", "upload"))).name
    return name, file.read(), _guess_type(name)


def _guess_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"

