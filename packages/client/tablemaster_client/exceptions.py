"""API client exceptions."""


class ApiError(Exception):
    """Base exception for dashboard API client errors."""

    def __init__(self, message: str, endpoint: str | None = None) -> None:
        self.message = message
        self.endpoint = endpoint
        super().__init__(message)


class TransientTransportError(ApiError):
    """Network, DNS or timeout failure that persisted through every retry."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, endpoint)
        self.attempts = attempts


class ServerRejectedError(ApiError):
    """The API answered with a non-2xx status that was not recovered."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message, endpoint)
        self.status_code = status_code
        self.response_body = response_body


class SessionExpiredError(ApiError):
    """Authentication expired and could not be recovered by a token refresh."""


class TwoFactorRequiredError(ApiError):
    """Login succeeded on the first factor and now needs a 2FA code."""

    def __init__(
        self,
        message: str,
        temp_token: str,
        user_id: str | None = None,
        email: str | None = None,
    ) -> None:
        super().__init__(message, endpoint=None)
        self.temp_token = temp_token
        self.user_id = user_id
        self.email = email


class MalformedResponseError(ApiError):
    """A successful response carried a body the client cannot use."""
