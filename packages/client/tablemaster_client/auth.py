"""Auth-bootstrap API - login, logout, 2FA and password reset."""

import logging

from pydantic import ValidationError
from tablemaster_schemas import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    TwoFactorChallenge,
    TwoFactorVerifyRequest,
)

from tablemaster_client.client import ApiClient
from tablemaster_client.exceptions import MalformedResponseError, TwoFactorRequiredError

logger = logging.getLogger(__name__)

LOGIN_ENDPOINT = "/api/auth/login"
LOGOUT_ENDPOINT = "/api/auth/logout"
TWO_FACTOR_VERIFY_ENDPOINT = "/api/auth/2fa/verify"
FORGOT_PASSWORD_ENDPOINT = "/api/auth/forgot-password"
RESET_PASSWORD_ENDPOINT = "/api/auth/reset-password"


class AuthApi(ApiClient):
    """
    Endpoints that establish or end a session.

    All of them live under the auth-bootstrap prefix, so a 401 here is
    reported directly instead of triggering a token refresh.
    """

    async def login(self, email: str, password: str) -> AuthResponse:
        """
        Log in with email and password.

        Args:
            email: Account email.
            password: Account password.

        Returns:
            The authenticated user and token. The token becomes the session
            credential.

        Raises:
            TwoFactorRequiredError: If the account needs a 2FA code; carries
                the temporary token for ``verify_two_factor_login``.
            ServerRejectedError: If the credentials were refused.
            MalformedResponseError: If the response carried no token.
        """
        logger.info("Login attempt for %s", email)
        data = await self.invoke(
            LOGIN_ENDPOINT,
            method="POST",
            json=LoginRequest(email=email, password=password).model_dump(),
        )

        if isinstance(data, dict) and data.get("requiresTwoFactor"):
            challenge = TwoFactorChallenge.model_validate(data)
            logger.info("2FA required for %s", email)
            raise TwoFactorRequiredError(
                "Two-factor authentication required",
                temp_token=challenge.temp_token,
                user_id=challenge.user_id,
                email=challenge.email,
            )

        response = self._auth_response(data, LOGIN_ENDPOINT)
        self.set_token(response.token)
        return response

    async def verify_two_factor_login(self, temp_token: str, code: str) -> AuthResponse:
        """Complete a 2FA login; the returned token becomes the session credential."""
        payload = TwoFactorVerifyRequest(temp_token=temp_token, token=code)
        data = await self.invoke(
            TWO_FACTOR_VERIFY_ENDPOINT,
            method="POST",
            json=payload.model_dump(by_alias=True),
        )
        response = self._auth_response(data, TWO_FACTOR_VERIFY_ENDPOINT)
        self.set_token(response.token)
        return response

    async def logout(self) -> None:
        """End the session. The local credential is cleared even if the call fails."""
        try:
            await self.invoke(LOGOUT_ENDPOINT, method="POST")
        finally:
            self.set_token(None)

    async def forgot_password(self, email: str) -> MessageResponse:
        data = await self.invoke(
            FORGOT_PASSWORD_ENDPOINT, method="POST", json={"email": email}
        )
        return MessageResponse.model_validate(data)

    async def reset_password(self, token: str, new_password: str) -> MessageResponse:
        payload = ResetPasswordRequest(token=token, new_password=new_password)
        data = await self.invoke(
            RESET_PASSWORD_ENDPOINT,
            method="POST",
            json=payload.model_dump(by_alias=True),
        )
        return MessageResponse.model_validate(data)

    def _auth_response(self, data: object, endpoint: str) -> AuthResponse:
        if not isinstance(data, dict) or not data.get("token"):
            logger.error("Response from %s is missing a token", endpoint)
            raise MalformedResponseError(
                "Server did not return authentication token", endpoint=endpoint
            )
        try:
            return AuthResponse.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(
                f"Unexpected authentication response: {e.error_count()} errors",
                endpoint=endpoint,
            ) from e
