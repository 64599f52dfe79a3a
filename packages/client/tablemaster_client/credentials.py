"""Bearer credential parsing - structural validation and expiry decoding."""

import logging
import re
from datetime import UTC, datetime

import jwt
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# header.payload.signature, each a non-empty base64url segment
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+={0,2}(\.[A-Za-z0-9_-]+={0,2}){2}$")


def is_well_formed(token: object) -> bool:
    """Check the three-segment token shape without verifying the signature."""
    return isinstance(token, str) and TOKEN_PATTERN.match(token) is not None


def decode_expiry(token: str) -> datetime | None:
    """
    Read the ``exp`` claim from a token payload.

    Best-effort: any decoding problem yields None, since the server is the
    only authority on whether a token is still accepted.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.debug("Could not decode token payload: %s", e)
        return None

    exp = payload.get("exp")
    if not isinstance(exp, int | float):
        return None
    try:
        return datetime.fromtimestamp(exp, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


class Credential(BaseModel):
    """A structurally valid bearer token and its decoded expiry."""

    model_config = ConfigDict(frozen=True)

    raw: str
    expires_at: datetime | None = None

    @classmethod
    def parse(cls, token: str | None) -> "Credential | None":
        """
        Build a credential from a raw token.

        Returns:
            The credential, or None when the token is missing or malformed.
        """
        if token is None:
            return None
        if not is_well_formed(token):
            logger.warning(
                "Rejecting malformed token (length %d, %d segments)",
                len(token),
                len(token.split(".")),
            )
            return None
        return cls(raw=token, expires_at=decode_expiry(token))

    def seconds_remaining(self, now: datetime | None = None) -> float | None:
        """Seconds until expiry, or None when the expiry is unknown."""
        if self.expires_at is None:
            return None
        now = now or datetime.now(UTC)
        return (self.expires_at - now).total_seconds()

    def is_expired(self, now: datetime | None = None) -> bool:
        remaining = self.seconds_remaining(now)
        return remaining is not None and remaining <= 0

    @property
    def authorization(self) -> str:
        """Value for the Authorization header."""
        return f"Bearer {self.raw}"
