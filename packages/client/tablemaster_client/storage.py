"""
Credential persistence.

The durable store holds the token between runs; the cookie mirror keeps a
``token`` cookie in step with it for server-side middleware that only sees
cookies.
"""

import json
import logging
import os
import tempfile
from http.cookies import SimpleCookie
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from tablemaster_client.config import COOKIE_MAX_AGE

logger = logging.getLogger(__name__)

COOKIE_NAME = "token"


@runtime_checkable
class CredentialStore(Protocol):
    """Durable storage for the raw bearer token."""

    def load(self) -> str | None:
        """Return the stored token, or None if nothing is stored."""
        ...

    def save(self, token: str) -> None:
        """Persist a token, replacing any previous value."""
        ...

    def clear(self) -> None:
        """Remove the stored token."""
        ...


class MemoryCredentialStore:
    """Process-local store."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def load(self) -> str | None:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileCredentialStore:
    """
    JSON file store, shared by every process pointed at the same path.

    Writes go through a temporary file and an atomic replace so a concurrent
    reader never sees a half-written file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> str | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, e)
            return None

        token = data.get("token") if isinstance(data, dict) else None
        return token if isinstance(token, str) else None

    def save(self, token: str) -> None:
        self._write({"token": token})

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class CookieMirror:
    """
    Mirror the token into a cookie.

    The cookie is written into an ``httpx.Cookies`` jar (usually the
    transport's own) and the matching ``Set-Cookie`` value is kept in
    ``set_cookie_header``.
    """

    def __init__(
        self,
        jar: httpx.Cookies | None = None,
        domain: str = "",
        secure: bool = False,
        max_age: int = COOKIE_MAX_AGE,
    ) -> None:
        self.jar = jar if jar is not None else httpx.Cookies()
        self.domain = domain
        self.secure = secure
        self.max_age = max_age
        self.set_cookie_header: str | None = None

    def write(self, token: str) -> None:
        """Set the token cookie with the middleware attributes."""
        self.set_cookie_header = self._morsel(token, self.max_age)
        self.jar.set(COOKIE_NAME, token, domain=self.domain, path="/")

    def clear(self) -> None:
        """Expire the token cookie."""
        self.set_cookie_header = self._morsel("", 0)
        self.jar.delete(COOKIE_NAME, domain=self.domain or None, path="/")

    def _morsel(self, value: str, max_age: int) -> str:
        cookie: SimpleCookie = SimpleCookie()
        cookie[COOKIE_NAME] = value
        morsel = cookie[COOKIE_NAME]
        morsel["path"] = "/"
        morsel["max-age"] = max_age
        if max_age:
            morsel["samesite"] = "Lax"
            if self.secure:
                morsel["secure"] = True
        return morsel.OutputString()
