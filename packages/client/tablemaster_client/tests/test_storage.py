"""Tests for credential storage and the cookie mirror."""

import json
import os
import stat
from unittest.mock import MagicMock

import httpx
import pytest

from tablemaster_client.session import AuthSession
from tablemaster_client.storage import (
    CookieMirror,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)

# =============================================================================
# Stores
# =============================================================================


class TestMemoryCredentialStore:
    """Tests for the in-process store."""

    def test_implements_protocol(self):
        assert isinstance(MemoryCredentialStore(), CredentialStore)

    def test_save_load_clear(self):
        store = MemoryCredentialStore()
        assert store.load() is None

        store.save("a.b.c")
        assert store.load() == "a.b.c"

        store.clear()
        assert store.load() is None


class TestFileCredentialStore:
    """Tests for the JSON file store."""

    def test_implements_protocol(self, tmp_path):
        assert isinstance(FileCredentialStore(tmp_path / "token.json"), CredentialStore)

    def test_missing_file_loads_none(self, tmp_path):
        assert FileCredentialStore(tmp_path / "absent.json").load() is None

    def test_save_writes_json(self, tmp_path):
        path = tmp_path / "nested" / "token.json"
        store = FileCredentialStore(path)

        store.save("a.b.c")

        assert json.loads(path.read_text()) == {"token": "a.b.c"}
        assert store.load() == "a.b.c"

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_file_is_private(self, tmp_path):
        path = tmp_path / "token.json"
        FileCredentialStore(path).save("a.b.c")

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_save_leaves_no_temp_files(self, tmp_path):
        store = FileCredentialStore(tmp_path / "token.json")
        store.save("a.b.c")
        store.save("d.e.f")

        assert [p.name for p in tmp_path.iterdir()] == ["token.json"]
        assert store.load() == "d.e.f"

    def test_clear_removes_file(self, tmp_path):
        path = tmp_path / "token.json"
        store = FileCredentialStore(path)
        store.save("a.b.c")

        store.clear()
        store.clear()

        assert not path.exists()
        assert store.load() is None

    def test_corrupt_file_loads_none(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text("{not json")

        assert FileCredentialStore(path).load() is None

    def test_unexpected_shape_loads_none(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text(json.dumps({"token": 42}))

        assert FileCredentialStore(path).load() is None

    def test_two_stores_share_the_file(self, tmp_path):
        path = tmp_path / "token.json"
        FileCredentialStore(path).save("a.b.c")

        assert FileCredentialStore(path).load() == "a.b.c"


# =============================================================================
# Cookie mirror
# =============================================================================


class TestCookieMirror:
    """Tests for the token cookie attributes."""

    def test_write_sets_middleware_attributes(self):
        mirror = CookieMirror()

        mirror.write("a.b.c")

        header = mirror.set_cookie_header
        assert header is not None
        assert header.startswith("token=a.b.c")
        assert "Path=/" in header
        assert "Max-Age=604800" in header
        assert "SameSite=Lax" in header
        assert "Secure" not in header

    def test_write_secure_on_https(self):
        mirror = CookieMirror(secure=True)

        mirror.write("a.b.c")

        assert "Secure" in mirror.set_cookie_header

    def test_write_updates_jar(self):
        jar = httpx.Cookies()
        mirror = CookieMirror(jar=jar)

        mirror.write("a.b.c")

        assert jar.get("token") == "a.b.c"

    def test_clear_expires_cookie(self):
        jar = httpx.Cookies()
        mirror = CookieMirror(jar=jar)
        mirror.write("a.b.c")

        mirror.clear()

        assert "Max-Age=0" in mirror.set_cookie_header
        assert "Path=/" in mirror.set_cookie_header
        assert jar.get("token") is None

    def test_clear_without_cookie(self):
        mirror = CookieMirror()

        mirror.clear()

        assert mirror.set_cookie_header.startswith("token=")


# =============================================================================
# Session mirroring
# =============================================================================


class TestSessionMirroring:
    """Setting the session credential updates store and cookie together."""

    def test_set_token_updates_store_and_cookie(self, session, store, cookie_mirror, fresh_token):
        session.set_token(fresh_token)

        assert store.load() == fresh_token
        assert cookie_mirror.jar.get("token") == fresh_token
        assert "Max-Age=604800" in cookie_mirror.set_cookie_header

    def test_set_none_clears_both(self, session, store, cookie_mirror, fresh_token):
        session.set_token(fresh_token)

        session.set_token(None)

        assert session.token is None
        assert store.load() is None
        assert cookie_mirror.jar.get("token") is None
        assert "Max-Age=0" in cookie_mirror.set_cookie_header

    def test_malformed_token_clears_both(self, session, store, cookie_mirror, fresh_token):
        session.set_token(fresh_token)

        session.set_token("not-a-jwt")

        assert session.token is None
        assert store.load() is None
        assert cookie_mirror.jar.get("token") is None

    def test_cookie_failure_does_not_fail_caller(self, store, fresh_token):
        mirror = MagicMock(spec=CookieMirror)
        mirror.write.side_effect = RuntimeError("cookie jar unavailable")
        session = AuthSession(store=store, cookie_mirror=mirror)

        session.set_token(fresh_token)

        assert session.token == fresh_token
        assert store.load() == fresh_token

    def test_store_failure_does_not_fail_caller(self, cookie_mirror, fresh_token):
        store = MagicMock(spec=MemoryCredentialStore)
        store.load.return_value = None
        store.save.side_effect = OSError("disk full")
        session = AuthSession(store=store, cookie_mirror=cookie_mirror)

        session.set_token(fresh_token)

        assert session.token == fresh_token
        assert cookie_mirror.jar.get("token") == fresh_token

    def test_session_starts_from_stored_token(self, fresh_token):
        session = AuthSession(store=MemoryCredentialStore(fresh_token))

        assert session.token == fresh_token
