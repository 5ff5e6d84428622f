"""
Tests for the session credential store.
"""

import json
import os
import stat
import sys

import pytest

from cursor_usage.config.credentials import COOKIE_ENV_VAR, COOKIE_NAME, CredentialStore


@pytest.fixture
def store(tmp_path):
    return CredentialStore(str(tmp_path / "nested" / "credentials.json"))


class TestCredentialStore:
    def test_absent_credential(self, store):
        assert store.get(COOKIE_NAME) is None

    def test_store_and_get(self, store):
        store.store(COOKIE_NAME, "  abc%3A%3Adef \n")

        assert store.get(COOKIE_NAME) == "abc%3A%3Adef"
        assert json.loads(store.path.read_text()) == {COOKIE_NAME: "abc%3A%3Adef"}

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_user_only(self, store):
        store.store(COOKIE_NAME, "secret")

        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode == 0o600

    def test_empty_value_rejected(self, store):
        with pytest.raises(ValueError):
            store.store(COOKIE_NAME, "   ")
        assert store.get(COOKIE_NAME) is None

    def test_environment_overrides_file(self, store, monkeypatch):
        store.store(COOKIE_NAME, "from-file")
        monkeypatch.setenv(COOKIE_ENV_VAR, "from-env")

        assert store.get(COOKIE_NAME) == "from-env"

    def test_blank_environment_ignored(self, store, monkeypatch):
        store.store(COOKIE_NAME, "from-file")
        monkeypatch.setenv(COOKIE_ENV_VAR, "  ")

        assert store.get(COOKIE_NAME) == "from-file"

    def test_delete(self, store):
        store.store(COOKIE_NAME, "secret")
        store.store("other", "keep")

        store.delete(COOKIE_NAME)
        store.delete(COOKIE_NAME)

        assert store.get(COOKIE_NAME) is None
        assert store.get("other") == "keep"

    def test_corrupt_file_reads_as_empty(self, store, caplog):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json")

        assert store.get(COOKIE_NAME) is None
        assert "Could not read credential file" in caplog.text
