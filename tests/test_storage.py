"""Tests for credential and file storage."""

import pytest

from webextract.core.exceptions import CredentialError
from webextract.storage import (
    ChainedCredentialStore,
    DatabaseCredentialStore,
    DatabaseFileStorage,
    EnvironmentCredentialStore,
)

from conftest import FakeCredentialStore


class TestDatabaseCredentialStore:
    """Encrypted credentials kept in the database."""

    def test_save_and_decrypt(self, temp_db):
        store = DatabaseCredentialStore(decrypt=lambda value: value[::-1])
        store.save("cred-1", "OpenRouter", "tset-ks")

        assert store.get_secret("cred-1") == "sk-test"

    def test_save_overwrites(self, temp_db):
        store = DatabaseCredentialStore()
        store.save("cred-1", "OpenRouter", "old")
        store.save("cred-1", "OpenRouter", "new")

        assert store.get_secret("cred-1") == "new"

    def test_missing_credential(self, temp_db):
        with pytest.raises(CredentialError, match="Credential not found"):
            DatabaseCredentialStore().get_secret("missing")

    def test_decrypt_failure(self, temp_db):
        def broken(value):
            raise ValueError("bad padding")

        store = DatabaseCredentialStore(decrypt=broken)
        store.save("cred-1", "OpenRouter", "garbage")

        with pytest.raises(CredentialError, match="Failed to decrypt credential: bad padding"):
            store.get_secret("cred-1")

    def test_empty_secret(self, temp_db):
        store = DatabaseCredentialStore(decrypt=lambda value: "")
        store.save("cred-1", "OpenRouter", "x")

        with pytest.raises(CredentialError, match="empty value"):
            store.get_secret("cred-1")


class TestEnvironmentCredentialStore:
    """Credentials read from environment variables."""

    def test_default_mapping(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-env")
        assert EnvironmentCredentialStore().get_secret("default") == "sk-env"

    def test_unset_variable(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(CredentialError):
            EnvironmentCredentialStore().get_secret("default")

    def test_unknown_id(self):
        with pytest.raises(CredentialError):
            EnvironmentCredentialStore({"a": "SOME_VAR"}).get_secret("b")


class TestChainedCredentialStore:
    """First store that resolves wins."""

    def test_falls_through(self):
        chain = ChainedCredentialStore([FakeCredentialStore({}), FakeCredentialStore({"x": "second"})])
        assert chain.get_secret("x") == "second"

    def test_first_wins(self):
        chain = ChainedCredentialStore([FakeCredentialStore({"x": "first"}), FakeCredentialStore({"x": "second"})])
        assert chain.get_secret("x") == "first"

    def test_all_miss(self):
        chain = ChainedCredentialStore([FakeCredentialStore({}), FakeCredentialStore({})])
        with pytest.raises(CredentialError, match="Credential not found"):
            chain.get_secret("x")

    def test_empty_chain(self):
        with pytest.raises(CredentialError):
            ChainedCredentialStore([]).get_secret("x")


class TestDatabaseFileStorage:
    """Generated files kept in the database."""

    def test_store_and_load(self, temp_db):
        storage = DatabaseFileStorage()

        file_id = storage.store(b"a,b\n1,2", "text/csv", "export.csv")
        stored = storage.load(file_id)

        assert stored.id == file_id
        assert stored.filename == "export.csv"
        assert stored.mime_type == "text/csv"
        assert stored.content == b"a,b\n1,2"

    def test_load_missing(self, temp_db):
        assert DatabaseFileStorage().load("missing") is None
