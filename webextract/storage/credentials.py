"""Credential stores resolving ids to decrypted secrets."""

import os
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import CredentialError, StorageError
from ..core.interfaces import CredentialStore
from ..core.logging import get_logger
from .database import get_session_factory
from .models import CredentialModel

logger = get_logger(__name__)

Decrypt = Callable[[str], str]


def _identity(value: str) -> str:
    return value


class DatabaseCredentialStore:
    """
    Reads encrypted credential values from the database.

    The encryption scheme belongs to whoever wrote the value; this store
    only calls the injected ``decrypt`` callable and treats its result as
    an opaque secret.
    """

    def __init__(self, decrypt: Optional[Decrypt] = None, session_factory=None):
        self.decrypt = decrypt or _identity
        self._session_factory = session_factory

    def _new_session(self):
        return (self._session_factory or get_session_factory())()

    def save(self, credential_id: str, name: str, encrypted_value: str) -> None:
        """Store an already-encrypted value under ``credential_id``."""
        db = self._new_session()
        try:
            db.merge(CredentialModel(id=credential_id, name=name, value=encrypted_value))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to save credential: {str(e)}", operation="save", table="credentials")
        finally:
            db.close()

    def get_secret(self, credential_id: str) -> str:
        db = self._new_session()
        try:
            row = db.query(CredentialModel).filter(CredentialModel.id == credential_id).first()
            encrypted = row.value if row else None
        except SQLAlchemyError as e:
            raise CredentialError(f"Failed to load credential: {str(e)}", credential_id=credential_id)
        finally:
            db.close()

        if encrypted is None:
            raise CredentialError("Credential not found", credential_id=credential_id)

        try:
            secret = self.decrypt(encrypted)
        except Exception as e:
            raise CredentialError(f"Failed to decrypt credential: {str(e)}", credential_id=credential_id)
        if not secret:
            raise CredentialError("Credential decrypted to an empty value", credential_id=credential_id)
        return secret


class EnvironmentCredentialStore:
    """Resolves credential ids from environment variables."""

    def __init__(self, mapping: Optional[dict] = None):
        self.mapping = mapping if mapping is not None else {"default": "OPENROUTER_API_KEY"}

    def get_secret(self, credential_id: str) -> str:
        variable = self.mapping.get(credential_id)
        value = os.getenv(variable) if variable else None
        if not value:
            raise CredentialError("Credential not found", credential_id=credential_id)
        return value


class ChainedCredentialStore:
    """Tries each store in order; the first secret found wins."""

    def __init__(self, stores: Sequence[CredentialStore]):
        self.stores = list(stores)

    def get_secret(self, credential_id: str) -> str:
        last_error: Optional[CredentialError] = None
        for store in self.stores:
            try:
                return store.get_secret(credential_id)
            except CredentialError as e:
                logger.debug(f"{type(store).__name__} could not resolve credential {credential_id}: {e.message}")
                last_error = e
        raise last_error or CredentialError("Credential not found", credential_id=credential_id)
