"""Database-backed storage for generated files."""

import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import StorageError
from ..core.interfaces import StoredFile
from ..core.logging import get_logger
from .database import get_session_factory
from .models import StoredFileModel

logger = get_logger(__name__)


class DatabaseFileStorage:
    """Keeps generated files in the ``stored_files`` table."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _new_session(self):
        return (self._session_factory or get_session_factory())()

    def store(self, content: bytes, mime_type: str, filename: str) -> str:
        file_id = str(uuid.uuid4())
        db = self._new_session()
        try:
            db.add(StoredFileModel(id=file_id, filename=filename, mime_type=mime_type, content=content))
            db.commit()
            logger.info(f"Stored file {filename} ({len(content)} bytes) as {file_id}")
            return file_id
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to store file: {str(e)}", operation="store", table="stored_files")
        finally:
            db.close()

    def load(self, file_id: str) -> Optional[StoredFile]:
        db = self._new_session()
        try:
            row = db.query(StoredFileModel).filter(StoredFileModel.id == file_id).first()
            if row is None:
                return None
            return StoredFile(id=row.id, filename=row.filename, mime_type=row.mime_type, content=row.content)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load file: {str(e)}", operation="load", table="stored_files")
        finally:
            db.close()
