"""Narrow interfaces for collaborators consumed by executors."""

from typing import Any, Dict, Iterator, List, Optional, Protocol
from pydantic import BaseModel


class CompletionResult(BaseModel):
    """Text and token usage of one chat completion."""
    content: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


class StoredFile(BaseModel):
    """A file kept by file storage."""
    id: str
    filename: str
    mime_type: str
    content: bytes


class CredentialStore(Protocol):
    """Resolves a credential id to a decrypted, opaque secret."""

    def get_secret(self, credential_id: str) -> str:
        """Raise CredentialError when the secret is missing or undecryptable."""
        ...


class FileStorage(Protocol):
    """Stores generated files and hands back a retrieval id."""

    def store(self, content: bytes, mime_type: str, filename: str) -> str:
        ...

    def load(self, file_id: str) -> Optional[StoredFile]:
        ...


class ModelClient(Protocol):
    """Chat completion endpoint used by the extraction executor."""

    def complete(self, api_key: str, messages: List[Dict[str, str]], model: Optional[str] = None) -> CompletionResult:
        """Raise UpstreamServiceError when the call fails."""
        ...


class TextStreamSource(Protocol):
    """Yields model text chunks for a workflow generation request."""

    def stream(self, request: str, current_workflow: Optional[Dict[str, Any]] = None,
               history: Optional[List[Dict[str, str]]] = None) -> Iterator[str]:
        ...
