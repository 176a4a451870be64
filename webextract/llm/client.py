"""OpenAI-compatible model access through OpenRouter."""

from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI, OpenAIError

from ..core.exceptions import UpstreamServiceError
from ..core.interfaces import CompletionResult, CredentialStore
from ..core.logging import get_logger
from .prompts import build_generation_messages

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterClient:
    """Chat completions against OpenRouter with a per-call API key."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, default_model: str = "x-ai/grok-4.1-fast:free",
                 timeout: Optional[float] = None):
        self.base_url = base_url
        self.default_model = default_model
        self.timeout = timeout

    def _client(self, api_key: str) -> OpenAI:
        return OpenAI(api_key=api_key, base_url=self.base_url, timeout=self.timeout)

    def complete(self, api_key: str, messages: List[Dict[str, str]], model: Optional[str] = None) -> CompletionResult:
        """
        Run one chat completion.

        Raises:
            UpstreamServiceError: With the SDK's message when the call fails
        """
        model = model or self.default_model
        logger.debug(f"Requesting completion from {model} with {len(messages)} messages")
        try:
            response = self._client(api_key).chat.completions.create(model=model, messages=messages)
        except OpenAIError as e:
            raise UpstreamServiceError(str(e), service="openrouter")

        content = response.choices[0].message.content if response.choices else None
        usage = response.usage
        return CompletionResult(
            content=content,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )

    def stream(self, api_key: str, messages: List[Dict[str, str]], model: Optional[str] = None,
               temperature: float = 0.3) -> Iterator[str]:
        """Yield text deltas of a streamed completion."""
        model = model or self.default_model
        try:
            response = self._client(api_key).chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                stream=True,
            )
            for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except OpenAIError as e:
            raise UpstreamServiceError(str(e), service="openrouter")


class WorkflowGenerator:
    """Streams model-authored workflow text for a natural-language request."""

    def __init__(self, client: OpenRouterClient, credentials: CredentialStore,
                 model: Optional[str] = None, credential_id: str = "default"):
        self.client = client
        self.credentials = credentials
        self.model = model
        self.credential_id = credential_id

    def stream(self, request: str, current_workflow: Optional[Dict[str, Any]] = None,
               history: Optional[List[Dict[str, str]]] = None) -> Iterator[str]:
        api_key = self.credentials.get_secret(self.credential_id)
        messages = build_generation_messages(request, current_workflow, history)
        logger.info(f"Generating workflow for request: {request[:100]}")
        yield from self.client.stream(api_key, messages, model=self.model)
