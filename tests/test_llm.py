"""Tests for model prompts and the OpenRouter client."""

from types import SimpleNamespace

import pytest
from openai import OpenAIError

from webextract.core.exceptions import CredentialError, UpstreamServiceError
from webextract.core.recovery_parser import parse_workflow
from webextract.core.task_registry import TaskType
from webextract.llm import OpenRouterClient, WorkflowGenerator, SYSTEM_PROMPT, build_generation_messages
from webextract.llm.prompts import _EXAMPLE, HISTORY_LIMIT

from conftest import FakeCredentialStore


class _FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


def _fake_sdk(monkeypatch, client, completions):
    keys = []

    def build(api_key):
        keys.append(api_key)
        return SimpleNamespace(chat=SimpleNamespace(completions=completions))

    monkeypatch.setattr(client, "_client", build)
    return keys


def _delta(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class TestPrompts:
    """Generation prompts."""

    def test_system_prompt_lists_every_task(self):
        for task_type in TaskType:
            assert f"- {task_type.value}:" in SYSTEM_PROMPT
        assert '"Visibility" is one of: visible, hidden.' in SYSTEM_PROMPT

    def test_example_is_a_valid_workflow(self):
        import json

        result = parse_workflow(json.dumps(_EXAMPLE))

        assert result.error is None
        assert len(result.workflow.nodes) == 3

    def test_new_workflow_messages(self):
        messages = build_generation_messages("Scrape quotes")

        assert [message["role"] for message in messages] == ["system", "user"]
        assert '"Scrape quotes"' in messages[1]["content"]
        assert messages[1]["content"].startswith("Generate a web scraping workflow")

    def test_modify_messages_keep_recent_history(self):
        history = [{"role": "user", "content": f"turn {index}"} for index in range(HISTORY_LIMIT + 2)]

        content = build_generation_messages("Add a webhook", {"nodes": []}, history)[1]["content"]

        assert content.startswith("Modify the following workflow")
        assert "turn 0" not in content
        assert "turn 1" not in content
        assert f"user: turn {HISTORY_LIMIT + 1}" in content


class TestOpenRouterClient:
    """Completions and streaming through the OpenAI SDK."""

    def test_complete(self, monkeypatch):
        client = OpenRouterClient(default_model="default-model")
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='[{"a": 1}]'))],
            usage=SimpleNamespace(prompt_tokens=40, completion_tokens=7),
        )
        completions = _FakeCompletions(response)
        keys = _fake_sdk(monkeypatch, client, completions)

        result = client.complete("sk-1", [{"role": "user", "content": "hi"}])

        assert keys == ["sk-1"]
        assert completions.calls[0]["model"] == "default-model"
        assert result.content == '[{"a": 1}]'
        assert (result.prompt_tokens, result.completion_tokens) == (40, 7)

    def test_complete_error(self, monkeypatch):
        client = OpenRouterClient()
        _fake_sdk(monkeypatch, client, _FakeCompletions(error=OpenAIError("quota exceeded")))

        with pytest.raises(UpstreamServiceError, match="quota exceeded"):
            client.complete("sk-1", [], model="m")

    def test_stream_skips_empty_deltas(self, monkeypatch):
        client = OpenRouterClient()
        chunks = [_delta("Hel"), SimpleNamespace(choices=[]), _delta(None), _delta("lo")]
        completions = _FakeCompletions(iter(chunks))
        _fake_sdk(monkeypatch, client, completions)

        assert list(client.stream("sk-1", [], model="m")) == ["Hel", "lo"]
        assert completions.calls[0]["stream"] is True

    def test_stream_error(self, monkeypatch):
        client = OpenRouterClient()
        _fake_sdk(monkeypatch, client, _FakeCompletions(error=OpenAIError("bad key")))

        with pytest.raises(UpstreamServiceError):
            list(client.stream("sk-1", []))


class TestWorkflowGenerator:
    """Credential lookup and message building around the stream."""

    def test_streams_with_resolved_key(self, monkeypatch):
        client = OpenRouterClient()
        completions = _FakeCompletions(iter([_delta("{}")]))
        keys = _fake_sdk(monkeypatch, client, completions)
        generator = WorkflowGenerator(client, FakeCredentialStore(), model="gen-model")

        assert list(generator.stream("Scrape quotes")) == ["{}"]
        assert keys == ["sk-test"]
        assert completions.calls[0]["model"] == "gen-model"
        assert completions.calls[0]["messages"][0]["role"] == "system"

    def test_missing_credential(self):
        generator = WorkflowGenerator(OpenRouterClient(), FakeCredentialStore({}))

        with pytest.raises(CredentialError):
            next(generator.stream("Scrape quotes"))
