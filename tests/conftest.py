"""Pytest configuration and fixtures."""

import os
import tempfile
import threading
import time
import uuid
from typing import Dict, List, Optional

import pytest

from webextract.core.automation import AutomationHandle
from webextract.core.environment import ExecutorServices, RunContext, ExecutionEnvironment
from webextract.core.exceptions import CredentialError, UpstreamServiceError
from webextract.core.interfaces import CompletionResult, StoredFile
from webextract.models.core import Edge, NodeData, Position, TaskNode, WorkflowGraph
from webextract.storage.database import init_database, reset_database_engine


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    @property
    def first(self):
        return self

    def scroll_into_view_if_needed(self):
        self.page.actions.append(("scroll", self.selector))


class FakePage:
    """Records the calls executors make on a Playwright page."""

    def __init__(self, html: str = "<html><body><h1>Hello</h1></body></html>"):
        self.html = html
        self.url = None
        self.actions: List[tuple] = []
        self.closed = False

    def goto(self, url, **kwargs):
        self.url = url
        self.actions.append(("goto", url))

    def content(self):
        return self.html

    def fill(self, selector, value):
        self.actions.append(("fill", selector, value))

    def click(self, selector):
        self.actions.append(("click", selector))

    def wait_for_selector(self, selector, state="visible"):
        self.actions.append(("wait", selector, state))

    def locator(self, selector):
        return FakeLocator(self, selector)

    def set_content(self, html, **kwargs):
        self.html = html

    def screenshot(self, **kwargs):
        return b"\x89PNG fake"

    def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, html: str):
        self.html = html
        self.pages: List[FakePage] = []

    def new_page(self, **kwargs):
        page = FakePage(self.html)
        self.pages.append(page)
        return page


class FakeSession:
    def __init__(self, html: str):
        self.browser = FakeBrowser(html)
        self.closed = 0

    def close(self):
        self.closed += 1


class FakeAutomationFactory:
    """Builds real AutomationHandles whose browser is a FakeBrowser."""

    def __init__(self, html: str = "<html><body><h1>Hello</h1></body></html>", fail_start: bool = False):
        self.html = html
        self.fail_start = fail_start
        self.handles: List[AutomationHandle] = []
        self.sessions: List[FakeSession] = []
        self._lock = threading.Lock()

    def _start_session(self):
        if self.fail_start:
            raise RuntimeError("browser binary missing")
        session = FakeSession(self.html)
        with self._lock:
            self.sessions.append(session)
        return session

    def __call__(self) -> AutomationHandle:
        handle = AutomationHandle(session_factory=self._start_session)
        with self._lock:
            self.handles.append(handle)
        return handle


class FakeCredentialStore:
    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        self.secrets = secrets if secrets is not None else {"default": "sk-test"}

    def get_secret(self, credential_id: str) -> str:
        if credential_id not in self.secrets:
            raise CredentialError("Credential not found", credential_id=credential_id)
        return self.secrets[credential_id]


class FakeFileStorage:
    def __init__(self):
        self.files: Dict[str, StoredFile] = {}

    def store(self, content: bytes, mime_type: str, filename: str) -> str:
        file_id = str(uuid.uuid4())
        self.files[file_id] = StoredFile(id=file_id, filename=filename, mime_type=mime_type, content=content)
        return file_id

    def load(self, file_id: str) -> Optional[StoredFile]:
        return self.files.get(file_id)


class FakeModelClient:
    def __init__(self, content: Optional[str] = '{"items": []}', error: Optional[str] = None):
        self.content = content
        self.error = error
        self.calls: List[dict] = []

    def complete(self, api_key, messages, model=None) -> CompletionResult:
        self.calls.append({"api_key": api_key, "messages": messages, "model": model})
        if self.error:
            raise UpstreamServiceError(self.error, service="fake")
        return CompletionResult(content=self.content, prompt_tokens=12, completion_tokens=3)


class FakeStreamSource:
    def __init__(self, chunks: List[str], error: Optional[Exception] = None):
        self.chunks = chunks
        self.error = error
        self.requests: List[str] = []

    def stream(self, request, current_workflow=None, history=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        for chunk in self.chunks:
            yield chunk


def make_node(node_id: str, task_type: str, inputs: Optional[dict] = None, x: float = 0, y: float = 0) -> TaskNode:
    return TaskNode(id=node_id, data=NodeData(type=task_type, inputs=inputs or {}), position=Position(x=x, y=y))


def bind(source: str, source_handle: str, target: str, target_handle: str) -> Edge:
    return Edge(
        id=f"edge-{source}-{target}-{target_handle}",
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=target_handle,
    )


def scrape_graph(url: str = "https://example.com") -> WorkflowGraph:
    """LAUNCH_BROWSER -> PAGE_TO_HTML -> EXTRACT_TEXT_FROM_ELEMENT, fully bound."""
    return WorkflowGraph(
        nodes=[
            make_node("launch", "LAUNCH_BROWSER", {"Website Url": url}),
            make_node("html", "PAGE_TO_HTML", x=400),
            make_node("extract", "EXTRACT_TEXT_FROM_ELEMENT", {"Selector": "h1"}, x=800),
        ],
        edges=[
            bind("launch", "Web page", "html", "Web page"),
            bind("html", "Html", "extract", "Html"),
        ],
    )


@pytest.fixture
def automation_factory():
    return FakeAutomationFactory()


@pytest.fixture
def services():
    return ExecutorServices(
        credentials=FakeCredentialStore(),
        files=FakeFileStorage(),
        model_client=FakeModelClient(),
        extraction_model="test-model",
    )


@pytest.fixture
def make_env(automation_factory, services):
    """Build an ExecutionEnvironment for a single node with optional upstream outputs."""
    handles = []

    def _make(node: TaskNode, graph: Optional[WorkflowGraph] = None,
              published: Optional[Dict[str, Dict[str, object]]] = None):
        graph = graph or WorkflowGraph(nodes=[node])
        handle = automation_factory()
        handles.append(handle)
        context = RunContext("run-test", graph, handle, services)
        for node_id, values in (published or {}).items():
            for name, value in values.items():
                context.publish(node_id, name, value)
        return ExecutionEnvironment(node, context)

    yield _make

    for handle in handles:
        handle.release()


@pytest.fixture
def temp_db():
    """Bind the global engine to a temporary SQLite file."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    init_database(f"sqlite:///{db_path}")

    yield db_path

    reset_database_engine()
    try:
        os.unlink(db_path)
    except OSError:
        pass


def outputs_of(env: ExecutionEnvironment) -> Dict[str, object]:
    """Values a node published, read back through its run context."""
    return env._context.outputs_of(env.node.id)


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
