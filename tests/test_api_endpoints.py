"""Tests for the REST API."""

import json

import pytest
from fastapi.testclient import TestClient

from webextract.api import endpoints
from webextract.config import get_testing_config
from webextract.core.exceptions import CredentialError
from webextract.factory import create_app
from webextract.models.core import WorkflowGraph

from conftest import (
    FakeAutomationFactory,
    FakeCredentialStore,
    FakeFileStorage,
    FakeModelClient,
    FakeStreamSource,
    make_node,
    scrape_graph,
    wait_for,
)

GENERATED = {
    "workflow": scrape_graph("https://generated.test").to_json_value(),
    "explanation": "Reads the main heading",
}
CHAT_CHUNKS = ["Sure!\n```json\n", json.dumps(GENERATED), "\n```"]


@pytest.fixture
def files():
    return FakeFileStorage()


@pytest.fixture
def generator():
    return FakeStreamSource(list(CHAT_CHUNKS))


@pytest.fixture
def client(temp_db, files, generator):
    config = get_testing_config().model_copy(update={"database_url": f"sqlite:///{temp_db}"})
    app = create_app(
        config,
        automation_factory=FakeAutomationFactory(),
        credentials=FakeCredentialStore(),
        model_client=FakeModelClient(),
        workflow_generator=generator,
        file_storage=files,
    )
    with TestClient(app) as test_client:
        yield test_client


def _graph_json(graph=None):
    return (graph or scrape_graph()).to_json_value()


def _wait_for_run(client, run_id):
    terminal = {"completed", "failed", "cancelled"}
    assert wait_for(lambda: client.get(f"/api/v1/runs/{run_id}").json()["status"] in terminal)
    return client.get(f"/api/v1/runs/{run_id}").json()


class TestHealth:
    """Root and health endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "WebExtract is running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Response-Time" in response.headers
        assert "X-Request-ID" in response.headers


class TestParsingEndpoints:
    """Parse, validate and the task catalog."""

    def test_parse(self, client):
        text = "```json\n" + json.dumps({"nodes": GENERATED["workflow"]["nodes"], "edges": []}) + "\n```"

        response = client.post("/api/v1/workflows/parse", json={"text": text})

        body = response.json()
        assert response.status_code == 200
        assert body["explanation"] == "Workflow generated successfully"
        assert len(body["workflow"]["nodes"]) == 3
        assert body["workflow"]["edges"][0]["sourceHandle"] == "Web page"

    def test_parse_streaming_in_progress(self, client):
        response = client.post("/api/v1/workflows/parse", json={"text": '{"nodes": [', "streaming": True})

        assert response.json()["workflow"] is None
        assert response.json()["error"] == "JSON streaming in progress"

    def test_validate(self, client):
        response = client.post("/api/v1/workflows/validate",
                               json={"workflow": _graph_json(WorkflowGraph(nodes=[make_node("a", "PAGE_TO_HTML")]))})

        assert response.json() == {"is_valid": False, "errors": ["Workflow must start with LAUNCH_BROWSER task"]}

    def test_tasks(self, client):
        tasks = client.get("/api/v1/tasks").json()

        assert len(tasks) == 13
        launch = next(task for task in tasks if task["type"] == "LAUNCH_BROWSER")
        assert launch["is_entry_point"] is True
        assert launch["inputs"][0] == {
            "name": "Website Url", "type": "STRING", "required": True, "hidden": True, "options": [],
        }


class TestWorkflowEndpoints:
    """Saving, versioning and deleting workflows."""

    def test_create_and_get(self, client):
        response = client.post("/api/v1/workflows", json={"name": "Headlines", "workflow": _graph_json()})

        assert response.status_code == 201
        workflow_id = response.json()["workflow_id"]

        record = client.get(f"/api/v1/workflows/{workflow_id}").json()
        assert record["name"] == "Headlines"
        assert record["version"] == 1
        assert record["node_count"] == 3
        assert WorkflowGraph.model_validate(record["definition"]) == scrape_graph()

        listing = client.get("/api/v1/workflows").json()
        assert [summary["id"] for summary in listing] == [workflow_id]

    def test_create_invalid(self, client):
        response = client.post("/api/v1/workflows", json={"name": "Bad", "workflow": {"nodes": [], "edges": []}})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "GraphValidationError"
        assert detail["details"]["validation_errors"] == ["Workflow must have at least one node"]

    def test_create_requires_name(self, client):
        response = client.post("/api/v1/workflows", json={"name": "", "workflow": _graph_json()})
        assert response.status_code == 422

    def test_update_stores_draft_with_warnings(self, client):
        workflow_id = client.post("/api/v1/workflows", json={"name": "H", "workflow": _graph_json()}).json()["workflow_id"]
        draft = _graph_json(WorkflowGraph(nodes=[make_node("a", "PAGE_TO_HTML")]))

        response = client.put(f"/api/v1/workflows/{workflow_id}", json={"workflow": draft, "name": "Draft"})

        assert response.status_code == 200
        assert response.json() == {
            "workflow_id": workflow_id,
            "version": 2,
            "validation_warnings": ["Workflow must start with LAUNCH_BROWSER task"],
        }
        assert client.get(f"/api/v1/workflows/{workflow_id}").json()["name"] == "Draft"

    def test_missing_workflow(self, client):
        assert client.get("/api/v1/workflows/missing").status_code == 404
        assert client.put("/api/v1/workflows/missing", json={"workflow": _graph_json()}).status_code == 404
        response = client.delete("/api/v1/workflows/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "WorkflowNotFound"

    def test_delete(self, client):
        workflow_id = client.post("/api/v1/workflows", json={"name": "H", "workflow": _graph_json()}).json()["workflow_id"]

        assert client.delete(f"/api/v1/workflows/{workflow_id}").status_code == 200
        assert client.get(f"/api/v1/workflows/{workflow_id}").status_code == 404


class TestRunEndpoints:
    """Starting, polling and cancelling runs."""

    def test_adhoc_run(self, client):
        response = client.post("/api/v1/runs", json={"workflow": _graph_json()})

        assert response.status_code == 202
        assert response.json()["status"] == "pending"
        report = _wait_for_run(client, response.json()["run_id"])
        assert report["status"] == "completed"
        assert report["outputs"]["extract"] == {"Extracted text": "Hello"}
        assert report["nodes"]["extract"]["status"] == "completed"
        assert report["logs"][0]["event_type"] == "run_start"

    def test_invalid_adhoc_run_reports_validation_errors(self, client):
        response = client.post("/api/v1/runs", json={"workflow": {"nodes": [], "edges": []}})

        assert response.status_code == 202
        report = _wait_for_run(client, response.json()["run_id"])
        assert report["status"] == "failed"
        assert report["error_message"] == "Workflow validation failed"
        assert report["validation_errors"] == ["Workflow must have at least one node"]

    def test_run_saved_workflow_version(self, client):
        workflow_id = client.post("/api/v1/workflows", json={"name": "H", "workflow": _graph_json()}).json()["workflow_id"]
        client.put(f"/api/v1/workflows/{workflow_id}",
                   json={"workflow": _graph_json(WorkflowGraph(nodes=[make_node("a", "PAGE_TO_HTML")]))})

        response = client.post(f"/api/v1/workflows/{workflow_id}/runs", params={"version": 1})

        assert response.status_code == 202
        assert _wait_for_run(client, response.json()["run_id"])["status"] == "completed"
        assert client.post("/api/v1/workflows/missing/runs").status_code == 404

    def test_unknown_run(self, client):
        response = client.get("/api/v1/runs/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "RunNotFound"
        assert client.post("/api/v1/runs/missing/cancel").status_code == 404

    def test_cancel_finished_run(self, client):
        run_id = client.post("/api/v1/runs", json={"workflow": _graph_json()}).json()["run_id"]
        _wait_for_run(client, run_id)

        response = client.post(f"/api/v1/runs/{run_id}/cancel")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "RunFinished"


class TestChatEndpoint:
    """Streaming workflow generation."""

    def test_streams_model_text(self, client, generator):
        response = client.post("/api/v1/ai/chat", json={"message": "Get the headline"})

        assert response.status_code == 200
        assert response.text == "".join(CHAT_CHUNKS)
        assert generator.requests == ["Get the headline"]

    def test_final_result_saved_to_workflow(self, client):
        workflow_id = client.post("/api/v1/workflows", json={"name": "H", "workflow": _graph_json()}).json()["workflow_id"]

        client.post("/api/v1/ai/chat", json={"message": "Use another site", "workflow_id": workflow_id})

        record = client.get(f"/api/v1/workflows/{workflow_id}").json()
        assert record["version"] == 2
        assert record["definition"]["nodes"][0]["data"]["inputs"]["Website Url"] == "https://generated.test"

    def test_stream_is_reduced_chunk_by_chunk(self, client, monkeypatch):
        reducers = []

        class RecordingReducer(endpoints.WorkflowStreamReducer):
            def __init__(self):
                super().__init__()
                self.fed = []
                reducers.append(self)

            def feed(self, chunk):
                self.fed.append(chunk)
                return super().feed(chunk)

        monkeypatch.setattr(endpoints, "WorkflowStreamReducer", RecordingReducer)

        client.post("/api/v1/ai/chat", json={"message": "Get the headline"})

        assert len(reducers) == 1
        assert reducers[0].fed == CHAT_CHUNKS
        assert reducers[0].final is not None
        assert len(reducers[0].final.workflow.nodes) == 3

    def test_blank_message(self, client):
        assert client.post("/api/v1/ai/chat", json={"message": "  "}).status_code == 400

    def test_credential_error(self, client, generator):
        generator.error = CredentialError("Credential not found", credential_id="default")

        response = client.post("/api/v1/ai/chat", json={"message": "Get the headline"})

        assert response.status_code == 401
        assert response.json()["error"] == "CredentialError"


class TestDownloads:
    """Generated file downloads."""

    def test_download(self, client, files):
        file_id = files.store(b"a,b\n1,2", "text/csv", "export.csv")

        for prefix in ("/api", "/api/v1"):
            response = client.get(f"{prefix}/download/csv/{file_id}")
            assert response.status_code == 200
            assert response.content == b"a,b\n1,2"
            assert response.headers["content-type"].startswith("text/csv")
            assert response.headers["content-disposition"] == 'attachment; filename="export.csv"'

    def test_missing_file(self, client):
        response = client.get("/api/download/csv/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "FileNotFound"
