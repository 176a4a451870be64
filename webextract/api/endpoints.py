"""FastAPI REST endpoints for workflow parsing, storage and runs."""

import itertools
from typing import Any, Dict, Iterator, List, Optional
from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field

from ..core.exceptions import GraphValidationError, StorageError, WebExtractError, create_error_response
from ..core.interfaces import FileStorage, TextStreamSource
from ..core.recovery_parser import parse_workflow
from ..core.run_controller import RunController
from ..core.stream import WorkflowStreamReducer
from ..core.task_registry import TASK_REGISTRY
from ..core.validator import validate_workflow
from ..core.workflow_store import WorkflowStore
from ..models.core import (
    ParseResult,
    ValidationResult,
    WorkflowGraph,
    WorkflowRecord,
    WorkflowSummary
)
from ..core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["workflow"])
download_router = APIRouter(prefix="/api", tags=["downloads"])

# Global instances (initialized by the application factory)
_workflow_store: Optional[WorkflowStore] = None
_run_controller: Optional[RunController] = None
_file_storage: Optional[FileStorage] = None
_workflow_generator: Optional[TextStreamSource] = None


def init_dependencies(
    workflow_store: WorkflowStore,
    run_controller: RunController,
    file_storage: Optional[FileStorage] = None,
    workflow_generator: Optional[TextStreamSource] = None
):
    """Initialize the global dependencies."""
    global _workflow_store, _run_controller, _file_storage, _workflow_generator
    _workflow_store = workflow_store
    _run_controller = run_controller
    _file_storage = file_storage
    _workflow_generator = workflow_generator


def _not_initialized(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{name} not initialized"
    )


def get_workflow_store() -> WorkflowStore:
    """Dependency to get the workflow store."""
    if _workflow_store is None:
        raise _not_initialized("Workflow store")
    return _workflow_store


def get_run_controller() -> RunController:
    """Dependency to get the run controller."""
    if _run_controller is None:
        raise _not_initialized("Run controller")
    return _run_controller


def get_file_storage() -> FileStorage:
    if _file_storage is None:
        raise _not_initialized("File storage")
    return _file_storage


def get_workflow_generator() -> TextStreamSource:
    if _workflow_generator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "ServiceUnavailable", "message": "Workflow generation is not configured"}
        )
    return _workflow_generator


# Request/Response models
class ParseRequest(BaseModel):
    """Raw model text to recover a workflow from."""
    text: str = Field(..., description="Model response text")
    streaming: bool = Field(False, description="Text is a partial stream")


class ValidateRequest(BaseModel):
    workflow: WorkflowGraph = Field(..., description="Workflow graph to validate")


class CreateWorkflowRequest(BaseModel):
    """Request model for saving a workflow."""
    name: str = Field(..., min_length=1, description="Workflow name")
    description: str = Field("", description="Workflow description")
    workflow: WorkflowGraph = Field(..., description="Workflow graph")


class CreateWorkflowResponse(BaseModel):
    workflow_id: str = Field(..., description="Unique identifier of the saved workflow")
    message: str = Field(..., description="Success message")


class UpdateWorkflowRequest(BaseModel):
    """Request model for saving a new version of a workflow."""
    workflow: WorkflowGraph = Field(..., description="Workflow graph")
    name: Optional[str] = Field(None, description="New name")
    description: Optional[str] = Field(None, description="New description")


class UpdateWorkflowResponse(BaseModel):
    workflow_id: str = Field(..., description="Workflow ID")
    version: int = Field(..., description="Version number just stored")
    validation_warnings: List[str] = Field(default_factory=list, description="Structural problems in the draft")


class RunRequest(BaseModel):
    """Ad-hoc run of a graph that is not saved."""
    workflow: WorkflowGraph = Field(..., description="Workflow graph to execute")


class RunResponse(BaseModel):
    """Response model for a started run."""
    run_id: str = Field(..., description="Unique identifier for the run")
    message: str = Field(..., description="Success message")
    status: str = Field(..., description="Initial run status")


class ChatRequest(BaseModel):
    """Natural-language request for a new or modified workflow."""
    message: str = Field(..., description="User request")
    current_workflow: Optional[Dict[str, Any]] = Field(None, description="Workflow to modify")
    history: List[Dict[str, str]] = Field(default_factory=list, description="Earlier chat messages")
    workflow_id: Optional[str] = Field(None, description="Saved workflow that receives the final result")


def _workflow_not_found(workflow_id: str) -> HTTPException:
    logger.warning(f"Workflow not found: {workflow_id}")
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "WorkflowNotFound",
            "message": f"Workflow with ID '{workflow_id}' not found",
            "details": {"workflow_id": workflow_id}
        }
    )


def _run_not_found(run_id: str) -> HTTPException:
    logger.warning(f"Run not found: {run_id}")
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "RunNotFound",
            "message": f"Workflow run with ID '{run_id}' not found",
            "details": {"run_id": run_id}
        }
    )


def _start_run(run_controller: RunController, graph: WorkflowGraph) -> RunResponse:
    run_id = run_controller.submit(graph)
    logger.info(f"Successfully started workflow run: run_id={run_id}")
    return RunResponse(run_id=run_id, message="Workflow run started successfully", status="pending")


# Endpoints

@router.post(
    "/workflows/parse",
    response_model=ParseResult,
    summary="Recover a workflow from model text",
    description="Never fails: unusable text yields an empty or URL-derived fallback graph"
)
def parse_workflow_text(request: ParseRequest) -> ParseResult:
    return parse_workflow(request.text, streaming=request.streaming)


@router.post("/workflows/validate", response_model=ValidationResult, summary="Validate a workflow graph")
def validate_workflow_graph(request: ValidateRequest) -> ValidationResult:
    return validate_workflow(request.workflow)


@router.get("/tasks", summary="List the task catalog")
async def list_tasks() -> List[Dict[str, Any]]:
    """Every task kind with its typed ports, entry capability and cost."""
    return [definition.model_dump(mode="json") for definition in TASK_REGISTRY.values()]


@router.post(
    "/workflows",
    response_model=CreateWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a new workflow"
)
def create_workflow(
    request: CreateWorkflowRequest,
    workflow_store: WorkflowStore = Depends(get_workflow_store)
) -> CreateWorkflowResponse:
    """
    Save a new workflow.

    Raises:
        HTTPException: 400 if the graph is structurally invalid
    """
    try:
        workflow_id = workflow_store.create_workflow(request.name, request.workflow, request.description)
    except WebExtractError as e:
        logger.warning(f"Workflow creation rejected: {e.message}")
        if isinstance(e, GraphValidationError):
            status_code = status.HTTP_400_BAD_REQUEST
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        raise HTTPException(status_code=status_code, detail=create_error_response(e))

    return CreateWorkflowResponse(
        workflow_id=workflow_id,
        message=f"Workflow '{request.name}' created successfully"
    )


@router.get("/workflows", response_model=List[WorkflowSummary], summary="List saved workflows")
def list_workflows(workflow_store: WorkflowStore = Depends(get_workflow_store)) -> List[WorkflowSummary]:
    return workflow_store.list_workflows()


@router.get("/workflows/{workflow_id}", response_model=WorkflowRecord, summary="Get a saved workflow")
def get_workflow(
    workflow_id: str,
    workflow_store: WorkflowStore = Depends(get_workflow_store)
) -> WorkflowRecord:
    record = workflow_store.get_workflow(workflow_id)
    if record is None:
        raise _workflow_not_found(workflow_id)
    return record


@router.put(
    "/workflows/{workflow_id}",
    response_model=UpdateWorkflowResponse,
    summary="Save a new version of a workflow"
)
def update_workflow(
    workflow_id: str,
    request: UpdateWorkflowRequest,
    workflow_store: WorkflowStore = Depends(get_workflow_store)
) -> UpdateWorkflowResponse:
    version = workflow_store.update_workflow(
        workflow_id, request.workflow, name=request.name, description=request.description
    )
    if version is None:
        raise _workflow_not_found(workflow_id)
    validation = validate_workflow(request.workflow)
    return UpdateWorkflowResponse(workflow_id=workflow_id, version=version, validation_warnings=validation.errors)


@router.delete("/workflows/{workflow_id}", summary="Delete a workflow")
def delete_workflow(
    workflow_id: str,
    workflow_store: WorkflowStore = Depends(get_workflow_store)
) -> Dict[str, str]:
    if not workflow_store.delete_workflow(workflow_id):
        raise _workflow_not_found(workflow_id)
    return {"message": f"Workflow '{workflow_id}' deleted successfully"}


@router.post(
    "/workflows/{workflow_id}/runs",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run a saved workflow"
)
def run_saved_workflow(
    workflow_id: str,
    version: Optional[int] = None,
    workflow_store: WorkflowStore = Depends(get_workflow_store),
    run_controller: RunController = Depends(get_run_controller)
) -> RunResponse:
    graph = workflow_store.get_graph(workflow_id, version=version)
    if graph is None:
        raise _workflow_not_found(workflow_id)
    logger.info(f"Starting run of workflow: {workflow_id}")
    return _start_run(run_controller, graph)


@router.post(
    "/runs",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run an unsaved workflow graph"
)
def run_graph(
    request: RunRequest,
    run_controller: RunController = Depends(get_run_controller)
) -> RunResponse:
    return _start_run(run_controller, request.workflow)


@router.get("/runs/{run_id}", summary="Get run status, node results, logs and text outputs")
def get_run(run_id: str, run_controller: RunController = Depends(get_run_controller)) -> Dict[str, Any]:
    report = run_controller.get_report(run_id)
    if report is None:
        raise _run_not_found(run_id)
    return {**report.model_dump(mode="json"), "outputs": report.text_outputs()}


@router.post("/runs/{run_id}/cancel", summary="Cancel a run")
def cancel_run(run_id: str, run_controller: RunController = Depends(get_run_controller)) -> Dict[str, Any]:
    if run_controller.get_report(run_id) is None:
        raise _run_not_found(run_id)
    if not run_controller.cancel(run_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "RunFinished",
                "message": f"Workflow run '{run_id}' has already finished",
                "details": {"run_id": run_id}
            }
        )
    return {"run_id": run_id, "message": "Cancellation requested"}


@router.post("/ai/chat", summary="Stream a model-authored workflow")
def chat(
    request: ChatRequest,
    generator: TextStreamSource = Depends(get_workflow_generator),
    workflow_store: WorkflowStore = Depends(get_workflow_store)
) -> StreamingResponse:
    """
    Stream model text for a workflow request.

    The first chunk is pulled before responding so credential and upstream
    failures surface as error responses. Once the stream ends the full text
    is parsed; when ``workflow_id`` names a saved workflow the recovered
    graph is stored as its next version.
    """
    if not request.message.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "ValidationError", "message": "Message is required"}
        )

    chunks = iter(generator.stream(request.message, request.current_workflow, request.history))
    first = next(chunks, "")

    def relay() -> Iterator[str]:
        reducer = WorkflowStreamReducer()
        previewed = 0
        for chunk in itertools.chain([first], chunks):
            if not chunk:
                continue
            preview = reducer.feed(chunk)
            if preview.workflow is not None and len(preview.workflow.nodes) != previewed:
                previewed = len(preview.workflow.nodes)
                logger.debug(f"Chat preview has {previewed} node(s)")
            yield chunk
        result = reducer.finish()
        logger.info(f"Chat stream finished; parse error: {result.error}")
        if request.workflow_id and result.workflow is not None and result.workflow.nodes:
            try:
                version = workflow_store.update_workflow(request.workflow_id, result.workflow)
            except StorageError as e:
                logger.error(f"Failed to save chat result to workflow {request.workflow_id}: {e.message}")
                return
            if version is None:
                logger.warning(f"Chat result not saved; workflow {request.workflow_id} not found")

    return StreamingResponse(relay(), media_type="text/plain; charset=utf-8")


@router.get("/download/csv/{file_id}", summary="Download a generated file")
@download_router.get("/download/csv/{file_id}", summary="Download a generated file")
def download_file(file_id: str, file_storage: FileStorage = Depends(get_file_storage)) -> Response:
    stored = file_storage.load(file_id)
    if stored is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "FileNotFound", "message": f"File with ID '{file_id}' not found"}
        )
    return Response(
        content=stored.content,
        media_type=stored.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{stored.filename}"'}
    )
