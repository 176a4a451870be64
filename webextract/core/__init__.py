"""Core workflow recovery and execution components."""

from .exceptions import (
    WebExtractError,
    MalformedPayloadError,
    GraphValidationError,
    NodeExecutionError,
    MissingInputError,
    CredentialError,
    UpstreamServiceError,
    ResourceError,
    RunControllerError,
    StorageError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .recovery_parser import parse_workflow
from .validator import validate_workflow
from .auto_edges import generate_auto_edges
from .stream import WorkflowStreamReducer, reduce_stream
from .task_registry import TASK_REGISTRY, TaskType, get_task_definition
from .workflow_store import WorkflowStore

__all__ = [
    "WebExtractError",
    "MalformedPayloadError",
    "GraphValidationError",
    "NodeExecutionError",
    "MissingInputError",
    "CredentialError",
    "UpstreamServiceError",
    "ResourceError",
    "RunControllerError",
    "StorageError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "parse_workflow",
    "validate_workflow",
    "generate_auto_edges",
    "WorkflowStreamReducer",
    "reduce_stream",
    "TASK_REGISTRY",
    "TaskType",
    "get_task_definition",
    "WorkflowStore",
]
