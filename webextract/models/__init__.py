"""Data models for the workflow engine."""

from .core import (
    NODE_REPRESENTATION_TYPE,
    STREAMING_IN_PROGRESS,
    RunStatusEnum,
    NodeStatusEnum,
    LogEventType,
    LogLevel,
    ValidationResult,
    Position,
    NodeData,
    TaskNode,
    Edge,
    WorkflowGraph,
    ParseResult,
    LogEntry,
    NodeResult,
    RunReport,
    WorkflowSummary,
    WorkflowRecord,
)

__all__ = [
    "NODE_REPRESENTATION_TYPE",
    "STREAMING_IN_PROGRESS",
    "RunStatusEnum",
    "NodeStatusEnum",
    "LogEventType",
    "LogLevel",
    "ValidationResult",
    "Position",
    "NodeData",
    "TaskNode",
    "Edge",
    "WorkflowGraph",
    "ParseResult",
    "LogEntry",
    "NodeResult",
    "RunReport",
    "WorkflowSummary",
    "WorkflowRecord",
]
