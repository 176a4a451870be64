"""Core Pydantic models for workflow graphs, parse results and runs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Structural tag the editor and the run controller both expect on every node.
NODE_REPRESENTATION_TYPE = "FlowScrapeNode"

# Error marker returned while streamed text is still incomplete.
STREAMING_IN_PROGRESS = "JSON streaming in progress"


class RunStatusEnum(str, Enum):
    """Enumeration of workflow run statuses."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NodeStatusEnum(str, Enum):
    """Enumeration of per-node execution statuses."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class LogEventType(str, Enum):
    """Enumeration of run log event types."""
    NODE_START = "node_start"
    NODE_COMPLETE = "node_complete"
    NODE_ERROR = "node_error"
    NODE_SKIPPED = "node_skipped"
    NODE_LOG = "node_log"
    RUN_START = "run_start"
    RUN_COMPLETE = "run_complete"


class LogLevel(str, Enum):
    """Severity of a run log entry."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ValidationResult(BaseModel):
    """Result of workflow validation."""
    is_valid: bool = Field(..., description="Whether the workflow is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")


class Position(BaseModel):
    """Editor canvas position; only used to order nodes."""
    x: float = Field(0, description="Horizontal position")
    y: float = Field(0, description="Vertical position")


class NodeData(BaseModel):
    """Task payload of a node."""
    model_config = ConfigDict(extra="allow")

    type: str = Field("", description="Task kind tag")
    inputs: Dict[str, Any] = Field(default_factory=dict, description="Literal input values by port name")

    @field_validator('inputs', mode='before')
    @classmethod
    def default_inputs(cls, inputs):
        """Treat a missing or malformed input mapping as empty."""
        if not isinstance(inputs, dict):
            return {}
        return inputs


class TaskNode(BaseModel):
    """A single task node in the editor's JSON shape."""
    model_config = ConfigDict(extra="allow")

    id: str = Field("", description="Unique identifier for the node")
    type: str = Field(NODE_REPRESENTATION_TYPE, description="Structural node tag")
    data: NodeData = Field(default_factory=NodeData, description="Task kind and literal inputs")
    position: Optional[Position] = Field(None, description="Canvas position")

    @property
    def task_type(self) -> str:
        return self.data.type

    @property
    def inputs(self) -> Dict[str, Any]:
        return self.data.inputs


class Edge(BaseModel):
    """Connection between an output port of one node and an input port of another."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field("", description="Unique identifier for the edge")
    source: str = Field("", description="Source node ID")
    target: str = Field("", description="Target node ID")
    source_handle: Optional[str] = Field(None, alias="sourceHandle", description="Source output port")
    target_handle: Optional[str] = Field(None, alias="targetHandle", description="Target input port")

    @property
    def is_bound(self) -> bool:
        """An edge resolves a value only when both port names are present."""
        return bool(self.source_handle) and bool(self.target_handle)


class WorkflowGraph(BaseModel):
    """Ordered nodes and edges of a scraping pipeline."""
    nodes: List[TaskNode] = Field(default_factory=list, description="Nodes in authoring order")
    edges: List[Edge] = Field(default_factory=list, description="Edges in authoring order")

    def get_node(self, node_id: str) -> Optional[TaskNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def to_json_value(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible shape shared with graph consumers."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ParseResult(BaseModel):
    """Outcome of recovering a workflow from model text. Never an exception."""
    workflow: Optional[WorkflowGraph] = Field(None, description="Recovered graph, if any")
    explanation: Optional[str] = Field(None, description="Human readable explanation")
    error: Optional[str] = Field(None, description="Error or warning note")

    @property
    def in_progress(self) -> bool:
        return self.workflow is None and self.error == STREAMING_IN_PROGRESS


class LogEntry(BaseModel):
    """Log entry produced during a run."""
    timestamp: datetime = Field(..., description="Timestamp of the log entry")
    run_id: str = Field(..., description="ID of the workflow run")
    node_id: Optional[str] = Field(None, description="ID of the node that generated the log")
    event_type: LogEventType = Field(..., description="Type of event")
    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    message: str = Field(..., description="Log message")


class NodeResult(BaseModel):
    """Execution outcome of a single node."""
    node_id: str = Field(..., description="Node ID")
    task_type: str = Field(..., description="Task kind executed")
    status: NodeStatusEnum = Field(NodeStatusEnum.PENDING, description="Node status")
    started_at: Optional[datetime] = Field(None, description="When the executor started")
    completed_at: Optional[datetime] = Field(None, description="When the executor finished")
    error: Optional[str] = Field(None, description="Failure or skip reason")
    outputs: List[str] = Field(default_factory=list, description="Names of published outputs")


class RunReport(BaseModel):
    """Status and results of a workflow run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str = Field(..., description="Unique identifier for the run")
    status: RunStatusEnum = Field(RunStatusEnum.PENDING, description="Current run status")
    started_at: Optional[datetime] = Field(None, description="Timestamp when the run started")
    completed_at: Optional[datetime] = Field(None, description="Timestamp when the run ended")
    error_message: Optional[str] = Field(None, description="Error message if the run failed")
    validation_errors: List[str] = Field(default_factory=list, description="Errors that blocked execution")
    nodes: Dict[str, NodeResult] = Field(default_factory=dict, description="Per-node results")
    logs: List[LogEntry] = Field(default_factory=list, description="Ordered run log")
    outputs: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, exclude=True, description="Published output values by node and port"
    )

    def text_outputs(self) -> Dict[str, Dict[str, str]]:
        """Outputs that are plain text; browser handles and other objects are left out."""
        return {
            node_id: {name: value for name, value in values.items() if isinstance(value, str)}
            for node_id, values in self.outputs.items()
        }


class WorkflowSummary(BaseModel):
    """Summary information about a stored workflow."""
    id: str = Field(..., description="Workflow ID")
    name: str = Field(..., description="Workflow name")
    description: str = Field("", description="Workflow description")
    version: int = Field(1, description="Current definition version")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")
    node_count: int = Field(..., description="Number of nodes in the workflow")


class WorkflowRecord(WorkflowSummary):
    """Stored workflow including its definition."""
    definition: WorkflowGraph = Field(..., description="Workflow graph")
