"""Per-node runtime context: input resolution, output publication, logging and shared resources."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.core import LogEntry, LogEventType, LogLevel, TaskNode, WorkflowGraph
from .automation import AutomationHandle
from .interfaces import CredentialStore, FileStorage, ModelClient
from .logging import get_logger, log_with_context

logger = get_logger("webextract.executors")

_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass
class ExecutorServices:
    """External collaborators handed to executors."""
    credentials: Optional[CredentialStore] = None
    files: Optional[FileStorage] = None
    model_client: Optional[ModelClient] = None
    extraction_model: Optional[str] = None
    max_extraction_chars: int = 6_000_000
    download_url_prefix: str = "/api/download/csv"
    http_timeout: float = 30.0


class RunContext:
    """State shared by all nodes of one run.

    Outputs are written once by their producer and read by any consumer;
    the lock only guards the dictionaries themselves.
    """

    def __init__(
        self,
        run_id: str,
        graph: WorkflowGraph,
        automation: AutomationHandle,
        services: Optional[ExecutorServices] = None,
        on_log: Optional[Callable[[LogEntry], None]] = None,
    ):
        self.run_id = run_id
        self.graph = graph
        self.automation = automation
        self.services = services or ExecutorServices()
        self._on_log = on_log
        self._outputs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def publish(self, node_id: str, name: str, value: Any) -> None:
        with self._lock:
            self._outputs.setdefault(node_id, {})[name] = value

    def lookup(self, node_id: str, name: str) -> Tuple[bool, Any]:
        with self._lock:
            values = self._outputs.get(node_id, {})
            if name in values:
                return True, values[name]
            return False, None

    def outputs_of(self, node_id: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._outputs.get(node_id, {}))

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {node_id: dict(values) for node_id, values in self._outputs.items()}

    def record(self, entry: LogEntry) -> None:
        if self._on_log:
            self._on_log(entry)


class NodeLogger:
    """Log sink attributed to one node of one run."""

    def __init__(self, context: RunContext, node_id: str):
        self._context = context
        self._node_id = node_id
        self.entries: List[LogEntry] = []

    def _write(self, level: LogLevel, message: str) -> None:
        entry = LogEntry(
            timestamp=datetime.utcnow(),
            run_id=self._context.run_id,
            node_id=self._node_id,
            event_type=LogEventType.NODE_LOG,
            level=level,
            message=message,
        )
        self.entries.append(entry)
        self._context.record(entry)
        log_with_context(
            logger, _LEVELS[level], message,
            run_id=self._context.run_id, node_id=self._node_id
        )

    def info(self, message: str) -> None:
        self._write(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        self._write(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        self._write(LogLevel.ERROR, message)


class ExecutionEnvironment:
    """
    Runtime view one node gets of its run.

    ``get_input`` prefers a value published by the producer of a bound
    incoming edge and falls back to the node's literal input, so literal
    overrides coexist with wiring.
    """

    def __init__(self, node: TaskNode, context: RunContext):
        self.node = node
        self._context = context
        self.log = NodeLogger(context, node.id)
        self._published: List[str] = []

    @property
    def run_id(self) -> str:
        return self._context.run_id

    @property
    def services(self) -> ExecutorServices:
        return self._context.services

    def get_input(self, name: str) -> Any:
        for edge in self._context.graph.incoming_edges(self.node.id):
            if edge.is_bound and edge.target_handle == name:
                found, value = self._context.lookup(edge.source, edge.source_handle)
                if found:
                    return value
        value = self.node.inputs.get(name)
        return "" if value is None else value

    def set_output(self, name: str, value: Any) -> None:
        self._context.publish(self.node.id, name, value)
        if name not in self._published:
            self._published.append(name)

    @property
    def published_outputs(self) -> List[str]:
        return list(self._published)

    def get_automation(self) -> AutomationHandle:
        """The run's shared browser handle; it starts on first use and belongs to the run."""
        return self._context.automation
