"""Run controller: executes a validated workflow graph node by node."""

import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from ..models.core import (
    LogEntry, LogEventType, LogLevel, NodeResult, NodeStatusEnum,
    RunReport, RunStatusEnum, TaskNode, WorkflowGraph
)
from .automation import AutomationHandle
from .environment import ExecutionEnvironment, ExecutorServices, RunContext
from .exceptions import MissingInputError, RunControllerError, WebExtractError
from .task_registry import TaskType, get_task_definition
from .validator import validate_workflow
from .logging import get_logger

logger = get_logger(__name__)

NodeOutcome = Tuple[bool, Optional[str], List[str]]

CYCLE_MESSAGE = "Skipped because of a dependency cycle"
UPSTREAM_MESSAGE = "Skipped because an upstream node did not complete"
HALTED_MESSAGE = "Skipped after an earlier node failed"
CANCELLED_MESSAGE = "Skipped because the run was cancelled"

ACTIVE_STATUSES = (RunStatusEnum.PENDING, RunStatusEnum.RUNNING)


class RunController:
    """
    Executes workflow graphs with dependency ordering and per-node isolation.

    Each run owns one AutomationHandle. It is created when the run starts,
    shared by every node through the execution environment, and released
    exactly once before the run reports its terminal status.
    """

    def __init__(
        self,
        services: Optional[ExecutorServices] = None,
        automation_factory: Optional[Callable[[], AutomationHandle]] = None,
        executors: Optional[Mapping[TaskType, Callable[[ExecutionEnvironment], bool]]] = None,
        max_node_workers: int = 4,
        max_concurrent_runs: int = 4,
        continue_on_failure: bool = True,
        node_timeout: Optional[float] = None,
        max_retained_runs: int = 100,
    ):
        """Initialize the run controller.

        Args:
            services: Collaborators handed to executors
            automation_factory: Builds the shared browser handle for a run
            executors: Executor table; defaults to the built-in one
            max_node_workers: Nodes of one run allowed to execute at once
            max_concurrent_runs: Background runs allowed at once
            continue_on_failure: Keep running independent branches after a node fails
            node_timeout: Seconds a node may run before it is marked failed
            max_retained_runs: Finished reports kept for polling; the oldest are dropped first
        """
        if executors is None:
            from ..executors import EXECUTORS
            executors = EXECUTORS

        self.services = services or ExecutorServices()
        self._automation_factory = automation_factory or AutomationHandle
        self._executors = executors
        self.max_node_workers = max_node_workers
        self.continue_on_failure = continue_on_failure
        self.node_timeout = node_timeout
        self.max_retained_runs = max_retained_runs

        self._reports: "OrderedDict[str, RunReport]" = OrderedDict()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._active_runs: Dict[str, Future] = {}
        self._run_pool = ThreadPoolExecutor(max_workers=max_concurrent_runs, thread_name_prefix="run")
        self._lock = threading.RLock()

        logger.info(f"RunController initialized with max_node_workers={max_node_workers}, "
                    f"continue_on_failure={continue_on_failure}")

    def submit(self, graph: WorkflowGraph) -> str:
        """Start a run in the background and return its ID."""
        run_id = str(uuid.uuid4())
        self._register(run_id)
        try:
            future = self._run_pool.submit(self.run, graph, run_id)
        except RuntimeError as e:
            raise RunControllerError(f"Failed to start workflow run: {str(e)}", run_id=run_id)
        with self._lock:
            self._active_runs[run_id] = future
        future.add_done_callback(lambda _: self._active_runs.pop(run_id, None))
        logger.info(f"Submitted workflow run: {run_id}")
        return run_id

    def get_report(self, run_id: str) -> Optional[RunReport]:
        """Snapshot of a run's report, or None for an unknown run."""
        with self._lock:
            report = self._reports.get(run_id)
            if report is None:
                return None
            return report.model_copy(update={
                "nodes": {node_id: result.model_copy() for node_id, result in report.nodes.items()},
                "logs": list(report.logs),
            })

    def cancel(self, run_id: str) -> bool:
        """Ask a pending or running run to stop; nodes already running finish first."""
        with self._lock:
            report = self._reports.get(run_id)
            if report is None:
                logger.warning(f"Attempted to cancel unknown run: {run_id}")
                return False
            event = self._cancel_events.get(run_id)
            if report.status not in ACTIVE_STATUSES or event is None:
                logger.warning(f"Attempted to cancel finished run: {run_id}")
                return False
            event.set()
        logger.info(f"Cancellation requested for run: {run_id}")
        return True

    def is_active(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._active_runs

    def shutdown(self) -> None:
        """Cancel active runs and wait for them to wind down."""
        for run_id in list(self._active_runs):
            self.cancel(run_id)
        self._run_pool.shutdown(wait=True)
        logger.info("RunController shutdown completed")

    def run(self, graph: WorkflowGraph, run_id: Optional[str] = None) -> RunReport:
        """
        Execute a graph and block until it reaches a terminal state.

        Args:
            graph: Graph to execute; it is never mutated
            run_id: Optional ID, generated when omitted

        Returns:
            RunReport: Final report of the run
        """
        run_id = run_id or str(uuid.uuid4())
        report, cancel_event = self._register(run_id)

        validation = validate_workflow(graph)
        if not validation.is_valid:
            with self._lock:
                report.status = RunStatusEnum.FAILED
                report.error_message = "Workflow validation failed"
                report.validation_errors = list(validation.errors)
                report.completed_at = datetime.utcnow()
            self._log_event(report, None, LogEventType.RUN_COMPLETE,
                            f"Run refused: {'; '.join(validation.errors)}", LogLevel.ERROR)
            logger.warning(f"Refused to execute invalid workflow for run {run_id}")
            self._retire(run_id)
            return report

        with self._lock:
            report.status = RunStatusEnum.RUNNING
            report.started_at = datetime.utcnow()
            for node in graph.nodes:
                report.nodes[node.id] = NodeResult(node_id=node.id, task_type=node.task_type)
        self._log_event(report, None, LogEventType.RUN_START, f"Starting run with {len(graph.nodes)} nodes")

        automation = self._automation_factory()
        context = RunContext(
            run_id, graph, automation, self.services,
            on_log=lambda entry: self._append_log(report, entry)
        )
        unexpected_error = None
        try:
            self._execute_graph(graph, context, report, cancel_event)
        except Exception as e:
            unexpected_error = f"Run execution failed: {str(e)}"
            logger.exception(f"Workflow run {run_id} failed: {str(e)}")
        finally:
            automation.release()

        self._finalize(report, context, cancel_event, unexpected_error)
        return report

    def _register(self, run_id: str) -> Tuple[RunReport, threading.Event]:
        with self._lock:
            report = self._reports.get(run_id)
            if report is None:
                report = RunReport(run_id=run_id)
                self._reports[run_id] = report
            event = self._cancel_events.setdefault(run_id, threading.Event())
            return report, event

    def _finalize(self, report: RunReport, context: RunContext,
                  cancel_event: threading.Event, unexpected_error: Optional[str]) -> None:
        failed = [result.node_id for result in report.nodes.values() if result.status == NodeStatusEnum.FAILED]
        with self._lock:
            report.outputs = context.snapshot()
            # page handles and other live objects die with the run
            report.outputs = report.text_outputs()
            report.completed_at = datetime.utcnow()
            if unexpected_error:
                report.status = RunStatusEnum.FAILED
                report.error_message = unexpected_error
            elif cancel_event.is_set():
                report.status = RunStatusEnum.CANCELLED
                report.error_message = "Run cancelled by user"
            elif failed:
                report.status = RunStatusEnum.FAILED
                report.error_message = f"{len(failed)} node(s) failed: {', '.join(failed)}"
            else:
                report.status = RunStatusEnum.COMPLETED

        self._log_event(report, None, LogEventType.RUN_COMPLETE, f"Run finished with status {report.status.value}",
                        LogLevel.INFO if report.status == RunStatusEnum.COMPLETED else LogLevel.ERROR)
        logger.info(f"Workflow run {report.run_id} finished with status {report.status.value}")
        self._retire(report.run_id)

    def _retire(self, run_id: str) -> None:
        """Drop the cancel flag of a finished run and prune the oldest finished reports."""
        with self._lock:
            self._cancel_events.pop(run_id, None)
            finished = [key for key, report in self._reports.items() if report.status not in ACTIVE_STATUSES]
            for key in finished[:max(0, len(finished) - self.max_retained_runs)]:
                del self._reports[key]

    def _dependencies(self, graph: WorkflowGraph) -> Dict[str, Set[str]]:
        """Producers each node waits for; only bound edges carry values."""
        node_ids = {node.id for node in graph.nodes}
        dependencies: Dict[str, Set[str]] = {node_id: set() for node_id in node_ids}
        for edge in graph.edges:
            if edge.is_bound and edge.source in node_ids and edge.target in node_ids:
                dependencies[edge.target].add(edge.source)
        return dependencies

    def _execute_graph(self, graph: WorkflowGraph, context: RunContext,
                       report: RunReport, cancel_event: threading.Event) -> None:
        dependencies = self._dependencies(graph)
        nodes = {node.id: node for node in graph.nodes}
        pending: List[str] = [node.id for node in graph.nodes]
        running: Dict[Future, str] = {}
        deadlines: Dict[Future, float] = {}
        abandoned = False

        pool = ThreadPoolExecutor(max_workers=self.max_node_workers,
                                  thread_name_prefix=f"node-{context.run_id[:8]}")
        try:
            while pending or running:
                halted = not self.continue_on_failure and self._any_failed(report)
                stopping = cancel_event.is_set() or halted

                self._skip_blocked(pending, dependencies, report)

                if not stopping:
                    for node_id in list(pending):
                        if all(report.nodes[dep].status == NodeStatusEnum.COMPLETED
                               for dep in dependencies[node_id]):
                            pending.remove(node_id)
                            self._start_node(nodes[node_id], context, report)
                            future = pool.submit(self._run_node, nodes[node_id], context)
                            running[future] = node_id
                            if self.node_timeout:
                                deadlines[future] = time.monotonic() + self.node_timeout

                if not running:
                    if pending:
                        if cancel_event.is_set():
                            reason = CANCELLED_MESSAGE
                        elif halted:
                            reason = HALTED_MESSAGE
                        else:
                            reason = CYCLE_MESSAGE
                        for node_id in pending:
                            self._skip_node(report, node_id, reason)
                        pending.clear()
                    break

                timeout = None
                if deadlines:
                    timeout = max(0.0, min(deadlines.values()) - time.monotonic())
                done, _ = wait(list(running), timeout=timeout, return_when=FIRST_COMPLETED)

                for future in done:
                    node_id = running.pop(future)
                    deadlines.pop(future, None)
                    self._complete_node(report, node_id, *future.result())

                now = time.monotonic()
                for future, deadline in list(deadlines.items()):
                    if future not in done and deadline <= now:
                        node_id = running.pop(future)
                        deadlines.pop(future)
                        abandoned = True
                        self._complete_node(report, node_id, False,
                                            f"Node timed out after {self.node_timeout} seconds", [])
        finally:
            pool.shutdown(wait=not abandoned)

    def _any_failed(self, report: RunReport) -> bool:
        return any(result.status == NodeStatusEnum.FAILED for result in report.nodes.values())

    def _skip_blocked(self, pending: List[str], dependencies: Dict[str, Set[str]], report: RunReport) -> None:
        """Skip every pending node downstream of a failed or skipped producer."""
        progressed = True
        while progressed:
            progressed = False
            for node_id in list(pending):
                statuses = [report.nodes[dep].status for dep in dependencies[node_id]]
                if any(status in (NodeStatusEnum.FAILED, NodeStatusEnum.SKIPPED) for status in statuses):
                    pending.remove(node_id)
                    self._skip_node(report, node_id, UPSTREAM_MESSAGE)
                    progressed = True

    def _start_node(self, node: TaskNode, context: RunContext, report: RunReport) -> None:
        with self._lock:
            result = report.nodes[node.id]
            result.status = NodeStatusEnum.RUNNING
            result.started_at = datetime.utcnow()
        self._log_event(report, node.id, LogEventType.NODE_START,
                        f"Starting execution of node {node.id} ({node.task_type})")

    def _skip_node(self, report: RunReport, node_id: str, reason: str) -> None:
        with self._lock:
            result = report.nodes[node_id]
            result.status = NodeStatusEnum.SKIPPED
            result.error = reason
        self._log_event(report, node_id, LogEventType.NODE_SKIPPED, reason, LogLevel.WARNING)

    def _complete_node(self, report: RunReport, node_id: str, success: bool,
                       error: Optional[str], outputs: List[str]) -> None:
        with self._lock:
            result = report.nodes[node_id]
            result.completed_at = datetime.utcnow()
            result.outputs = outputs
            result.status = NodeStatusEnum.COMPLETED if success else NodeStatusEnum.FAILED
            result.error = None if success else error
        if success:
            self._log_event(report, node_id, LogEventType.NODE_COMPLETE, f"Completed execution of node {node_id}")
        else:
            self._log_event(report, node_id, LogEventType.NODE_ERROR,
                            f"Node {node_id} execution failed: {error}", LogLevel.ERROR)

    def _run_node(self, node: TaskNode, context: RunContext) -> NodeOutcome:
        """Execute one node; every failure is contained here and reported as an outcome."""
        env = ExecutionEnvironment(node, context)
        try:
            executor = self._executors.get(TaskType(node.task_type))
            if executor is None:
                raise RunControllerError(f"No executor registered for task type {node.task_type}",
                                         run_id=context.run_id)
            self._check_required_inputs(env)
            success = bool(executor(env))
        except WebExtractError as e:
            env.log.error(e.message)
            return False, e.message, env.published_outputs
        except Exception as e:
            logger.exception(f"Unexpected error in node {node.id} for run {context.run_id}: {str(e)}")
            env.log.error(f"Unexpected error: {str(e)}")
            return False, str(e) or e.__class__.__name__, env.published_outputs

        if success:
            return True, None, env.published_outputs
        errors = [entry.message for entry in env.log.entries if entry.level == LogLevel.ERROR]
        return False, errors[-1] if errors else "Executor reported failure", env.published_outputs

    def _check_required_inputs(self, env: ExecutionEnvironment) -> None:
        definition = get_task_definition(env.node.task_type)
        for param in definition.inputs if definition else ():
            if param.required and env.get_input(param.name) in ("", None):
                raise MissingInputError(param.name, node_id=env.node.id, run_id=env.run_id)

    def _append_log(self, report: RunReport, entry: LogEntry) -> None:
        with self._lock:
            report.logs.append(entry)

    def _log_event(self, report: RunReport, node_id: Optional[str], event_type: LogEventType,
                   message: str, level: LogLevel = LogLevel.INFO) -> None:
        self._append_log(report, LogEntry(
            timestamp=datetime.utcnow(),
            run_id=report.run_id,
            node_id=node_id,
            event_type=event_type,
            level=level,
            message=message,
        ))
