"""Structural validation of workflow graphs."""

from typing import List

from ..models.core import ValidationResult, WorkflowGraph
from .task_registry import entry_point_types, is_entry_point, is_known_task
from .logging import get_logger

logger = get_logger(__name__)


def validate_workflow(graph: WorkflowGraph) -> ValidationResult:
    """
    Check a graph for structural defects without mutating it.

    All problems are collected; only an empty node list stops the check
    early because nothing else can be judged without nodes.

    Args:
        graph: The graph to check

    Returns:
        ValidationResult: Validity flag and ordered error messages
    """
    errors: List[str] = []

    if not graph.nodes:
        errors.append("Workflow must have at least one node")
        return ValidationResult(is_valid=False, errors=errors)

    _validate_entry_point(graph, errors)
    _validate_nodes(graph, errors)
    _validate_edges(graph, errors)

    logger.debug(f"Workflow validation completed. Valid: {not errors}, Errors: {len(errors)}")
    return ValidationResult(is_valid=not errors, errors=errors)


def _validate_entry_point(graph: WorkflowGraph, errors: List[str]):
    if not any(is_entry_point(node.task_type) for node in graph.nodes):
        names = " or ".join(task_type.value for task_type in entry_point_types())
        errors.append(f"Workflow must start with {names} task")


def _validate_nodes(graph: WorkflowGraph, errors: List[str]):
    seen = set()
    for index, node in enumerate(graph.nodes, start=1):
        if not node.id:
            errors.append(f"Node {index} is missing an ID")
        elif node.id in seen:
            errors.append(f"Node {index} has duplicate ID: {node.id}")
        else:
            seen.add(node.id)

        if not node.task_type:
            errors.append(f"Node {index} is missing task type")
        elif not is_known_task(node.task_type):
            errors.append(f"Node {index} has invalid task type: {node.task_type}")

        if node.position is None:
            errors.append(f"Node {index} is missing position")


def _validate_edges(graph: WorkflowGraph, errors: List[str]):
    node_ids = {node.id for node in graph.nodes}
    for index, edge in enumerate(graph.edges, start=1):
        if not edge.id:
            errors.append(f"Edge {index} is missing an ID")

        if not edge.source or not edge.target:
            errors.append(f"Edge {index} is missing source or target")

        if edge.source not in node_ids:
            errors.append(f"Edge {index} references non-existent source node: {edge.source}")
        if edge.target not in node_ids:
            errors.append(f"Edge {index} references non-existent target node: {edge.target}")
