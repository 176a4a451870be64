"""Synthesize edges for a node list from its layout order."""

from typing import List

from ..models.core import Edge, TaskNode
from .task_registry import get_task_definition
from .logging import get_logger

logger = get_logger(__name__)


def edge_id(source: str, target: str) -> str:
    return f"edge-{source}-{target}"


def layout_order(nodes: List[TaskNode]) -> List[TaskNode]:
    """Top-to-bottom, then left-to-right; nodes without a position keep authoring order at the origin."""
    def key(node: TaskNode):
        if node.position is None:
            return (0.0, 0.0)
        return (node.position.y, node.position.x)

    return sorted(nodes, key=key)


def generate_auto_edges(nodes: List[TaskNode]) -> List[Edge]:
    """Chain consecutive nodes, binding the source's first output to the target's first wirable input.

    Pairs without a usable port pair still get a structural edge with no
    handles, so N nodes always yield N-1 edges.
    """
    ordered = layout_order(nodes)
    edges: List[Edge] = []

    for source, target in zip(ordered, ordered[1:]):
        source_task = get_task_definition(source.task_type)
        target_task = get_task_definition(target.task_type)
        output = source_task.first_output() if source_task else None
        wirable = target_task.first_wirable_input() if target_task else None

        if output and wirable:
            edges.append(Edge(
                id=edge_id(source.id, target.id),
                source=source.id,
                target=target.id,
                source_handle=output.name,
                target_handle=wirable.name,
            ))
        else:
            logger.debug(f"No compatible ports between {source.task_type} and {target.task_type}")
            edges.append(Edge(id=edge_id(source.id, target.id), source=source.id, target=target.id))

    logger.debug(f"Generated {len(edges)} auto edges for {len(nodes)} nodes")
    return edges
