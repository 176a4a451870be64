"""Recover a workflow graph from language-model output.

``parse_workflow`` never raises. Each stage degrades to the next one:
strict decode, repaired decode, array reconstruction, URL fallback and
finally an empty graph with an explanation.
"""

import json
import re
import uuid
from typing import Any, Dict, List, Optional

from ..models.core import (
    NODE_REPRESENTATION_TYPE, STREAMING_IN_PROGRESS,
    Edge, NodeData, ParseResult, Position, TaskNode, WorkflowGraph
)
from .auto_edges import edge_id, generate_auto_edges
from .exceptions import MalformedPayloadError
from .payload_locator import locate_payload
from .task_registry import TaskType
from .text_repair import (
    CLEANUP_PASSES, PAYLOAD_PASSES, REPAIR_PASSES,
    apply_passes, extract_balanced, strip_measured, strip_trailing_commas
)
from .validator import validate_workflow
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_EXPLANATION = "Workflow generated successfully"
FALLBACK_EXPLANATION = "Created fallback workflow from extracted URLs"
FALLBACK_ERROR = "JSON parsing failed but recovered with URL extraction"
FALLBACK_SELECTOR = ".product, .item, h1, .title"
FALLBACK_SPACING = 400

URL_RE = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+")
DESTINATION_KEYWORDS = ("webhook", "httpbin", "hooks.", "/hook", "callback")

_NODES_KEY_RE = re.compile(r'"nodes"\s*:\s*\[')
_EDGES_KEY_RE = re.compile(r'"edges"\s*:\s*\[')
_INCOMPLETE_VALUE_RE = re.compile(r':\s*"[^"]*$')


def parse_workflow(text: str, streaming: bool = False) -> ParseResult:
    """
    Recover a workflow from free-form model text.

    Args:
        text: Accumulated model output
        streaming: True while the stream is still arriving

    Returns:
        ParseResult: Graph (possibly empty or synthesized), explanation and
        an optional error or warning note
    """
    try:
        return _parse(text or "", streaming)
    except Exception as e:
        logger.exception(f"Unexpected error while parsing workflow response: {str(e)}")
        return ParseResult(
            workflow=WorkflowGraph(),
            explanation="Failed to parse workflow from AI response",
            error=str(e) or "Unknown parsing error",
        )


def looks_incomplete(text: str) -> bool:
    """Cheap checks for text that is still being streamed."""
    stripped = text.strip()
    return (
        text.count("{") > text.count("}")
        or text.count('"') % 2 != 0
        or stripped.endswith(",")
        or _INCOMPLETE_VALUE_RE.search(stripped) is not None
    )


def _parse(text: str, streaming: bool) -> ParseResult:
    if streaming and looks_incomplete(text):
        logger.debug("Response appears incomplete while streaming")
        return ParseResult(workflow=None, error=STREAMING_IN_PROGRESS)

    cleaned = apply_passes(text, CLEANUP_PASSES)
    if not cleaned.strip():
        return ParseResult(workflow=WorkflowGraph(), explanation="No workflow data found in response")

    candidate = apply_passes(locate_payload(cleaned), PAYLOAD_PASSES)

    try:
        parsed = decode(candidate, stage="strict")
    except MalformedPayloadError as first_error:
        logger.debug(f"Strict decode failed: {first_error.message}")
        parsed = _decode_after_repair(candidate, cleaned)
        if parsed is None:
            fallback = build_fallback_workflow(text)
            if fallback is not None:
                return fallback
            if "{" not in cleaned:
                return ParseResult(workflow=WorkflowGraph(), explanation="No workflow data found in response")
            return ParseResult(
                workflow=WorkflowGraph(),
                explanation="Invalid JSON format in response",
                error=f"Failed to parse workflow JSON: {first_error.message}",
            )

    return _build_result(parsed)


def decode(candidate: str, stage: str) -> Any:
    try:
        return json.loads(candidate)
    except ValueError as e:
        raise MalformedPayloadError(str(e), stage=stage)


def _decode_after_repair(candidate: str, cleaned: str) -> Optional[Any]:
    try:
        return decode(apply_passes(candidate, REPAIR_PASSES), stage="repair")
    except MalformedPayloadError as e:
        logger.debug(f"Repaired decode failed: {e.message}")

    reconstructed = reconstruct_workflow_json(cleaned)
    if reconstructed is None:
        return None
    try:
        parsed = decode(reconstructed, stage="reconstruct")
        logger.info("Reconstructed workflow JSON from nodes and edges arrays")
        return parsed
    except MalformedPayloadError as e:
        logger.debug(f"Reconstruction decode failed: {e.message}")
        return None


def _balanced_array_after(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if match is None:
        return None
    array = extract_balanced(text, match.end() - 1)
    return strip_trailing_commas(array)


def reconstruct_workflow_json(cleaned: str) -> Optional[str]:
    """Build ``{"workflow": {"nodes": [...], "edges": [...]}}`` from whatever arrays survive."""
    cleaned = strip_measured(cleaned)
    nodes = _balanced_array_after(_NODES_KEY_RE, cleaned)
    if nodes is None:
        return None
    edges = _balanced_array_after(_EDGES_KEY_RE, cleaned) or "[]"
    return f'{{"workflow":{{"nodes":{nodes},"edges":{edges}}}}}'


def _unwrap(parsed: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(parsed, dict):
        return None
    if isinstance(parsed.get("nodes"), list):
        return parsed
    workflow = parsed.get("workflow")
    if isinstance(workflow, dict) and isinstance(workflow.get("nodes"), list):
        return workflow
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_node(raw: Dict[str, Any], column: int) -> TaskNode:
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    task_type = data.get("type")
    position = raw.get("position")
    if isinstance(position, dict) and _is_number(position.get("x")) and _is_number(position.get("y")):
        position = Position(x=position["x"], y=position["y"])
    else:
        # laid out on one row in listed order
        position = Position(x=column * FALLBACK_SPACING, y=0)

    return TaskNode(
        id=str(raw["id"]) if raw.get("id") else str(uuid.uuid4()),
        type=NODE_REPRESENTATION_TYPE,
        data=NodeData(
            type=str(task_type) if task_type else "",
            inputs=data.get("inputs") if isinstance(data.get("inputs"), dict) else {},
        ),
        position=position,
    )


def _optional_handle(value: Any) -> Optional[str]:
    return str(value) if value else None


def _coerce_edge(raw: Dict[str, Any]) -> Edge:
    source = str(raw.get("source") or "")
    target = str(raw.get("target") or "")
    return Edge(
        id=str(raw["id"]) if raw.get("id") else edge_id(source, target),
        source=source,
        target=target,
        source_handle=_optional_handle(raw.get("sourceHandle")),
        target_handle=_optional_handle(raw.get("targetHandle")),
    )


def _build_result(parsed: Any) -> ParseResult:
    workflow_data = _unwrap(parsed)
    if workflow_data is None:
        logger.info("No nodes found in parsed response")
        return ParseResult(workflow=WorkflowGraph(), explanation="No valid workflow structure found")

    raw_nodes = [raw for raw in workflow_data["nodes"] if isinstance(raw, dict)]
    nodes = [_coerce_node(raw, column) for column, raw in enumerate(raw_nodes)]
    raw_edges = workflow_data.get("edges") if isinstance(workflow_data.get("edges"), list) else []
    edges = [_coerce_edge(raw) for raw in raw_edges if isinstance(raw, dict)]

    if any(not edge.is_bound for edge in edges) or (not edges and len(nodes) > 1):
        edges = generate_auto_edges(nodes)

    graph = WorkflowGraph(nodes=nodes, edges=edges)
    validation = validate_workflow(graph)

    explanation = parsed.get("explanation")
    if not isinstance(explanation, str) or not explanation:
        explanation = DEFAULT_EXPLANATION

    return ParseResult(
        workflow=graph,
        explanation=explanation,
        error=None if validation.is_valid else f"Validation warnings: {', '.join(validation.errors)}",
    )


def classify_urls(text: str) -> Dict[str, List[str]]:
    """Split URLs found in ``text`` into delivery destinations and sites to scrape."""
    sites: List[str] = []
    destinations: List[str] = []
    for url in URL_RE.findall(text):
        url = url.rstrip(".,;:!?)'")
        lowered = url.lower()
        if any(keyword in lowered for keyword in DESTINATION_KEYWORDS):
            destinations.append(url)
        else:
            sites.append(url)
    return {"sites": sites, "destinations": destinations}


def _fallback_node(task_type: TaskType, inputs: Dict[str, str], column: int) -> TaskNode:
    return TaskNode(
        id=str(uuid.uuid4()),
        data=NodeData(type=task_type.value, inputs=inputs),
        position=Position(x=column * FALLBACK_SPACING, y=0),
    )


def build_fallback_workflow(text: str) -> Optional[ParseResult]:
    """Generic browse, capture and extract pipeline built from URLs in the raw text."""
    urls = classify_urls(text)
    if not urls["sites"]:
        return None

    logger.info(f"Creating fallback workflow from extracted URLs: {urls}")
    nodes = [
        _fallback_node(TaskType.LAUNCH_BROWSER, {"Website Url": urls["sites"][0]}, 0),
        _fallback_node(TaskType.PAGE_TO_HTML, {"Web page": ""}, 1),
        _fallback_node(TaskType.EXTRACT_TEXT_FROM_ELEMENT, {"Html": "", "Selector": FALLBACK_SELECTOR}, 2),
    ]
    if urls["destinations"]:
        nodes.append(_fallback_node(
            TaskType.DELIVER_VIA_WEBHOOK, {"Target URL": urls["destinations"][0], "Body": ""}, 3
        ))

    return ParseResult(
        workflow=WorkflowGraph(nodes=nodes, edges=generate_auto_edges(nodes)),
        explanation=FALLBACK_EXPLANATION,
        error=FALLBACK_ERROR,
    )
