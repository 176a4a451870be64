"""Tests for workflow recovery from model output."""

import json
import time

from webextract.core.recovery_parser import (
    DEFAULT_EXPLANATION,
    FALLBACK_ERROR,
    FALLBACK_EXPLANATION,
    FALLBACK_SELECTOR,
    classify_urls,
    looks_incomplete,
    parse_workflow,
    reconstruct_workflow_json,
)
from webextract.models.core import NODE_REPRESENTATION_TYPE, STREAMING_IN_PROGRESS


def _node(node_id, task_type, x=0, inputs=None):
    return {
        "id": node_id,
        "type": NODE_REPRESENTATION_TYPE,
        "data": {"type": task_type, "inputs": inputs or {}},
        "position": {"x": x, "y": 0},
    }


LAUNCH = _node("1", "LAUNCH_BROWSER", 0, {"Website Url": "https://example.com"})
TO_HTML = _node("2", "PAGE_TO_HTML", 400)


class TestWellFormedResponses:
    """Responses that decode on the first attempt."""

    def test_fenced_workflow_with_explanation(self):
        """Scenario: a clean fenced payload keeps its edges and explanation."""
        payload = {
            "workflow": {
                "nodes": [LAUNCH, TO_HTML],
                "edges": [{
                    "id": "e1", "source": "1", "target": "2",
                    "sourceHandle": "Web page", "targetHandle": "Web page",
                }],
            },
            "explanation": "Opens the page and reads its html",
        }
        text = f"Here is your workflow:\n```json\n{json.dumps(payload, indent=2)}\n```\nLet me know!"

        result = parse_workflow(text)

        assert result.error is None
        assert result.explanation == "Opens the page and reads its html"
        assert [node.id for node in result.workflow.nodes] == ["1", "2"]
        assert result.workflow.nodes[0].inputs == {"Website Url": "https://example.com"}
        assert len(result.workflow.edges) == 1
        assert result.workflow.edges[0].id == "e1"

    def test_bare_nodes_object_and_default_explanation(self):
        text = json.dumps({"nodes": [LAUNCH, TO_HTML], "edges": []})

        result = parse_workflow(text)

        assert result.explanation == DEFAULT_EXPLANATION
        assert result.error is None
        assert len(result.workflow.edges) == 1
        edge = result.workflow.edges[0]
        assert (edge.source, edge.target) == ("1", "2")
        assert (edge.source_handle, edge.target_handle) == ("Web page", "Web page")

    def test_unbound_edges_are_replaced(self):
        text = json.dumps({"nodes": [LAUNCH, TO_HTML], "edges": [{"source": "1", "target": "2"}]})

        edges = parse_workflow(text).workflow.edges

        assert len(edges) == 1
        assert edges[0].is_bound

    def test_editor_noise_is_removed(self):
        text = """```json
{
  // generated
  "nodes": [
    {"id": "1", "data": {"type": "LAUNCH_BROWSER", "inputs": {"Website Url": "https://example.com"}},
     "position": {"x": 0, "y": 0}, "measured": {"width": 420, "height": 204}},
  ],
  "edges": [],
}
```"""
        result = parse_workflow(text)

        assert result.error is None
        assert result.workflow.nodes[0].inputs["Website Url"] == "https://example.com"
        assert "measured" not in result.workflow.nodes[0].model_dump()

    def test_validation_problems_become_warnings(self):
        text = json.dumps({"nodes": [_node("a", "PAGE_TO_HTML")], "edges": []})

        result = parse_workflow(text)

        assert len(result.workflow.nodes) == 1
        assert result.error == "Validation warnings: Workflow must start with LAUNCH_BROWSER task"

    def test_missing_ids_and_malformed_entries(self):
        text = json.dumps({
            "nodes": [{"data": {"type": "LAUNCH_BROWSER"}, "position": {"x": 0, "y": 0}}, "garbage"],
            "edges": [],
        })

        result = parse_workflow(text)

        assert len(result.workflow.nodes) == 1
        assert result.workflow.nodes[0].id
        assert result.workflow.nodes[0].type == NODE_REPRESENTATION_TYPE

    def test_single_node_in_prose(self):
        text = (
            'Sure! ```json {"workflow":{"nodes":[{"data":{"type":"LAUNCH_BROWSER",'
            '"inputs":{"Website Url":"https://a.com"}}}],"edges":[]}}``` Enjoy!'
        )

        result = parse_workflow(text)

        assert result.error is None
        assert len(result.workflow.nodes) == 1
        assert result.workflow.nodes[0].id
        assert result.workflow.nodes[0].inputs == {"Website Url": "https://a.com"}
        assert result.workflow.edges == []

    def test_missing_positions_follow_listed_order(self):
        text = json.dumps({"nodes": [
            {"id": "1", "data": {"type": "LAUNCH_BROWSER"}},
            {"id": "2", "data": {"type": "PAGE_TO_HTML"}},
        ]})

        result = parse_workflow(text)

        assert [node.position.x for node in result.workflow.nodes] == [0, 400]
        assert (result.workflow.edges[0].source, result.workflow.edges[0].target) == ("1", "2")

    def test_non_workflow_json(self):
        result = parse_workflow("[1, 2, 3]")

        assert result.workflow.nodes == []
        assert result.explanation == "No valid workflow structure found"


class TestRepairedResponses:
    """Responses that need repair or reconstruction."""

    def test_truncated_response_is_closed(self):
        """Scenario: output cut off mid-array still yields its nodes."""
        text = '{"workflow": {"nodes": [%s, %s], "edges": [' % (json.dumps(LAUNCH), json.dumps(TO_HTML))

        result = parse_workflow(text)

        assert [node.id for node in result.workflow.nodes] == ["1", "2"]
        assert len(result.workflow.edges) == 1
        assert result.workflow.edges[0].source_handle == "Web page"

    def test_loose_javascript_object(self):
        text = "{nodes: [{id: '1', data: {type: 'LAUNCH_BROWSER', inputs: {}}, position: {x: 0, y: 0}}], edges: []}"

        result = parse_workflow(text)

        assert [node.task_type for node in result.workflow.nodes] == ["LAUNCH_BROWSER"]

    def test_reconstruct_from_arrays(self):
        cleaned = 'blah "nodes": [{"id": "1"},] and "edges": [{"id": "e"}'
        assert json.loads(reconstruct_workflow_json(cleaned)) == {
            "workflow": {"nodes": [{"id": "1"}], "edges": [{"id": "e"}]}
        }

    def test_reconstruct_without_nodes(self):
        assert reconstruct_workflow_json('"edges": []') is None


class TestFallbacks:
    """Responses with no decodable graph."""

    def test_plain_refusal(self):
        """Scenario: prose without JSON or URLs gives an empty graph."""
        result = parse_workflow("I cannot help with that.")

        assert result.workflow.nodes == []
        assert result.explanation == "No workflow data found in response"
        assert result.error is None

    def test_broken_json_without_urls(self):
        result = parse_workflow("{ this is not json at all")

        assert result.workflow.nodes == []
        assert result.explanation == "Invalid JSON format in response"
        assert result.error.startswith("Failed to parse workflow JSON:")

    def test_blank_input(self):
        result = parse_workflow("   ")

        assert result.workflow.nodes == []
        assert result.explanation == "No workflow data found in response"

    def test_repeated_unclosed_workflow_keys_stay_fast(self):
        text = "prose " + '{"workflow": {"a": 1, ' * 400

        started = time.monotonic()
        result = parse_workflow(text)

        assert time.monotonic() - started < 2
        assert result.workflow.nodes == []

    def test_url_fallback_with_destination(self):
        """Scenario: URLs in unparseable text build a scrape and deliver pipeline."""
        result = parse_workflow(
            "Scrape https://shop.example.com/products and send to https://webhook.site/abc123"
        )

        graph = result.workflow
        assert result.explanation == FALLBACK_EXPLANATION
        assert result.error == FALLBACK_ERROR
        assert [node.task_type for node in graph.nodes] == [
            "LAUNCH_BROWSER", "PAGE_TO_HTML", "EXTRACT_TEXT_FROM_ELEMENT", "DELIVER_VIA_WEBHOOK",
        ]
        assert graph.nodes[0].inputs["Website Url"] == "https://shop.example.com/products"
        assert graph.nodes[2].inputs["Selector"] == FALLBACK_SELECTOR
        assert graph.nodes[3].inputs["Target URL"] == "https://webhook.site/abc123"
        assert [(e.source_handle, e.target_handle) for e in graph.edges] == [
            ("Web page", "Web page"), ("Html", "Html"), ("Extracted text", "Body"),
        ]

    def test_url_fallback_without_destination(self):
        result = parse_workflow("Please get the title from https://example.com.")

        assert len(result.workflow.nodes) == 3
        assert len(result.workflow.edges) == 2
        assert result.workflow.nodes[0].inputs["Website Url"] == "https://example.com"

    def test_classify_urls(self):
        urls = classify_urls("see https://a.com/x, https://hooks.slack.com/T1 and http://b.org")
        assert urls == {
            "sites": ["https://a.com/x", "http://b.org"],
            "destinations": ["https://hooks.slack.com/T1"],
        }


class TestStreaming:
    """Partial responses while streaming."""

    def test_incomplete_text_is_reported_in_progress(self):
        result = parse_workflow('{"workflow": {"nodes": [', streaming=True)

        assert result.workflow is None
        assert result.error == STREAMING_IN_PROGRESS
        assert result.in_progress

    def test_complete_text_parses_while_streaming(self):
        text = json.dumps({"nodes": [LAUNCH], "edges": []})

        result = parse_workflow(text, streaming=True)

        assert not result.in_progress
        assert len(result.workflow.nodes) == 1

    def test_incomplete_heuristics(self):
        assert looks_incomplete('{"a": 1')
        assert looks_incomplete('{"a": "b')
        assert looks_incomplete('{"a": 1,')
        assert not looks_incomplete('{"a": 1}')
