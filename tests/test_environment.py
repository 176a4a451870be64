"""Tests for the per-node execution environment."""

from webextract.core.environment import ExecutionEnvironment, RunContext
from webextract.models.core import Edge, LogEventType, LogLevel, WorkflowGraph

from conftest import bind, make_node


def _context(graph, automation_factory, services, sink=None):
    return RunContext("run-1", graph, automation_factory(), services, on_log=sink)


class TestInputResolution:
    """Bound producers win over literals."""

    def test_bound_value_beats_literal(self, automation_factory, services):
        producer = make_node("p", "PAGE_TO_HTML")
        consumer = make_node("c", "EXTRACT_TEXT_FROM_ELEMENT", {"Html": "<p>literal</p>"})
        graph = WorkflowGraph(nodes=[producer, consumer], edges=[bind("p", "Html", "c", "Html")])
        context = _context(graph, automation_factory, services)
        context.publish("p", "Html", "<p>wired</p>")

        env = ExecutionEnvironment(consumer, context)

        assert env.get_input("Html") == "<p>wired</p>"

    def test_literal_when_producer_has_not_published(self, automation_factory, services):
        producer = make_node("p", "PAGE_TO_HTML")
        consumer = make_node("c", "EXTRACT_TEXT_FROM_ELEMENT", {"Html": "<p>literal</p>"})
        graph = WorkflowGraph(nodes=[producer, consumer], edges=[bind("p", "Html", "c", "Html")])

        env = ExecutionEnvironment(consumer, _context(graph, automation_factory, services))

        assert env.get_input("Html") == "<p>literal</p>"

    def test_unbound_edges_carry_nothing(self, automation_factory, services):
        producer = make_node("p", "PAGE_TO_HTML")
        consumer = make_node("c", "EXTRACT_TEXT_FROM_ELEMENT")
        graph = WorkflowGraph(nodes=[producer, consumer], edges=[Edge(id="e", source="p", target="c")])
        context = _context(graph, automation_factory, services)
        context.publish("p", "Html", "<p>wired</p>")

        env = ExecutionEnvironment(consumer, context)

        assert env.get_input("Html") == ""

    def test_missing_input_is_empty_string(self, make_env):
        env = make_env(make_node("c", "EXTRACT_TEXT_FROM_ELEMENT"))
        assert env.get_input("Selector") == ""


class TestOutputsAndLogs:
    """Publishing outputs and writing node logs."""

    def test_set_output_publishes_each_name_once(self, automation_factory, services):
        node = make_node("n", "PAGE_TO_HTML")
        context = _context(WorkflowGraph(nodes=[node]), automation_factory, services)
        env = ExecutionEnvironment(node, context)

        env.set_output("Html", "<a>")
        env.set_output("Html", "<b>")

        assert env.published_outputs == ["Html"]
        assert context.lookup("n", "Html") == (True, "<b>")
        assert context.lookup("n", "Web page") == (False, None)

    def test_log_entries_reach_the_run(self, automation_factory, services):
        node = make_node("n", "PAGE_TO_HTML")
        received = []
        context = _context(WorkflowGraph(nodes=[node]), automation_factory, services, received.append)
        env = ExecutionEnvironment(node, context)

        env.log.info("hello")
        env.log.error("broken")

        assert [entry.message for entry in received] == ["hello", "broken"]
        assert [entry.level for entry in env.log.entries] == [LogLevel.INFO, LogLevel.ERROR]
        assert all(entry.event_type == LogEventType.NODE_LOG for entry in received)
        assert all(entry.node_id == "n" and entry.run_id == "run-1" for entry in received)

    def test_automation_is_shared_by_the_run(self, automation_factory, services):
        a, b = make_node("a", "LAUNCH_BROWSER"), make_node("b", "PAGE_TO_HTML")
        context = _context(WorkflowGraph(nodes=[a, b]), automation_factory, services)

        assert ExecutionEnvironment(a, context).get_automation() is ExecutionEnvironment(b, context).get_automation()
        assert ExecutionEnvironment(a, context).services is services
        context.automation.release()
