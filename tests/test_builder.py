import pytest

from branchly.core.errors import FlowDefinitionError
from branchly.core.ir import ExpressionLanguage, NodeType, StateAction
from branchly.engine import FlowEngine
from branchly.frontend import FlowBuilder


def test_builder_chain():
    builder = FlowBuilder("builder-test", "Builder Test")
    start = builder.node("start", "Beginning")
    work = builder.node("work", "Do Work")
    builder.connect(start, work)

    flow = builder.build()

    assert len(flow.nodes) == 2
    assert flow.start_node_id == "start"
    assert flow.node_type("start") == NodeType.START
    assert flow.node_type("work") == NodeType.END
    assert flow.get_node("start").outlets[0].id == "start->work"


def test_builder_decision_flow():
    b = FlowBuilder("quest", expression_language=ExpressionLanguage.CEL)
    b.state(gold=0)
    b.node("start", "S")
    b.node("d", "D")
    b.connect("start", "d")
    b.node("yes", "Yes", actions=[{"target": "gold", "expression": "gold + 1"}])
    b.node("no", "No", actions=[StateAction(target="gold", value=-1)])
    b.connect("d", "yes", label="y", description="Say yes")
    b.connect("d", "no", label="n", condition="gold > 0")

    flow = b.build()
    assert flow.node_type("d") == NodeType.DECISION
    assert flow.initial_state == {"gold": 0}
    assert flow.get_node("yes").actions[0].expression == "gold + 1"
    assert flow.get_node("d").outlets[0].metadata == {"description": "Say yes"}
    assert flow.get_node("d").outlets[1].condition == "gold > 0"


def test_builder_flow_runs():
    b = FlowBuilder("run")
    b.state(visits=0)
    b.node("start", "Hello")
    b.node("end", "Bye", "Visits: ${visits}")
    b.connect("start", "end", actions=[{"target": "visits", "expression": "visits + 1"}])

    engine = FlowEngine(b.build())
    engine.start()
    result = engine.next()
    assert result.is_complete
    assert result.node.node.content == "Visits: 1"


def test_parallel_outlets_get_unique_ids():
    b = FlowBuilder("f")
    b.node("a")
    b.node("b")
    first = b.connect("a", "b", label="Walk")
    second = b.connect("a", "b", label="Run")
    third = b.connect("a", "b", label="Fly")
    assert [first.id, second.id, third.id] == ["a->b", "a->b-2", "a->b-3"]


def test_explicit_start_and_rules():
    b = FlowBuilder("f")
    b.node("intro")
    b.node("main")
    b.connect("intro", "main")
    b.start("main")
    b.schema({"type": "object"})
    rule = b.rule("true", "triggerEvent", target="boot")

    flow = b.build()
    assert flow.start_node_id == "main"
    assert flow.state_schema == {"type": "object"}
    assert flow.state_rules == [rule]


class TestBuilderErrors:
    """Bad builder usage raises FlowDefinitionError."""

    def test_duplicate_node(self):
        b = FlowBuilder("f")
        b.node("a")
        with pytest.raises(FlowDefinitionError):
            b.node("a")

    def test_connect_unknown_source(self):
        b = FlowBuilder("f")
        b.node("a")
        with pytest.raises(FlowDefinitionError):
            b.connect("ghost", "a")

    def test_empty_flow(self):
        with pytest.raises(FlowDefinitionError, match="without nodes"):
            FlowBuilder("f").build()

    def test_unknown_start(self):
        b = FlowBuilder("f")
        b.node("a")
        b.start("ghost")
        with pytest.raises(FlowDefinitionError):
            b.build()

    def test_action_without_target(self):
        b = FlowBuilder("f")
        with pytest.raises(FlowDefinitionError):
            b.node("a", actions=[{"value": 1}])
