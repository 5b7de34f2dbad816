import pytest

from branchly.core.ir import FlowDefinition, Node, NodeType, Outlet, infer_node_types


def test_node_defaults():
    node = Node(id="n1", title="Test Node")
    assert node.title == "Test Node"
    assert node.outlets == []
    assert node.actions == []
    assert isinstance(node.metadata, dict)
    assert node.is_auto_advance is False


def test_flow_add_node():
    flow = FlowDefinition("f", "Test Flow", start_node_id="a")
    node = flow.add_node(Node(id="a", title="A"))

    assert "a" in flow.nodes
    assert flow.get_node("a") is node
    assert flow.start_node is node


def test_add_duplicate_node_raises_error():
    flow = FlowDefinition("f")
    flow.add_node(Node(id="123"))

    with pytest.raises(ValueError):
        flow.add_node(Node(id="123"))


def test_add_outlet_missing_source_raises_error():
    flow = FlowDefinition("f")
    with pytest.raises(ValueError):
        flow.add_outlet("nope", Outlet(id="o", to="x"))


def test_remove_node():
    flow = FlowDefinition("f")
    flow.add_node(Node(id="a"))
    assert flow.remove_node("a").id == "a"
    assert flow.remove_node("a") is None
    assert flow.get_node("a") is None


def test_copy_initial_state_is_deep():
    flow = FlowDefinition("f", initial_state={"player": {"gold": 1}})
    state = flow.copy_initial_state()
    state["player"]["gold"] = 99
    assert flow.initial_state["player"]["gold"] == 1


def test_find_outlet():
    flow = FlowDefinition("f")
    flow.add_node(Node(id="a", outlets=[Outlet(id="ab", to="b")]))
    flow.add_node(Node(id="b"))

    node, outlet = flow.find_outlet("ab")
    assert node.id == "a"
    assert outlet.to == "b"
    assert flow.find_outlet("missing") is None


class TestNodeTypeInference:
    """Node types come from the topology only."""

    def _nodes(self, *nodes):
        return {n.id: n for n in nodes}

    def test_linear_chain(self):
        nodes = self._nodes(
            Node(id="a", outlets=[Outlet(id="ab", to="b")]),
            Node(id="b", outlets=[Outlet(id="bc", to="c")]),
            Node(id="c"),
        )
        assert infer_node_types(nodes) == {
            "a": NodeType.START,
            "b": NodeType.ACTION,
            "c": NodeType.END,
        }

    def test_start_wins_over_decision(self):
        nodes = self._nodes(
            Node(id="a", outlets=[Outlet(id="ab", to="b"), Outlet(id="ac", to="c")]),
            Node(id="b"),
            Node(id="c"),
        )
        assert infer_node_types(nodes)["a"] == NodeType.START

    def test_multiple_outlets_with_incoming_is_decision(self):
        nodes = self._nodes(
            Node(id="a", outlets=[Outlet(id="ab", to="b")]),
            Node(id="b", outlets=[Outlet(id="bc", to="c"), Outlet(id="ba", to="a")]),
            Node(id="c"),
        )
        assert infer_node_types(nodes)["b"] == NodeType.DECISION

    def test_isolated_node(self):
        nodes = self._nodes(Node(id="lonely"))
        assert infer_node_types(nodes)["lonely"] == NodeType.ISOLATED

    def test_dangling_outlet_counts_as_outgoing(self):
        nodes = self._nodes(
            Node(id="a", outlets=[Outlet(id="ab", to="b")]),
            Node(id="b", outlets=[Outlet(id="bx", to="ghost")]),
        )
        assert infer_node_types(nodes)["b"] == NodeType.ACTION

    def test_cache_follows_direct_outlet_edits(self):
        """Appending to node.outlets directly still refreshes the inferred types."""
        flow = FlowDefinition("f", start_node_id="a")
        a = flow.add_node(Node(id="a"))
        flow.add_node(Node(id="b"))
        assert flow.node_type("a") == NodeType.ISOLATED

        a.outlets.append(Outlet(id="ab", to="b"))
        assert flow.node_type("a") == NodeType.START
        assert flow.node_type("b") == NodeType.END

    def test_unknown_node_type_is_none(self):
        flow = FlowDefinition("f")
        assert flow.node_type("nope") is None
