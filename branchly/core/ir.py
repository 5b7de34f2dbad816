"""
Canonical in-memory representation of a flow definition.

A flow is an ordered set of nodes joined by outlets. Node types are never
stored; they are inferred from the topology whenever the node set changes.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class NodeType(str, Enum):
    START = "start"
    ACTION = "action"
    DECISION = "decision"
    END = "end"
    ISOLATED = "isolated"


class AutoAdvanceMode(str, Enum):
    ALWAYS = "always"
    DEFAULT = "default"
    NEVER = "never"


class ExpressionLanguage(str, Enum):
    CEL = "cel"
    LIQUID = "liquid"


@dataclass
class StateAction:
    """Assigns a literal ``value`` or an evaluated ``expression`` to a dotted ``target``."""
    target: str
    value: Any = None
    expression: Optional[str] = None
    type: str = "set"


@dataclass
class StateRule:
    """A global condition -> effect trigger checked after every state mutation."""
    condition: str
    action: str
    target: Optional[str] = None
    value: Any = None


@dataclass
class Outlet:
    id: str
    to: str
    label: Optional[str] = None
    condition: Optional[str] = None
    actions: List[StateAction] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self):
        return f"<Outlet {self.id} -> {self.to} label='{self.label}'>"


@dataclass
class Node:
    id: str
    title: str = ""
    content: Optional[str] = None
    actions: List[StateAction] = field(default_factory=list)
    outlets: List[Outlet] = field(default_factory=list)
    is_auto_advance: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self):
        return f"<Node id={self.id} title='{self.title}'>"


def infer_node_types(nodes: Dict[str, Node]) -> Dict[str, NodeType]:
    """Classify every node by its in/out degree. Dangling outlets count as outgoing."""
    incoming: Dict[str, int] = {node_id: 0 for node_id in nodes}
    for node in nodes.values():
        for outlet in node.outlets:
            if outlet.to in incoming:
                incoming[outlet.to] += 1

    types: Dict[str, NodeType] = {}
    for node_id, node in nodes.items():
        n_in = incoming[node_id]
        n_out = len(node.outlets)
        if n_in == 0 and n_out == 0:
            types[node_id] = NodeType.ISOLATED
        elif n_in == 0:
            types[node_id] = NodeType.START
        elif n_out == 0:
            types[node_id] = NodeType.END
        elif n_out > 1:
            types[node_id] = NodeType.DECISION
        else:
            types[node_id] = NodeType.ACTION
    return types


class FlowDefinition:
    """Represents an entire flow: nodes, start point, initial state and rules."""

    def __init__(
        self,
        flow_id: str,
        title: str = "",
        start_node_id: str = "",
        initial_state: Optional[Dict[str, Any]] = None,
        state_schema: Optional[Dict[str, Any]] = None,
        state_rules: Optional[List[StateRule]] = None,
        expression_language: ExpressionLanguage = ExpressionLanguage.CEL,
        auto_advance_mode: AutoAdvanceMode = AutoAdvanceMode.DEFAULT,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.id = flow_id
        self.title = title
        self.start_node_id = start_node_id
        self.initial_state = initial_state or {}
        self.state_schema = state_schema
        self.state_rules = state_rules or []
        self.expression_language = ExpressionLanguage(expression_language)
        self.auto_advance_mode = AutoAdvanceMode(auto_advance_mode)
        self.description = description
        self.metadata = metadata or {}
        self.nodes: Dict[str, Node] = {}
        self._node_types: Optional[Dict[str, NodeType]] = None
        self._types_shape: Tuple = ()

    def __repr__(self):
        return f"<FlowDefinition id={self.id} nodes={len(self.nodes)}>"

    def add_node(self, node: Node) -> Node:
        if node.id in self.nodes:
            raise ValueError(f"Node with id {node.id} already exists.")
        self.nodes[node.id] = node
        self._node_types = None
        return node

    def remove_node(self, node_id: str) -> Optional[Node]:
        node = self.nodes.pop(node_id, None)
        self._node_types = None
        return node

    def add_outlet(self, node_id: str, outlet: Outlet) -> Outlet:
        node = self.nodes.get(node_id)
        if node is None:
            raise ValueError(f"Source node {node_id} does not exist.")
        node.outlets.append(outlet)
        self._node_types = None
        return outlet

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    @property
    def start_node(self) -> Optional[Node]:
        return self.nodes.get(self.start_node_id)

    @property
    def node_types(self) -> Dict[str, NodeType]:
        # Outlets may be appended to nodes directly, so the cache is keyed on shape.
        if self._node_types is None or self._shape != self._types_shape:
            self._node_types = infer_node_types(self.nodes)
            self._types_shape = self._shape
        return self._node_types

    @property
    def _shape(self) -> Tuple:
        return tuple((node_id, tuple(o.to for o in node.outlets)) for node_id, node in self.nodes.items())

    def node_type(self, node_id: str) -> Optional[NodeType]:
        return self.node_types.get(node_id)

    def iter_outlets(self) -> Iterator[Tuple[Node, Outlet]]:
        for node in self.nodes.values():
            for outlet in node.outlets:
                yield node, outlet

    def find_outlet(self, outlet_id: str) -> Optional[Tuple[Node, Outlet]]:
        for node, outlet in self.iter_outlets():
            if outlet.id == outlet_id:
                return node, outlet
        return None

    def copy_initial_state(self) -> Dict[str, Any]:
        return copy.deepcopy(self.initial_state)
