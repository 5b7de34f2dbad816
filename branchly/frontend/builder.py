"""Imperative FlowBuilder for constructing flow definitions in Python."""

from typing import Any, Dict, List, Optional, Union

from branchly.core.errors import FlowDefinitionError
from branchly.core.ir import (
    AutoAdvanceMode,
    ExpressionLanguage,
    FlowDefinition,
    Node,
    Outlet,
    StateAction,
    StateRule,
)
from branchly.core.serialization import JsonSerializer

ActionInput = Union[StateAction, Dict[str, Any]]
NodeRef = Union[Node, str]


def _actions(items: Optional[List[ActionInput]]) -> List[StateAction]:
    result = []
    for item in items or []:
        if isinstance(item, StateAction):
            result.append(item)
        else:
            result.extend(JsonSerializer.actions_from_list([item], "Action"))
    return result


class FlowBuilder:
    """
    Imperative API for building flows by adding nodes and connecting them.

    Example:
        builder = FlowBuilder("quest", "The Quest")
        builder.state(gold=0)
        builder.node("start", "At the gate")
        builder.node("end", "Home again")
        builder.connect("start", "end", label="Go home", actions=[{"target": "gold", "value": 5}])
        flow = builder.build()
    """

    def __init__(
        self,
        flow_id: str,
        title: str = "",
        expression_language: ExpressionLanguage = ExpressionLanguage.CEL,
        auto_advance_mode: AutoAdvanceMode = AutoAdvanceMode.DEFAULT,
        description: Optional[str] = None,
    ):
        self.flow = FlowDefinition(
            flow_id,
            title=title,
            expression_language=expression_language,
            auto_advance_mode=auto_advance_mode,
            description=description,
        )
        self.last_node: Optional[Node] = None
        self._start_id: Optional[str] = None

    def node(
        self,
        node_id: str,
        title: str = "",
        content: Optional[str] = None,
        actions: Optional[List[ActionInput]] = None,
        auto_advance: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Node:
        node = Node(
            id=node_id,
            title=title,
            content=content,
            actions=_actions(actions),
            is_auto_advance=auto_advance,
            metadata=metadata or {},
        )
        try:
            self.flow.add_node(node)
        except ValueError as e:
            raise FlowDefinitionError(str(e)) from e
        self.last_node = node
        return node

    def connect(
        self,
        source: NodeRef,
        target: NodeRef,
        label: Optional[str] = None,
        condition: Optional[str] = None,
        actions: Optional[List[ActionInput]] = None,
        outlet_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Outlet:
        source_id = source.id if isinstance(source, Node) else source
        target_id = target.id if isinstance(target, Node) else target
        outlet = Outlet(
            id=outlet_id or self._outlet_id(source_id, target_id),
            to=target_id,
            label=label,
            condition=condition,
            actions=_actions(actions),
            metadata={"description": description} if description else {},
        )
        try:
            return self.flow.add_outlet(source_id, outlet)
        except ValueError as e:
            raise FlowDefinitionError(str(e)) from e

    def _outlet_id(self, source_id: str, target_id: str) -> str:
        existing = {outlet.id for _, outlet in self.flow.iter_outlets()}
        base = f"{source_id}->{target_id}"
        if base not in existing:
            return base
        suffix = 2
        while f"{base}-{suffix}" in existing:
            suffix += 1
        return f"{base}-{suffix}"

    def state(self, **initial: Any) -> "FlowBuilder":
        self.flow.initial_state.update(initial)
        return self

    def schema(self, schema: Dict[str, Any]) -> "FlowBuilder":
        self.flow.state_schema = schema
        return self

    def rule(self, condition: str, action: str, target: Optional[str] = None, value: Any = None) -> StateRule:
        rule = StateRule(condition=condition, action=action, target=target, value=value)
        self.flow.state_rules.append(rule)
        return rule

    def start(self, node: NodeRef) -> "FlowBuilder":
        self._start_id = node.id if isinstance(node, Node) else node
        return self

    def build(self) -> FlowDefinition:
        if self._start_id is None:
            if not self.flow.nodes:
                raise FlowDefinitionError("Cannot build a flow without nodes")
            self._start_id = next(iter(self.flow.nodes))
        if self._start_id not in self.flow.nodes:
            raise FlowDefinitionError(f"Start node {self._start_id} does not exist.")
        self.flow.start_node_id = self._start_id
        return self.flow
