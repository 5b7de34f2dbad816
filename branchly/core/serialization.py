"""
JSON serialization for FlowDefinition objects.

The wire format is the canonical flow-definition JSON with camelCase keys.
A couple of legacy key names are accepted on input but never written.
"""

import json
from typing import Any, Dict, List, Union
from pathlib import Path

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

LEGACY_ALIASES: Dict[str, str] = {
    "globalState": "initialState",
    "autoAdvance": "autoAdvanceMode",
}

_MISSING = object()


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise FlowDefinitionError(f"{where} is missing required key '{key}'")
    return value


class JsonSerializer:
    """
    Serializes and deserializes FlowDefinition objects to/from JSON.

    Optional keys are omitted from the output when they hold their default so
    that a loaded definition writes back in the shape it was authored.
    """

    @staticmethod
    def action_to_dict(action: StateAction) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": action.type, "target": action.target}
        if action.expression is not None:
            data["expression"] = action.expression
        else:
            data["value"] = action.value
        return data

    @staticmethod
    def to_dict(flow: FlowDefinition) -> Dict[str, Any]:
        nodes_data = []
        for node in flow.nodes.values():
            node_data: Dict[str, Any] = {"id": node.id, "title": node.title}
            if node.content is not None:
                node_data["content"] = node.content
            if node.is_auto_advance:
                node_data["isAutoAdvance"] = True
            if node.actions:
                node_data["actions"] = [JsonSerializer.action_to_dict(a) for a in node.actions]
            if node.outlets:
                outlets = []
                for outlet in node.outlets:
                    outlet_data: Dict[str, Any] = {"id": outlet.id, "to": outlet.to}
                    if outlet.label is not None:
                        outlet_data["label"] = outlet.label
                    if outlet.condition is not None:
                        outlet_data["condition"] = outlet.condition
                    if outlet.actions:
                        outlet_data["actions"] = [JsonSerializer.action_to_dict(a) for a in outlet.actions]
                    if outlet.metadata:
                        outlet_data["metadata"] = outlet.metadata
                    outlets.append(outlet_data)
                node_data["outlets"] = outlets
            if node.metadata:
                node_data["metadata"] = node.metadata
            nodes_data.append(node_data)

        data: Dict[str, Any] = {"id": flow.id, "title": flow.title}
        if flow.description is not None:
            data["description"] = flow.description
        data["expressionLanguage"] = flow.expression_language.value
        data["startNodeId"] = flow.start_node_id
        data["initialState"] = flow.initial_state
        if flow.state_schema is not None:
            data["stateSchema"] = flow.state_schema
        if flow.state_rules:
            rules = []
            for rule in flow.state_rules:
                rule_data: Dict[str, Any] = {"condition": rule.condition, "action": rule.action}
                if rule.target is not None:
                    rule_data["target"] = rule.target
                if rule.value is not None:
                    rule_data["value"] = rule.value
                rules.append(rule_data)
            data["stateRules"] = rules
        if flow.auto_advance_mode != AutoAdvanceMode.DEFAULT:
            data["autoAdvanceMode"] = flow.auto_advance_mode.value
        if flow.metadata:
            data["metadata"] = flow.metadata
        data["nodes"] = nodes_data
        return data

    @staticmethod
    def to_json(flow: FlowDefinition, indent: int = 2) -> str:
        return json.dumps(JsonSerializer.to_dict(flow), indent=indent)

    @staticmethod
    def actions_from_list(items: List[Dict[str, Any]], where: str) -> List[StateAction]:
        actions = []
        for item in items or []:
            actions.append(StateAction(
                target=_require(item, "target", where),
                value=item.get("value"),
                expression=item.get("expression"),
                type=item.get("type", "set"),
            ))
        return actions

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> FlowDefinition:
        if not isinstance(data, dict):
            raise FlowDefinitionError("Flow definition must be a JSON object")

        data = dict(data)
        for legacy, canonical in LEGACY_ALIASES.items():
            if legacy in data and canonical not in data:
                data[canonical] = data.pop(legacy)

        try:
            language = ExpressionLanguage(data.get("expressionLanguage") or "cel")
            mode = AutoAdvanceMode(data.get("autoAdvanceMode") or "default")
        except ValueError as e:
            raise FlowDefinitionError(str(e)) from e

        flow = FlowDefinition(
            flow_id=_require(data, "id", "Flow"),
            title=data.get("title", ""),
            start_node_id=_require(data, "startNodeId", "Flow"),
            initial_state=data.get("initialState") or {},
            state_schema=data.get("stateSchema"),
            state_rules=[
                StateRule(
                    condition=_require(rule, "condition", "State rule"),
                    action=_require(rule, "action", "State rule"),
                    target=rule.get("target"),
                    value=rule.get("value"),
                )
                for rule in data.get("stateRules") or []
            ],
            expression_language=language,
            auto_advance_mode=mode,
            description=data.get("description"),
            metadata=data.get("metadata"),
        )

        for node_data in data.get("nodes") or []:
            node_id = _require(node_data, "id", "Node")
            where = f"Node '{node_id}'"
            outlets = []
            for outlet_data in node_data.get("outlets") or []:
                outlet_id = _require(outlet_data, "id", f"Outlet of {where}")
                outlets.append(Outlet(
                    id=outlet_id,
                    to=_require(outlet_data, "to", f"Outlet '{outlet_id}'"),
                    label=outlet_data.get("label"),
                    condition=outlet_data.get("condition"),
                    actions=JsonSerializer.actions_from_list(outlet_data.get("actions"), f"Outlet '{outlet_id}' action"),
                    metadata=outlet_data.get("metadata") or {},
                ))
            node = Node(
                id=node_id,
                title=node_data.get("title", ""),
                content=node_data.get("content"),
                actions=JsonSerializer.actions_from_list(node_data.get("actions"), f"{where} action"),
                outlets=outlets,
                is_auto_advance=bool(node_data.get("isAutoAdvance", False)),
                metadata=node_data.get("metadata") or {},
            )
            try:
                flow.add_node(node)
            except ValueError as e:
                raise FlowDefinitionError(str(e)) from e

        return flow

    @staticmethod
    def from_json(json_str: str) -> FlowDefinition:
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise FlowDefinitionError(f"Invalid JSON: {e}") from e
        return JsonSerializer.from_dict(data)

    @staticmethod
    def load(path: Union[str, Path]) -> FlowDefinition:
        with open(path, "r", encoding="utf-8") as f:
            return JsonSerializer.from_json(f.read())
