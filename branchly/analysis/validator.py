"""Static structural validation of flow definitions."""

from dataclasses import dataclass, field
from typing import List, Optional

from branchly.analysis.graph import FlowGraph
from branchly.core.ir import FlowDefinition, Node, NodeType
from branchly.engine.context import EngineContext
from branchly.engine.interpolation import ContentInterpolator
from branchly.engine.runner import should_auto_advance

ALWAYS_TRUE_CONDITIONS = {"true", "1", "1==1", "true==true"}


@dataclass
class ValidationIssue:
    type: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)


def is_always_true(condition: Optional[str]) -> bool:
    if not condition:
        return False
    return "".join(condition.split()).lower() in ALWAYS_TRUE_CONDITIONS


def has_balanced_parentheses(expression: str) -> bool:
    depth = 0
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


class FlowValidator:
    """
    Reports errors (the flow cannot run correctly) and warnings (style and
    authoring issues) without executing anything.
    """

    def __init__(self, context: Optional[EngineContext] = None):
        self.context = context or EngineContext()

    def validate(self, flow: FlowDefinition) -> ValidationResult:
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        node_types = flow.node_types
        graph = FlowGraph(flow, cache_size=self.context.graph_cache_size, cache_ttl=self.context.graph_cache_ttl)

        if flow.get_node(flow.start_node_id) is None:
            errors.append(ValidationIssue(
                "missing_node", f'Start node with id "{flow.start_node_id}" not found', node_id=flow.start_node_id
            ))

        if not any(t == NodeType.END for t in node_types.values()):
            warnings.append(ValidationIssue("missing_end_node", "No end nodes found in flow"))

        seen_outlets = set()
        for node, outlet in flow.iter_outlets():
            if flow.get_node(outlet.to) is None:
                errors.append(ValidationIssue(
                    "missing_node",
                    f'Path references non-existent "to" node: {outlet.to}',
                    node_id=outlet.to,
                    edge_id=outlet.id,
                ))
            if outlet.id in seen_outlets:
                errors.append(ValidationIssue(
                    "invalid_edge", f'Duplicate outlet id "{outlet.id}" on node "{node.id}"',
                    node_id=node.id, edge_id=outlet.id,
                ))
            seen_outlets.add(outlet.id)

        for node_id in graph.find_unreachable_nodes():
            warnings.append(ValidationIssue(
                "unreachable_node", f'Node "{node_id}" is unreachable from start node', node_id=node_id
            ))

        if flow.start_node_id in flow.nodes and graph.has_cycles():
            warnings.append(ValidationIssue("circular_dependency", "Potential circular dependencies detected"))

        engine = self.context.get_engine(flow.expression_language)
        for node, outlet in flow.iter_outlets():
            if outlet.condition is not None and not self._is_valid_expression(outlet.condition, engine):
                errors.append(ValidationIssue(
                    "syntax_error",
                    f"Invalid path condition expression: {outlet.condition}",
                    node_id=node.id,
                    edge_id=outlet.id,
                ))

        self._validate_interpolations(flow, warnings)

        for node in flow.nodes.values():
            if node.outlets and should_auto_advance(node, flow.auto_advance_mode):
                self._validate_if_else_structure(node, errors, warnings)

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def _is_valid_expression(self, expression: str, engine) -> bool:
        expr = (expression or "").strip()
        if not expr or not has_balanced_parentheses(expr):
            return False
        return engine.compile_condition(expr).success

    def _validate_interpolations(self, flow: FlowDefinition, warnings: List[ValidationIssue]) -> None:
        interpolator = ContentInterpolator(flow.expression_language, context=self.context)
        for node in flow.nodes.values():
            for text in (node.title, node.content):
                for message in interpolator.validate_expressions(text).errors:
                    warnings.append(ValidationIssue("invalid_interpolation", message, node_id=node.id))

    def _validate_if_else_structure(
        self, node: Node, errors: List[ValidationIssue], warnings: List[ValidationIssue]
    ) -> None:
        conditional = [o for o in node.outlets if o.condition]
        defaults = [o for o in node.outlets if not o.condition]
        source = "node" if node.is_auto_advance else "flow"
        label = f'Auto-advance node "{node.id}" ({source})'

        if len(defaults) > 1:
            errors.append(ValidationIssue(
                "invalid_path_structure",
                f"{label} has multiple default outlets (else clauses). Only one default outlet is allowed.",
                node_id=node.id,
            ))

        if len(defaults) == 1 and conditional:
            positions = {id(o): i for i, o in enumerate(node.outlets)}
            if positions[id(defaults[0])] < positions[id(conditional[-1])]:
                warnings.append(ValidationIssue(
                    "suboptimal_path_order",
                    f"{label} has default outlet before conditional outlets. "
                    "Consider moving default outlet to the end for clarity.",
                    node_id=node.id,
                ))

        for outlet in conditional[:-1]:
            if is_always_true(outlet.condition):
                warnings.append(ValidationIssue(
                    "unreachable_path",
                    f'{label} has outlets after an always-true condition "{outlet.condition}". '
                    "These outlets will never be reached.",
                    node_id=node.id,
                    edge_id=outlet.id,
                ))
                break

        if not defaults and conditional:
            warnings.append(ValidationIssue(
                "missing_default_path",
                f"{label} has only conditional outlets without a default outlet. "
                "Consider adding a default outlet (else clause) to handle cases where no conditions are met.",
                node_id=node.id,
            ))
