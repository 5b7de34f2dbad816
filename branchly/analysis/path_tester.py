"""Exhaustive, bounded exploration of every path a player could take."""

import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from branchly.core.errors import FlowError
from branchly.core.ir import FlowDefinition, Node, NodeType, Outlet, StateAction
from branchly.engine.context import EngineContext
from branchly.engine.runner import EngineOptions, FlowEngine, select_auto_advance_outlet, should_auto_advance
from branchly.engine.state import StateActionExecutor

MAX_NODE_REPEATS = 3


@dataclass
class PathIssue:
    type: str
    message: str
    path: Optional[List[str]] = None
    node_id: Optional[str] = None
    path_id: Optional[str] = None


@dataclass
class PathSummary:
    id: str
    path: List[str]
    end_type: str
    steps: int
    final_state: Dict[str, Any]
    choices: List[str]


@dataclass
class CoverageReport:
    nodes_covered: int
    total_nodes: int
    paths_covered: int
    total_paths: int
    uncovered_nodes: List[str] = field(default_factory=list)
    uncovered_paths: List[str] = field(default_factory=list)

    @property
    def node_percent(self) -> int:
        return round(self.nodes_covered * 100 / self.total_nodes) if self.total_nodes else 100

    @property
    def path_percent(self) -> int:
        return round(self.paths_covered * 100 / self.total_paths) if self.total_paths else 100


@dataclass
class PathTestResult:
    is_valid: bool
    total_paths: int
    completed_paths: int
    errors: List[PathIssue]
    warnings: List[PathIssue]
    path_summary: List[PathSummary]
    coverage: CoverageReport


@dataclass
class _Frontier:
    node_id: str
    path: List[str]
    state: Dict[str, Any]
    choices: List[str]


class PathTester:
    """
    Walks every path from the start node breadth-first, threading a state copy
    per path. Actions and outlet selection mirror FlowEngine: node actions run
    on entry, outlet actions when the outlet is taken, and auto-advancing
    nodes only follow the outlet the engine would pick.
    """

    def __init__(
        self,
        flow: FlowDefinition,
        max_paths: int = 1000,
        max_steps: int = 100,
        context: Optional[EngineContext] = None,
    ):
        self.flow = flow
        self.max_paths = max_paths
        self.max_steps = max_steps
        self.context = context or EngineContext()
        self.executor = StateActionExecutor(self.context.get_engine(flow.expression_language))

    def test_all_paths(self) -> PathTestResult:
        errors: List[PathIssue] = []
        warnings: List[PathIssue] = []
        summaries: List[PathSummary] = []
        visited_nodes: Set[str] = set()
        visited_edges: Set[str] = set()
        node_types = self.flow.node_types

        queue: deque = deque()
        start = self.flow.start_node_id
        start_node = self.flow.get_node(start)
        if start_node is None:
            errors.append(PathIssue("missing_node", f"Start node not found: {start}", path=[start], node_id=start))
        else:
            try:
                state = self._apply(start_node.actions, self.flow.copy_initial_state())
            except FlowError as e:
                errors.append(PathIssue("state_error", f"Start node actions failed: {e}", path=[start], node_id=start))
            else:
                queue.append(_Frontier(start, [start], state, []))

        path_count = 0
        completed = 0
        while queue and path_count < self.max_paths:
            current = queue.popleft()
            path_count += 1
            summary_id = f"path-{path_count}"

            if len(current.path) > self.max_steps:
                errors.append(PathIssue(
                    "infinite_loop",
                    f"Path exceeded maximum steps ({self.max_steps})",
                    path=current.path,
                    node_id=current.node_id,
                ))
                summaries.append(self._summary(summary_id, current, "infinite_loop"))
                continue

            visited_nodes.add(current.node_id)
            node = self.flow.get_node(current.node_id)

            if node_types.get(node.id) == NodeType.END:
                completed += 1
                summaries.append(self._summary(summary_id, current, "completed"))
                continue

            outlets = self._available_outlets(node, current.state)
            if not outlets:
                errors.append(PathIssue(
                    "missing_end",
                    f"Node has no available paths and is not an end node: {node.id}",
                    path=current.path,
                    node_id=node.id,
                ))
                summaries.append(self._summary(summary_id, current, "error"))
                continue

            for outlet in outlets:
                target = self.flow.get_node(outlet.to)
                if target is None:
                    errors.append(PathIssue(
                        "invalid_transition",
                        f"Path references non-existent node: {outlet.to}",
                        path=current.path,
                        node_id=node.id,
                        path_id=outlet.id,
                    ))
                    continue

                new_path = current.path + [outlet.to]
                repeats = new_path.count(outlet.to)
                if repeats > MAX_NODE_REPEATS:
                    warnings.append(PathIssue(
                        "long_path",
                        f"Potential infinite loop detected: node {outlet.to} visited {repeats} times",
                        path=new_path,
                        node_id=outlet.to,
                    ))
                    continue

                try:
                    new_state = self._apply(list(outlet.actions) + list(target.actions), current.state)
                except FlowError as e:
                    errors.append(PathIssue(
                        "state_error", f"Actions failed on {node.id} -> {outlet.to}: {e}",
                        path=new_path, node_id=outlet.to, path_id=outlet.id,
                    ))
                    continue

                visited_edges.add(f"{node.id}->{outlet.to}")
                queue.append(_Frontier(outlet.to, new_path, new_state, current.choices + [outlet.label or outlet.id]))

        coverage = self._coverage(visited_nodes, visited_edges)
        for node_id in coverage.uncovered_nodes:
            warnings.append(PathIssue("unused_node", f"Node is never reached: {node_id}", node_id=node_id))

        return PathTestResult(
            is_valid=not errors,
            total_paths=path_count,
            completed_paths=completed,
            errors=errors,
            warnings=warnings,
            path_summary=summaries,
            coverage=coverage,
        )

    def test_path(self, choices: List[str]) -> PathSummary:
        """Replay a concrete sequence of choice ids through a real engine."""
        engine = FlowEngine(self.flow, EngineOptions(enable_history=True), context=self.context)
        path = [self.flow.start_node_id]
        try:
            result = engine.start()
            path = [result.node.node.id]
            for choice in choices:
                result = engine.next(choice)
                path.append(result.node.node.id)
                if result.is_complete:
                    break
        except FlowError:
            return PathSummary("manual-test", path, "error", len(path), engine.get_state(), list(choices))

        end_type = "completed" if engine.is_complete() else "error"
        return PathSummary("manual-test", path, end_type, len(path), engine.get_state(), list(choices))

    def generate_report(self, result: PathTestResult) -> str:
        """Render a Markdown report of a ``test_all_paths`` result."""
        coverage = result.coverage
        lines = [
            "# Path Test Report",
            f"**Flow:** {self.flow.title}",
            f"**Status:** {'PASS' if result.is_valid else 'FAIL'}",
            "",
            "## Summary",
            f"- Total paths explored: {result.total_paths}",
            f"- Completed paths: {result.completed_paths}",
            f"- Errors: {len(result.errors)}",
            f"- Warnings: {len(result.warnings)}",
            "",
            "## Coverage",
            f"- Nodes covered: {coverage.nodes_covered}/{coverage.total_nodes} ({coverage.node_percent}%)",
            f"- Paths covered: {coverage.paths_covered}/{coverage.total_paths} ({coverage.path_percent}%)",
            "",
        ]
        for heading, issues in (("Errors", result.errors), ("Warnings", result.warnings)):
            if not issues:
                continue
            lines.append(f"## {heading}")
            for issue in issues:
                lines.append(f"- **{issue.type}**: {issue.message}")
                if issue.path:
                    lines.append(f"  Path: {' -> '.join(issue.path)}")
            lines.append("")
        if coverage.uncovered_nodes:
            lines.append("## Uncovered Nodes")
            lines.extend(f"- {node_id}" for node_id in coverage.uncovered_nodes)
            lines.append("")
        return "\n".join(lines)

    def _apply(self, actions: List[StateAction], state: Dict[str, Any]) -> Dict[str, Any]:
        new_state = self.executor.execute_actions(actions, state) if actions else copy.deepcopy(state)
        if self.flow.state_schema:
            self.context.schema_validator.validate_or_raise(new_state, self.flow.state_schema)
        return new_state

    def _available_outlets(self, node: Node, state: Dict[str, Any]) -> List[Outlet]:
        def evaluate(condition):
            return self.executor.evaluate_condition(condition, state)

        if should_auto_advance(node, self.flow.auto_advance_mode):
            selected = select_auto_advance_outlet(node.outlets, evaluate)
            if selected is not None:
                return [selected]
        return [o for o in node.outlets if evaluate(o.condition)]

    @staticmethod
    def _summary(summary_id: str, current: _Frontier, end_type: str) -> PathSummary:
        return PathSummary(
            id=summary_id,
            path=current.path,
            end_type=end_type,
            steps=len(current.path),
            final_state=current.state,
            choices=current.choices,
        )

    def _coverage(self, visited_nodes: Set[str], visited_edges: Set[str]) -> CoverageReport:
        uncovered_nodes = [node_id for node_id in self.flow.nodes if node_id not in visited_nodes]
        edge_keys = [f"{node.id}->{outlet.to}" for node, outlet in self.flow.iter_outlets()]
        uncovered_paths = [key for key in edge_keys if key not in visited_edges]
        return CoverageReport(
            nodes_covered=len(visited_nodes & set(self.flow.nodes)),
            total_nodes=len(self.flow.nodes),
            paths_covered=len(edge_keys) - len(uncovered_paths),
            total_paths=len(edge_keys),
            uncovered_nodes=uncovered_nodes,
            uncovered_paths=uncovered_paths,
        )
