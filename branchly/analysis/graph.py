"""Structural queries over a flow's node/outlet graph."""

import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from branchly.core.cache import LRUCache
from branchly.core.errors import FlowError
from branchly.core.ir import FlowDefinition, Node, Outlet

ConditionEvaluator = Callable[[str, Dict[str, Any]], bool]
ActionApplier = Callable[[List[Any], Dict[str, Any]], Dict[str, Any]]


@dataclass
class GraphTraversalResult:
    reachable_nodes: Set[str]
    visited_paths: Set[str]
    node_depths: Dict[str, int]
    outlets_from_node: Dict[str, List[Outlet]]


@dataclass
class ExploredPath:
    node_ids: List[str]
    outlet_ids: List[str]
    depth: int
    state: Optional[Dict[str, Any]] = None


@dataclass
class PathExplorationResult:
    all_paths: List[ExploredPath]
    reachable_nodes: Set[str]
    unreachable_nodes: Set[str]
    max_depth: int
    has_cycles: bool


@dataclass
class FlowStats:
    total_nodes: int
    reachable_nodes: int
    unreachable_nodes: int
    total_paths: int
    max_depth: int
    has_cycles: bool
    possible_paths: int


class FlowGraph:
    """
    Lookup maps and traversal algorithms for one flow definition.

    Reachability and depth results are cached; callers always receive copies.
    """

    def __init__(self, flow: FlowDefinition, cache_size: int = 50, cache_ttl: Optional[float] = 300.0):
        self.flow = flow
        self.node_map: Dict[str, Node] = dict(flow.nodes)
        self.outlet_map: Dict[str, Tuple[Outlet, str]] = {}
        for node, outlet in flow.iter_outlets():
            self.outlet_map.setdefault(outlet.id, (outlet, node.id))
        self._reachability: LRUCache = LRUCache(max_size=cache_size, ttl=cache_ttl)
        self._depths: LRUCache = LRUCache(max_size=cache_size, ttl=cache_ttl)

    def find_node(self, node_id: str) -> Optional[Node]:
        return self.node_map.get(node_id)

    def find_outlet(self, outlet_id: str) -> Optional[Tuple[Outlet, str]]:
        return self.outlet_map.get(outlet_id)

    def get_outgoing_outlets(self, node_id: str) -> List[Outlet]:
        node = self.node_map.get(node_id)
        return list(node.outlets) if node else []

    def get_incoming_outlets(self, node_id: str) -> List[Tuple[Outlet, str]]:
        return [(outlet, node.id) for node, outlet in self.flow.iter_outlets() if outlet.to == node_id]

    def find_reachable_nodes(self, start_node_id: Optional[str] = None) -> Set[str]:
        start = start_node_id or self.flow.start_node_id
        cached = self._reachability.get(start)
        if cached is not None:
            return set(cached)

        reachable: Set[str] = set()
        queue = deque([start])
        while queue:
            node_id = queue.popleft()
            if node_id in reachable:
                continue
            reachable.add(node_id)
            for outlet in self.get_outgoing_outlets(node_id):
                if outlet.to not in reachable:
                    queue.append(outlet.to)

        self._reachability.set(start, reachable)
        return set(reachable)

    def find_unreachable_nodes(self, start_node_id: Optional[str] = None) -> Set[str]:
        reachable = self.find_reachable_nodes(start_node_id)
        return {node_id for node_id in self.node_map if node_id not in reachable}

    def is_node_reachable(self, target_node_id: str, start_node_id: Optional[str] = None) -> bool:
        start = start_node_id or self.flow.start_node_id
        visited: Set[str] = set()
        queue = deque([start])
        while queue:
            node_id = queue.popleft()
            if node_id in visited:
                continue
            if node_id == target_node_id:
                return True
            visited.add(node_id)
            queue.extend(o.to for o in self.get_outgoing_outlets(node_id) if o.to not in visited)
        return False

    def calculate_max_depth(self, start_node_id: Optional[str] = None) -> int:
        """Longest DFS descent from the start, counting the start as depth 1."""
        start = start_node_id or self.flow.start_node_id
        if start not in self.node_map:
            return 1
        visited: Set[str] = {start}
        max_depth = 1
        stack = [(start, 1)]
        while stack:
            node_id, depth = stack.pop()
            max_depth = max(max_depth, depth)
            for outlet in reversed(self.get_outgoing_outlets(node_id)):
                # An already-visited target still counts one step deeper, but is not descended.
                if outlet.to in visited:
                    max_depth = max(max_depth, depth + 1)
                    continue
                visited.add(outlet.to)
                if outlet.to in self.node_map:
                    stack.append((outlet.to, depth + 1))
                else:
                    max_depth = max(max_depth, depth + 1)
        return max_depth

    def calculate_node_depths(self, start_node_id: Optional[str] = None) -> Dict[str, int]:
        """BFS level of every reachable node, the start being level 0."""
        start = start_node_id or self.flow.start_node_id
        cached = self._depths.get(start)
        if cached is not None:
            return dict(cached)

        depths: Dict[str, int] = {}
        queue = deque([(start, 0)])
        while queue:
            node_id, depth = queue.popleft()
            if node_id in depths:
                continue
            depths[node_id] = depth
            for outlet in self.get_outgoing_outlets(node_id):
                if outlet.to not in depths:
                    queue.append((outlet.to, depth + 1))

        self._depths.set(start, depths)
        return dict(depths)

    def has_cycles(self, start_node_id: Optional[str] = None) -> bool:
        """
        DFS back-edge detection. ``visiting`` holds the nodes on the current
        path; reaching one of them again is a cycle, while reaching a node that
        is merely ``visited`` (a diamond) is not.
        """
        start = start_node_id or self.flow.start_node_id
        visiting: Set[str] = set()
        visited: Set[str] = set()

        visiting.add(start)
        stack = [(start, iter(self.get_outgoing_outlets(start)))]
        while stack:
            node_id, outlets = stack[-1]
            outlet = next(outlets, None)
            if outlet is None:
                stack.pop()
                visiting.discard(node_id)
                visited.add(node_id)
                continue
            if outlet.to in visiting:
                return True
            if outlet.to in visited:
                continue
            visiting.add(outlet.to)
            stack.append((outlet.to, iter(self.get_outgoing_outlets(outlet.to))))
        return False

    def perform_traversal(self, start_node_id: Optional[str] = None) -> GraphTraversalResult:
        start = start_node_id or self.flow.start_node_id
        reachable = self.find_reachable_nodes(start)
        visited_paths: Set[str] = set()
        outlets_from_node: Dict[str, List[Outlet]] = {}
        for node_id in reachable:
            outlets = self.get_outgoing_outlets(node_id)
            outlets_from_node[node_id] = outlets
            visited_paths.update(o.id for o in outlets if o.to in reachable)
        return GraphTraversalResult(
            reachable_nodes=reachable,
            visited_paths=visited_paths,
            node_depths=self.calculate_node_depths(start),
            outlets_from_node=outlets_from_node,
        )

    def explore_all_paths(
        self,
        max_depth: int = 100,
        max_paths: int = 1000,
        include_state: bool = False,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        action_applier: Optional[ActionApplier] = None,
    ) -> PathExplorationResult:
        """
        Breadth-first enumeration of paths from the start node.

        A path ends at a node without outlets or at ``max_depth``. With
        ``include_state`` every path carries its own state copy; outlets whose
        condition fails against it are skipped and ``action_applier`` (if
        given) applies outlet and node actions along the way.
        """
        start = self.flow.start_node_id
        initial_state = copy.deepcopy(self.flow.initial_state) if include_state else None
        start_node = self.find_node(start)
        if include_state and action_applier and start_node and start_node.actions:
            initial_state = action_applier(start_node.actions, initial_state)

        all_paths: List[ExploredPath] = []
        reachable: Set[str] = set()
        deepest = 0
        cycles = False
        queue = deque([(start, [start], [], 1, initial_state)])

        while queue and len(all_paths) < max_paths:
            node_id, path, outlet_ids, depth, state = queue.popleft()
            reachable.add(node_id)
            deepest = max(deepest, depth)
            if path.count(node_id) > 1:
                cycles = True

            node = self.find_node(node_id)
            if node is None:
                continue

            if not node.outlets or depth >= max_depth:
                all_paths.append(ExploredPath(node_ids=path, outlet_ids=outlet_ids, depth=depth, state=state))
                continue

            for outlet in node.outlets:
                if condition_evaluator and outlet.condition and state is not None:
                    try:
                        if not condition_evaluator(outlet.condition, state):
                            continue
                    except FlowError:
                        continue

                next_state = copy.deepcopy(state) if state is not None else None
                if next_state is not None and action_applier:
                    target = self.find_node(outlet.to)
                    actions = list(outlet.actions) + (list(target.actions) if target else [])
                    if actions:
                        try:
                            next_state = action_applier(actions, next_state)
                        except FlowError:
                            continue

                queue.append((outlet.to, path + [outlet.to], outlet_ids + [outlet.id], depth + 1, next_state))

        return PathExplorationResult(
            all_paths=all_paths,
            reachable_nodes=reachable,
            unreachable_nodes={node_id for node_id in self.node_map if node_id not in reachable},
            max_depth=deepest,
            has_cycles=cycles,
        )

    def get_flow_stats(self) -> FlowStats:
        traversal = self.perform_traversal()
        exploration = self.explore_all_paths(max_paths=100)
        total = len(self.node_map)
        reachable = len(traversal.reachable_nodes & set(self.node_map))
        return FlowStats(
            total_nodes=total,
            reachable_nodes=reachable,
            unreachable_nodes=total - reachable,
            total_paths=len(traversal.visited_paths),
            max_depth=self.calculate_max_depth(),
            has_cycles=self.has_cycles(),
            possible_paths=len(exploration.all_paths),
        )
