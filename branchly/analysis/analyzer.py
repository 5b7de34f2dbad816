"""Heuristic quality scoring of flows, layered on the validator and path tester."""

import math
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from branchly.analysis.graph import FlowGraph
from branchly.analysis.path_tester import PathTester, PathTestResult
from branchly.analysis.validator import FlowValidator, ValidationResult
from branchly.core.ir import FlowDefinition, Node, NodeType
from branchly.engine.context import EngineContext

TYPE_PRIORITY = {"error": 1, "warning": 2, "suggestion": 3, "info": 4}
CATEGORY_PRIORITY = {"structure": 1, "paths": 2, "content": 3, "usability": 4, "performance": 5}

SAMPLE_CONTENT = {
    NodeType.START: "Welcome! Your adventure begins here...",
    NodeType.DECISION: "You face a choice. What do you decide?",
    NodeType.ACTION: "Something important happens in your story...",
    NodeType.END: "Your journey concludes. Well done!",
}


@dataclass
class AnalysisInsight:
    type: str
    category: str
    title: str
    description: str
    node_id: Optional[str] = None
    path_example: Optional[List[str]] = None
    actionable: bool = True
    suggestion: Optional[str] = None

    @property
    def priority(self) -> int:
        return TYPE_PRIORITY[self.type] * 10 + CATEGORY_PRIORITY[self.category]


@dataclass
class StructureMetrics:
    total_nodes: int
    decision_nodes: int
    end_nodes: int
    start_nodes: int
    average_choices_per_decision: float
    max_depth: int
    branching_factor: float


@dataclass
class PathMetrics:
    total_paths: int
    completed_paths: int
    average_path_length: float
    shortest_path: int
    longest_path: int
    unreachable_nodes: int
    loops: int


@dataclass
class ContentMetrics:
    average_node_text_length: float
    empty_nodes: int
    duplicate_content: int
    clarity_score: int


@dataclass
class UserExperienceMetrics:
    replayability: int
    engagement: int
    complexity: str
    estimated_play_time: str


@dataclass
class FlowAnalysis:
    is_valid: bool
    score: int
    insights: List[AnalysisInsight]
    structure: StructureMetrics
    paths: PathMetrics
    content: ContentMetrics
    user_experience: UserExperienceMetrics
    validation: Optional[ValidationResult] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("validation", None)
        return data


def _text(node: Node) -> str:
    return (node.content or node.title or "").strip()


def _round1(value: float) -> float:
    return round(value * 10) / 10


class FlowAnalyzer:
    """Combines validation, path testing and content heuristics into a 0-100 score."""

    def __init__(self, context: Optional[EngineContext] = None, max_paths: int = 1000, max_steps: int = 100):
        self.context = context or EngineContext()
        self.validator = FlowValidator(self.context)
        self.max_paths = max_paths
        self.max_steps = max_steps

    def analyze(self, flow: FlowDefinition) -> FlowAnalysis:
        insights: List[AnalysisInsight] = []
        graph = FlowGraph(flow, cache_size=self.context.graph_cache_size, cache_ttl=self.context.graph_cache_ttl)

        validation = self.validator.validate(flow)
        path_result = PathTester(flow, self.max_paths, self.max_steps, context=self.context).test_all_paths()

        self._analyze_nodes(flow, graph, insights)
        structure = self._analyze_structure(flow, graph, insights)
        paths = self._analyze_paths(path_result, graph, insights)
        content = self._analyze_content(flow, insights)
        ux = self._analyze_user_experience(structure, paths, insights)
        self._add_validation_insights(validation, insights)

        score = self._score(structure, paths, content, ux, insights)
        return FlowAnalysis(
            is_valid=validation.is_valid,
            score=score,
            insights=sorted(insights, key=lambda i: i.priority),
            structure=structure,
            paths=paths,
            content=content,
            user_experience=ux,
            validation=validation,
        )

    def _analyze_nodes(self, flow: FlowDefinition, graph: FlowGraph, insights: List[AnalysisInsight]) -> None:
        node_types = flow.node_types
        reachable = graph.find_reachable_nodes()
        by_content = defaultdict(list)

        for node in flow.nodes.values():
            node_type = node_types[node.id]
            text = _text(node)
            if not text:
                insights.append(AnalysisInsight(
                    "error", "content", "Empty Node Content",
                    f'Node "{node.id}" has no content. Users won\'t know what this step represents.',
                    node_id=node.id,
                    suggestion=f'Add descriptive text like: "{SAMPLE_CONTENT.get(node_type, "Describe what happens here...")}"',
                ))
            elif len(text) < 10:
                insights.append(AnalysisInsight(
                    "warning", "content", "Very Brief Content",
                    f'Node "{node.id}" has only {len(text)} characters: "{text}"',
                    node_id=node.id,
                    suggestion="Add more detail about what happens, how it feels, or what the user should consider.",
                ))

            if node_type == NodeType.DECISION:
                unlabeled = [o for o in node.outlets if not (o.label or "").strip()]
                if unlabeled:
                    insights.append(AnalysisInsight(
                        "warning", "usability", "Unlabeled Choice Paths",
                        f'Decision node "{node.id}" has {len(unlabeled)} paths without clear labels.',
                        node_id=node.id,
                        suggestion='Add descriptive labels like "Accept the offer" or "Decline politely".',
                    ))

            if node.id not in reachable:
                insights.append(AnalysisInsight(
                    "error", "structure", "Unreachable Node",
                    f'Node "{node.id}" cannot be reached from the start node.',
                    node_id=node.id,
                    suggestion="Connect this node to the flow by adding a path from another node, or remove it.",
                ))

            if node_type == NodeType.ISOLATED:
                insights.append(AnalysisInsight(
                    "warning", "structure", "Dead-End Node",
                    f'Node "{node.id}" doesn\'t lead anywhere. Users will get stuck here.',
                    node_id=node.id,
                    suggestion="Add a path to continue the story.",
                ))

            if len(text) > 5:
                by_content[text.lower()].append(node.id)

        for text, node_ids in by_content.items():
            if len(node_ids) > 1:
                insights.append(AnalysisInsight(
                    "info", "content", "Duplicate Content Found",
                    f'Nodes {", ".join(node_ids)} have identical content: "{text[:50]}..."',
                    suggestion="Make each node unique by adding different details, context, or outcomes.",
                ))

    def _analyze_structure(self, flow: FlowDefinition, graph: FlowGraph, insights: List[AnalysisInsight]) -> StructureMetrics:
        node_types = flow.node_types
        decisions = [n for n in flow.nodes.values() if node_types[n.id] == NodeType.DECISION]
        ends = [n for n in flow.nodes.values() if node_types[n.id] == NodeType.END]
        total_choices = sum(len(n.outlets) for n in decisions)
        average_choices = total_choices / len(decisions) if decisions else 0.0
        branching = average_choices if decisions else 1.0
        max_depth = graph.calculate_max_depth()

        if not decisions:
            insights.append(AnalysisInsight(
                "suggestion", "structure", "Add Interactive Choices",
                "Your flow is currently linear. Adding decision points makes it interactive.",
                suggestion="Turn some single-path nodes into decisions with two or more labelled outlets.",
            ))
        if len(ends) == 1 and len(flow.nodes) > 3:
            insights.append(AnalysisInsight(
                "suggestion", "structure", "Create Multiple Endings",
                f"You have {len(flow.nodes)} nodes but only 1 ending. Multiple endings encourage replay.",
                suggestion="Add 2-3 different ending nodes reached by different paths.",
            ))
        if decisions and average_choices < 2.5:
            limited = [n for n in decisions if len(n.outlets) < 3]
            if limited:
                insights.append(AnalysisInsight(
                    "suggestion", "structure", "Expand Decision Options",
                    f"{len(limited)} decision nodes have limited choices. More options create richer experiences.",
                    suggestion='Add a third option to decisions, e.g. "Yes|No|Ask for more information".',
                ))
        if max_depth > 12:
            insights.append(AnalysisInsight(
                "info", "usability", "Long Story Paths",
                f"Your longest path has {max_depth} steps. Consider if this feels too long for users.",
                suggestion="Add shortcuts or early endings, or break the flow into chapters.",
            ))

        return StructureMetrics(
            total_nodes=len(flow.nodes),
            decision_nodes=len(decisions),
            end_nodes=len(ends),
            start_nodes=1 if flow.start_node_id in flow.nodes else 0,
            average_choices_per_decision=_round1(average_choices),
            max_depth=max_depth,
            branching_factor=_round1(branching),
        )

    def _analyze_paths(self, result: PathTestResult, graph: FlowGraph, insights: List[AnalysisInsight]) -> PathMetrics:
        lengths = [p.steps for p in result.path_summary]
        average = sum(lengths) / len(lengths) if lengths else 0.0
        shortest = min(lengths) if lengths else 0
        longest = max(lengths) if lengths else 0

        for error in result.errors:
            if error.path:
                insights.append(AnalysisInsight(
                    "error", "paths", f"Broken Path: {error.type}",
                    f"Path breaks at: {' -> '.join(error.path)}",
                    path_example=error.path,
                    suggestion="Check that this path leads to a valid destination.",
                ))

        if 0 < result.total_paths < 3:
            insights.append(AnalysisInsight(
                "suggestion", "paths", "Add More Story Branches",
                f"Only {result.total_paths} possible paths through your story.",
                suggestion="Add decision nodes with three or more choices each.",
            ))
        if shortest and longest:
            if shortest < 3:
                insights.append(AnalysisInsight(
                    "warning", "paths", "Very Short Path Found",
                    f"Shortest path is only {shortest} steps. Users might feel unsatisfied.",
                    suggestion="Add more content or merge this with another path.",
                ))
            if longest - shortest > 8:
                insights.append(AnalysisInsight(
                    "info", "paths", "Unbalanced Path Lengths",
                    f"Path lengths vary from {shortest} to {longest} steps.",
                    suggestion="Balance by adding content to shorter paths or early exits to longer ones.",
                ))

        return PathMetrics(
            total_paths=result.total_paths,
            completed_paths=result.completed_paths,
            average_path_length=_round1(average),
            shortest_path=shortest,
            longest_path=longest,
            unreachable_nodes=len(graph.find_unreachable_nodes()),
            loops=sum(1 for w in result.warnings if w.type == "long_path")
            + sum(1 for e in result.errors if e.type == "infinite_loop"),
        )

    def _analyze_content(self, flow: FlowDefinition, insights: List[AnalysisInsight]) -> ContentMetrics:
        texts = [_text(node) for node in flow.nodes.values()]
        lengths = [len(t) for t in texts]
        average = sum(lengths) / len(lengths) if lengths else 0.0
        empty = sum(1 for t in texts if not t)
        duplicates = sum(1 for count in Counter(t.lower() for t in texts if t).values() if count > 1)

        if empty:
            insights.append(AnalysisInsight(
                "warning", "content", "Empty Nodes", f"{empty} nodes have no content text.",
                suggestion="Add descriptive text to all nodes to improve user experience.",
            ))
        if average < 10:
            insights.append(AnalysisInsight(
                "suggestion", "content", "Brief Content", "Consider adding more descriptive text to engage users.",
                suggestion="Expand node content with more detail and context.",
            ))
        if duplicates:
            insights.append(AnalysisInsight(
                "info", "content", "Duplicate Content", f"{duplicates} pieces of content are repeated.",
                suggestion="Consider varying the text to avoid repetition.",
            ))

        return ContentMetrics(
            average_node_text_length=_round1(average),
            empty_nodes=empty,
            duplicate_content=duplicates,
            clarity_score=self._clarity(average),
        )

    @staticmethod
    def _clarity(average_length: float) -> int:
        if 50 <= average_length <= 150:
            return 100
        if 20 <= average_length <= 200:
            return 80
        if 10 <= average_length <= 300:
            return 60
        return 40

    def _analyze_user_experience(
        self, structure: StructureMetrics, paths: PathMetrics, insights: List[AnalysisInsight]
    ) -> UserExperienceMetrics:
        replayability = min(100, structure.end_nodes * 20 + paths.total_paths * 5 + structure.decision_nodes * 10)
        engagement = min(
            100,
            structure.average_choices_per_decision * 25
            + min(paths.average_path_length, 10) * 5
            + structure.decision_nodes * 8,
        )

        if structure.total_nodes > 15 or paths.total_paths > 8:
            complexity = "complex"
        elif structure.total_nodes > 8 or paths.total_paths > 4:
            complexity = "moderate"
        else:
            complexity = "simple"

        # Roughly thirty seconds per node.
        minutes = math.ceil(paths.average_path_length * 0.5)
        if minutes < 2:
            play_time = "1-2 minutes"
        elif minutes < 5:
            play_time = "2-5 minutes"
        elif minutes < 10:
            play_time = "5-10 minutes"
        else:
            play_time = "10+ minutes"

        if replayability < 30:
            insights.append(AnalysisInsight(
                "suggestion", "usability", "Low Replayability",
                "Users might not want to replay this flow multiple times.",
                suggestion="Add more decision points and multiple endings to encourage replay.",
            ))
        if engagement < 40:
            insights.append(AnalysisInsight(
                "suggestion", "usability", "Could Be More Engaging",
                "Consider adding more interactive elements and meaningful choices.",
                suggestion="Increase the number of decision points and choice variety.",
            ))

        return UserExperienceMetrics(
            replayability=round(replayability),
            engagement=round(engagement),
            complexity=complexity,
            estimated_play_time=play_time,
        )

    @staticmethod
    def _add_validation_insights(validation: ValidationResult, insights: List[AnalysisInsight]) -> None:
        for error in validation.errors:
            insights.append(AnalysisInsight(
                "error", "structure", error.type, error.message, node_id=error.node_id,
                suggestion="Fix this structural issue to ensure proper flow operation.",
            ))
        for warning in validation.warnings:
            insights.append(AnalysisInsight("warning", "structure", warning.type, warning.message, node_id=warning.node_id))

    @staticmethod
    def _score(
        structure: StructureMetrics,
        paths: PathMetrics,
        content: ContentMetrics,
        ux: UserExperienceMetrics,
        insights: List[AnalysisInsight],
    ) -> int:
        score = 100
        score -= 20 * sum(1 for i in insights if i.type == "error")
        score -= 10 * sum(1 for i in insights if i.type == "warning")

        if structure.decision_nodes > 0:
            score += 10
        if structure.end_nodes > 1:
            score += 10
        if structure.average_choices_per_decision >= 2:
            score += 5
        if paths.total_paths > 3:
            score += 10
        if paths.total_paths and paths.completed_paths == paths.total_paths:
            score += 15
        if content.empty_nodes == 0:
            score += 10
        if content.clarity_score > 70:
            score += 5
        if ux.replayability > 60:
            score += 10
        if ux.engagement > 60:
            score += 10

        return max(0, min(100, round(score)))
