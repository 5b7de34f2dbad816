"""Authoring-time analysis: graph queries, validation, path testing and scoring."""

from .graph import ExploredPath, FlowGraph, FlowStats, GraphTraversalResult, PathExplorationResult
from .validator import FlowValidator, ValidationIssue, ValidationResult
from .path_tester import CoverageReport, PathIssue, PathSummary, PathTester, PathTestResult
from .analyzer import AnalysisInsight, FlowAnalysis, FlowAnalyzer
from .report import PathTestRun, run_path_tests, validate_flow

__all__ = [
    "ExploredPath",
    "FlowGraph",
    "FlowStats",
    "GraphTraversalResult",
    "PathExplorationResult",
    "FlowValidator",
    "ValidationIssue",
    "ValidationResult",
    "CoverageReport",
    "PathIssue",
    "PathSummary",
    "PathTester",
    "PathTestResult",
    "AnalysisInsight",
    "FlowAnalysis",
    "FlowAnalyzer",
    "PathTestRun",
    "run_path_tests",
    "validate_flow",
]
