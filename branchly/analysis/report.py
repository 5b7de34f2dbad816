"""Path-test runner producing a structured result and a plain-text rendering."""

import time
from dataclasses import dataclass
from typing import List, Optional

from branchly.analysis.path_tester import PathTester, PathTestResult
from branchly.analysis.validator import FlowValidator, ValidationResult
from branchly.core.ir import FlowDefinition
from branchly.engine.context import EngineContext

RULE = "-" * 50
SAMPLE_PATHS = 5


@dataclass
class PathTestRun:
    result: PathTestResult
    text: str
    duration_ms: int


def render(flow: FlowDefinition, result: PathTestResult, duration_ms: int, verbose: bool = False) -> str:
    coverage = result.coverage
    lines: List[str] = [
        f"Testing flow: {flow.title}",
        RULE,
        "",
        f"Test Results ({duration_ms}ms)",
        f"Status: {'PASS' if result.is_valid else 'FAIL'}",
        f"Total paths: {result.total_paths}",
        f"Completed paths: {result.completed_paths}",
        f"Errors: {len(result.errors)}",
        f"Warnings: {len(result.warnings)}",
        "",
        "Coverage",
        f"Nodes: {coverage.nodes_covered}/{coverage.total_nodes} ({coverage.node_percent}%)",
        f"Paths: {coverage.paths_covered}/{coverage.total_paths} ({coverage.path_percent}%)",
    ]

    for heading, issues in (("Errors", result.errors), ("Warnings", result.warnings)):
        if not issues:
            continue
        lines += ["", f"{heading}:"]
        for issue in issues:
            lines.append(f"  * {issue.type}: {issue.message}")
            if issue.path and verbose:
                lines.append(f"    Path: {' -> '.join(issue.path)}")

    if coverage.uncovered_nodes:
        lines += ["", "Uncovered Nodes:"]
        lines += [f"  * {node_id}" for node_id in coverage.uncovered_nodes]

    if verbose and result.path_summary:
        lines += ["", "Sample Paths:"]
        for summary in result.path_summary[:SAMPLE_PATHS]:
            lines.append(f"  * {' -> '.join(summary.path)} ({summary.steps} steps, {summary.end_type})")
        if len(result.path_summary) > SAMPLE_PATHS:
            lines.append(f"  ... and {len(result.path_summary) - SAMPLE_PATHS} more paths")

    lines += ["", RULE]
    return "\n".join(lines)


def run_path_tests(
    flow: FlowDefinition,
    max_steps: int = 100,
    max_paths: int = 1000,
    verbose: bool = False,
    context: Optional[EngineContext] = None,
) -> PathTestRun:
    """Explore every path of ``flow`` and render the outcome as text."""
    tester = PathTester(flow, max_paths=max_paths, max_steps=max_steps, context=context)
    started = time.perf_counter()
    result = tester.test_all_paths()
    duration_ms = int((time.perf_counter() - started) * 1000)
    return PathTestRun(result=result, text=render(flow, result, duration_ms, verbose), duration_ms=duration_ms)


def validate_flow(flow: FlowDefinition, context: Optional[EngineContext] = None) -> ValidationResult:
    return FlowValidator(context).validate(flow)
