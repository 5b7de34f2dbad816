"""
branchly - An execution engine for branching flows and interactive fiction.

Main APIs:
- FlowEngine: Step-by-step execution with choices, history and auto-advance
- FlowBuilder: Imperative API for building flow definitions in Python
- JsonSerializer: Load and save the canonical flow-definition JSON

Analysis:
- FlowValidator: Static structural checks
- PathTester: Exhaustive path exploration with coverage
- FlowAnalyzer: Heuristic quality scoring
"""

from branchly.core.ir import FlowDefinition, Node, Outlet, StateAction, StateRule, NodeType
from branchly.core.serialization import JsonSerializer
from branchly.engine import EngineContext, EngineOptions, FlowEngine, StateManager
from branchly.frontend import FlowBuilder
from branchly.analysis import FlowAnalyzer, FlowGraph, FlowValidator, PathTester, run_path_tests

__version__ = "0.1.0"

__all__ = [
    # Core IR
    "FlowDefinition",
    "Node",
    "Outlet",
    "StateAction",
    "StateRule",
    "NodeType",
    # Serialization
    "JsonSerializer",
    # Engine
    "EngineContext",
    "EngineOptions",
    "FlowEngine",
    "StateManager",
    # Frontends
    "FlowBuilder",
    # Analysis
    "FlowAnalyzer",
    "FlowGraph",
    "FlowValidator",
    "PathTester",
    "run_path_tests",
]
