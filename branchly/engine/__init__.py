"""Flow execution: state management, interpolation and the traversal engine."""

from .context import EngineContext
from .events import EventEmitter
from .interpolation import ContentInterpolator, InterpolationResult
from .runner import (
    AnnotatedNode,
    Choice,
    EngineOptions,
    ExecutionResult,
    ExecutionStep,
    FlowEngine,
    select_auto_advance_outlet,
    should_auto_advance,
)
from .schema import SchemaValidationResult, SchemaValidator
from .state import StateActionExecutor, StateManager

__all__ = [
    "EngineContext",
    "EventEmitter",
    "ContentInterpolator",
    "InterpolationResult",
    "AnnotatedNode",
    "Choice",
    "EngineOptions",
    "ExecutionResult",
    "ExecutionStep",
    "FlowEngine",
    "select_auto_advance_outlet",
    "should_auto_advance",
    "SchemaValidationResult",
    "SchemaValidator",
    "StateActionExecutor",
    "StateManager",
]
