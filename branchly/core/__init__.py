"""Core data structures for branchly flow definitions."""

from .ir import (
    AutoAdvanceMode,
    ExpressionLanguage,
    FlowDefinition,
    Node,
    NodeType,
    Outlet,
    StateAction,
    StateRule,
    infer_node_types,
)
from .serialization import JsonSerializer
from .cache import LRUCache
from .errors import (
    ExpressionError,
    FlowDefinitionError,
    FlowError,
    FlowNotStartedError,
    FlowStateError,
    InvalidChoiceError,
    NodeNotFoundError,
    NoTransitionError,
    StateActionError,
    StateValidationError,
    UnsupportedLanguageError,
)

__all__ = [
    "AutoAdvanceMode",
    "ExpressionLanguage",
    "FlowDefinition",
    "Node",
    "NodeType",
    "Outlet",
    "StateAction",
    "StateRule",
    "infer_node_types",
    "JsonSerializer",
    "LRUCache",
    # Errors
    "ExpressionError",
    "FlowDefinitionError",
    "FlowError",
    "FlowNotStartedError",
    "FlowStateError",
    "InvalidChoiceError",
    "NodeNotFoundError",
    "NoTransitionError",
    "StateActionError",
    "StateValidationError",
    "UnsupportedLanguageError",
]
