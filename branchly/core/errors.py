"""Exception hierarchy shared by every branchly component."""

from typing import List, Optional


class FlowError(Exception):
    """Base class for all branchly errors."""


class FlowDefinitionError(FlowError, ValueError):
    """A flow definition is malformed and cannot be loaded or built."""


class NodeNotFoundError(FlowError, LookupError):
    """A node referenced by id does not exist in the flow."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.node_id = node_id


class InvalidChoiceError(FlowError, ValueError):
    """The requested choice is not an enabled outlet of the current node."""


class NoTransitionError(FlowError):
    """No outlet could be selected from the current node."""


class FlowStateError(FlowError, RuntimeError):
    """The engine is not in a state that allows the requested operation."""


class FlowNotStartedError(FlowStateError):
    """An operation that needs a current node was called before start()."""


class ExpressionError(FlowError):
    """An expression failed to compile or evaluate."""

    def __init__(self, message: str, expression: Optional[str] = None):
        super().__init__(message)
        self.expression = expression


class UnsupportedLanguageError(ExpressionError):
    """No expression engine is registered for the requested language."""


class StateActionError(FlowError):
    """A state action could not be applied."""


class StateValidationError(FlowError, ValueError):
    """A state mutation would violate the flow's state schema."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])
