"""Language-agnostic expression engine contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from branchly.core.errors import ExpressionError
from branchly.expressions.template import format_value, substitute


@dataclass
class CompileResult:
    success: bool
    error: Optional[str] = None


class ExpressionEngine(ABC):
    """
    Evaluates expressions of one language against a state mapping.

    Subclasses implement ``compile`` and ``evaluate``; the three primitive
    operations used by the rest of the system (condition, expression,
    interpolation) are derived from those unless a language does better.
    """

    language: str = ""

    @abstractmethod
    def compile(self, expression: str) -> CompileResult:
        """Check an expression for syntax errors without evaluating it."""

    @abstractmethod
    def evaluate(self, expression: str, context: Dict[str, Any]) -> Any:
        """Evaluate an expression. Unknown variables yield ``None``."""

    def compile_condition(self, expression: str) -> CompileResult:
        return self.compile(expression)

    def clear_cache(self) -> None:
        pass

    def evaluate_expression(self, expression: str, context: Dict[str, Any]) -> Any:
        return self.evaluate(expression, context)

    def evaluate_condition(self, expression: str, context: Dict[str, Any]) -> bool:
        result = self.evaluate(expression, context)
        if not isinstance(result, bool):
            raise ExpressionError(
                f"Condition did not evaluate to a boolean (got {type(result).__name__})",
                expression,
            )
        return result

    def interpolate(self, template: str, context: Dict[str, Any]) -> str:
        """Substitute ``${expr}`` placeholders. Evaluation errors propagate."""
        return substitute(template, lambda expr: format_value(self.evaluate(expr, context)))
