"""${expression} substitution in node titles, content and choice labels."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from branchly.core.ir import ExpressionLanguage
from branchly.engine.context import EngineContext
from branchly.expressions.template import extract_expressions, format_value, has_placeholders, substitute

logger = logging.getLogger(__name__)


@dataclass
class InterpolationResult:
    content: str
    has_interpolations: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass
class ExpressionCheck:
    valid: bool
    errors: List[str] = field(default_factory=list)


class ContentInterpolator:
    """
    Replaces ``${expr}`` placeholders with formatted expression results.

    ``\\${expr}`` is kept literally (minus the backslash). Failures are
    collected per placeholder and the placeholder renders as an empty
    string; ``interpolate`` itself never raises.
    """

    def __init__(
        self,
        expression_language=ExpressionLanguage.CEL,
        context: Optional[EngineContext] = None,
        enable_logging: bool = False,
    ):
        self.context = context or EngineContext()
        self.expression_language = ExpressionLanguage(expression_language)
        self.enable_logging = enable_logging

    @property
    def engine(self):
        return self.context.get_engine(self.expression_language)

    def _report(self, message: str) -> None:
        logger.log(logging.WARNING if self.enable_logging else logging.DEBUG, "Content interpolation: %s", message)

    def interpolate(self, content: Optional[str], state: Dict[str, Any]) -> InterpolationResult:
        if not content or not isinstance(content, str):
            return InterpolationResult(content=content or "")

        errors: List[str] = []
        found = False

        def render(expression: str) -> str:
            nonlocal found
            found = True
            try:
                value = self.engine.evaluate_expression(expression, state)
            except Exception as e:
                message = f'Failed to interpolate "{expression}": {e}'
                errors.append(message)
                self._report(message)
                return ""
            if value is None:
                message = f'Variable "{expression}" is undefined'
                errors.append(message)
                self._report(message)
                return ""
            return format_value(value)

        return InterpolationResult(content=substitute(content, render), has_interpolations=found, errors=errors)

    def has_interpolations(self, content: Optional[str]) -> bool:
        return bool(extract_expressions(content or ""))

    def extract_expressions(self, content: Optional[str]) -> List[str]:
        return extract_expressions(content or "")

    def validate_expressions(self, content: Optional[str]) -> ExpressionCheck:
        """Compile every placeholder without evaluating it."""
        errors = []
        for expression in self.extract_expressions(content):
            result = self.engine.compile(expression)
            if not result.success:
                errors.append(f'Invalid expression "{expression}": {result.error}')
        return ExpressionCheck(valid=not errors, errors=errors)


def needs_interpolation(text: Optional[str]) -> bool:
    return bool(text) and has_placeholders(text)
