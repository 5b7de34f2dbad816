"""Liquid expressions backed by python-liquid."""

import logging
from typing import Any, Dict, List

from liquid import Environment, StrictUndefined, Undefined

from branchly.core.cache import LRUCache
from branchly.core.errors import ExpressionError
from branchly.expressions.base import CompileResult, ExpressionEngine

logger = logging.getLogger(__name__)

CAPTURE_FILTER = "branchly_capture"
CAPTURE_SINK = "branchly_sink"


def _capture(value: Any, sink: List[Any]) -> str:
    sink.append(value)
    return ""


class LiquidExpressionEngine(ExpressionEngine):
    """
    Evaluates Liquid expressions and templates.

    Bare expressions are wrapped in a template whose output filter hands the
    evaluated object back to Python, so filters work in every position.
    Only ``false`` and ``nil`` are falsy in conditions.
    """

    language = "liquid"

    def __init__(self, cache_size: int = 1000, cache_ttl: float = 600.0):
        self._env = Environment(undefined=StrictUndefined)
        self._env.filters[CAPTURE_FILTER] = _capture
        self._templates: LRUCache = LRUCache(max_size=cache_size, ttl=cache_ttl)

    def _template(self, source: str, expression: str):
        template = self._templates.get(source)
        if template is None:
            try:
                template = self._env.from_string(source)
            except Exception as e:
                raise ExpressionError(f"Syntax error in '{expression}': {e}", expression) from e
            self._templates.set(source, template)
        return template

    def _render(self, source: str, expression: str, context: Dict[str, Any]) -> str:
        template = self._template(source, expression)
        try:
            return template.render(**(context or {}))
        except Exception as e:
            raise ExpressionError(f"Error evaluating '{expression}': {e}", expression) from e

    @staticmethod
    def _expression_source(expression: str) -> str:
        return "{{ " + expression + " | " + CAPTURE_FILTER + ": " + CAPTURE_SINK + " }}"

    @staticmethod
    def _condition_source(expression: str) -> str:
        return "{% if " + expression + " %}true{% else %}false{% endif %}"

    def _check(self, source: str, expression: str) -> CompileResult:
        if not expression or not expression.strip():
            return CompileResult(success=False, error="Expression is empty")
        try:
            self._template(source, expression)
        except ExpressionError as e:
            return CompileResult(success=False, error=str(e))
        return CompileResult(success=True)

    def compile(self, expression: str) -> CompileResult:
        return self._check(self._expression_source(expression), expression)

    def compile_condition(self, expression: str) -> CompileResult:
        """Conditions may use comparison operators, which only parse inside tags."""
        return self._check(self._condition_source(expression), expression)

    def evaluate(self, expression: str, context: Dict[str, Any]) -> Any:
        sink: List[Any] = []
        scope = dict(context or {})
        scope[CAPTURE_SINK] = sink
        self._render(self._expression_source(expression), expression, scope)
        if not sink or issubclass(type(sink[0]), Undefined):
            return None
        return sink[0]

    def evaluate_condition(self, expression: str, context: Dict[str, Any]) -> bool:
        return self._render(self._condition_source(expression), expression, context) == "true"

    def interpolate(self, template: str, context: Dict[str, Any]) -> str:
        """Render a native Liquid template (``{{ }}`` and tags)."""
        return self._render(template, template, context)

    def clear_cache(self) -> None:
        self._templates.clear()
