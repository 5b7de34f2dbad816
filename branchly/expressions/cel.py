"""CEL expressions backed by cel-python."""

import logging
from typing import Any, Dict

import celpy
from celpy import celtypes

from branchly.core.cache import LRUCache
from branchly.core.errors import ExpressionError
from branchly.expressions.base import CompileResult, ExpressionEngine

logger = logging.getLogger(__name__)


def cel_to_python(value: Any) -> Any:
    """Convert celpy result types back to plain Python values."""
    if value is None or isinstance(value, celtypes.NullType):
        return None
    # BoolType subclasses int, so it has to be checked first.
    if isinstance(value, celtypes.BoolType):
        return bool(value)
    if isinstance(value, (celtypes.IntType, celtypes.UintType)):
        return int(value)
    if isinstance(value, celtypes.DoubleType):
        return float(value)
    if isinstance(value, celtypes.StringType):
        return str(value)
    if isinstance(value, celtypes.ListType):
        return [cel_to_python(item) for item in value]
    if isinstance(value, celtypes.MapType):
        return {cel_to_python(k): cel_to_python(v) for k, v in value.items()}
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _is_unknown_reference(error: Exception) -> bool:
    if len(error.args) > 1 and error.args[1] is KeyError:
        return True
    message = str(error).lower()
    return "undeclared reference" in message or "no such" in message


class CelExpressionEngine(ExpressionEngine):
    """
    Compiles CEL once per distinct expression string and evaluates it with the
    state's top-level keys as variables.
    """

    language = "cel"

    def __init__(self, cache_size: int = 1000, cache_ttl: float = 600.0):
        self._env = celpy.Environment()
        self._programs: LRUCache = LRUCache(max_size=cache_size, ttl=cache_ttl)

    def _program(self, expression: str):
        program = self._programs.get(expression)
        if program is None:
            try:
                ast = self._env.compile(expression)
            except celpy.CELParseError as e:
                raise ExpressionError(f"Syntax error in '{expression}': {e}", expression) from e
            program = self._env.program(ast)
            self._programs.set(expression, program)
        return program

    def compile(self, expression: str) -> CompileResult:
        if not expression or not expression.strip():
            return CompileResult(success=False, error="Expression is empty")
        try:
            self._program(expression)
        except ExpressionError as e:
            return CompileResult(success=False, error=str(e))
        return CompileResult(success=True)

    def evaluate(self, expression: str, context: Dict[str, Any]) -> Any:
        program = self._program(expression)
        activation = {name: celpy.json_to_cel(value) for name, value in (context or {}).items()}
        try:
            result = program.evaluate(activation)
        except celpy.CELEvalError as e:
            if _is_unknown_reference(e):
                logger.debug("Unknown variable in '%s': %s", expression, e)
                return None
            raise ExpressionError(f"Error evaluating '{expression}': {e}", expression) from e
        except (TypeError, ValueError, ZeroDivisionError) as e:
            raise ExpressionError(f"Error evaluating '{expression}': {e}", expression) from e

        if isinstance(result, celpy.CELEvalError):
            if _is_unknown_reference(result):
                return None
            raise ExpressionError(f"Error evaluating '{expression}': {result}", expression)
        return cel_to_python(result)

    def clear_cache(self) -> None:
        self._programs.clear()
