"""Pluggable expression languages for conditions, values and templates."""

from typing import Dict, Type

from branchly.core.errors import UnsupportedLanguageError
from .base import CompileResult, ExpressionEngine
from .cel import CelExpressionEngine
from .liquid import LiquidExpressionEngine
from .template import extract_expressions, format_value, has_placeholders

ENGINE_TYPES: Dict[str, Type[ExpressionEngine]] = {
    "cel": CelExpressionEngine,
    "liquid": LiquidExpressionEngine,
}


def create_engine(language: str, **kwargs) -> ExpressionEngine:
    """Instantiate the expression engine registered for ``language``."""
    key = getattr(language, "value", language)
    cls = ENGINE_TYPES.get(key)
    if cls is None:
        raise UnsupportedLanguageError(f"Unsupported expression language: {key}", key)
    return cls(**kwargs)


__all__ = [
    "CompileResult",
    "ExpressionEngine",
    "CelExpressionEngine",
    "LiquidExpressionEngine",
    "create_engine",
    "extract_expressions",
    "format_value",
    "has_placeholders",
    "ENGINE_TYPES",
]
