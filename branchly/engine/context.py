"""Explicit dependency container for everything that evaluates or validates."""

from typing import Dict, Optional

from branchly.core.ir import ExpressionLanguage
from branchly.engine.schema import SchemaValidator
from branchly.expressions import ExpressionEngine, create_engine


class EngineContext:
    """
    Holds expression engines keyed by language plus the schema validator.

    Engines are created lazily, so a flow that only uses CEL never builds a
    Liquid environment. Share one context between components that should
    share compiled-expression caches.
    """

    def __init__(
        self,
        engines: Optional[Dict[str, ExpressionEngine]] = None,
        schema_validator: Optional[SchemaValidator] = None,
        expression_cache_size: int = 1000,
        expression_cache_ttl: float = 600.0,
        schema_cache_size: int = 100,
        graph_cache_size: int = 50,
        graph_cache_ttl: float = 300.0,
    ):
        self._engines: Dict[str, ExpressionEngine] = dict(engines or {})
        self.schema_validator = schema_validator or SchemaValidator(cache_size=schema_cache_size)
        self.expression_cache_size = expression_cache_size
        self.expression_cache_ttl = expression_cache_ttl
        self.graph_cache_size = graph_cache_size
        self.graph_cache_ttl = graph_cache_ttl

    def get_engine(self, language=ExpressionLanguage.CEL) -> ExpressionEngine:
        key = getattr(language, "value", language)
        engine = self._engines.get(key)
        if engine is None:
            engine = create_engine(
                key,
                cache_size=self.expression_cache_size,
                cache_ttl=self.expression_cache_ttl,
            )
            self._engines[key] = engine
        return engine

    def register_engine(self, language: str, engine: ExpressionEngine) -> None:
        self._engines[getattr(language, "value", language)] = engine

    def clear_caches(self) -> None:
        for engine in self._engines.values():
            engine.clear_cache()
        self.schema_validator.clear_cache()
