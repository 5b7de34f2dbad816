"""Frontends for producing flow definitions from Python code."""

from .builder import FlowBuilder

__all__ = ["FlowBuilder"]
