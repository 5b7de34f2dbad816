"""Placeholder scanning and value formatting shared by every interpolation path."""

import json
import re
from typing import Any, Callable, List, Tuple

# ${expr} with one level of nested braces allowed inside expr.
PLACEHOLDER_PATTERN = re.compile(r"\$\{((?:[^{}]|\{[^{}]*\})+)\}")
ESCAPED_PATTERN = re.compile(r"\\\$\{((?:[^{}]|\{[^{}]*\})+)\}")

_ESCAPE_TOKEN = "\x00BRANCHLY_ESCAPED_{}\x00"


def has_placeholders(text: str) -> bool:
    return bool(text) and "${" in text


def format_value(value: Any) -> str:
    """Render an evaluated value the way it should appear in node text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.2f}"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(item) for item in value)
    if isinstance(value, dict):
        try:
            return json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError):
            return "[Object]"
    return str(value)


def protect_escapes(text: str) -> Tuple[str, List[str]]:
    """Swap escaped ``\\${...}`` sequences for tokens, returning the literal forms."""
    escaped: List[str] = []

    def _stash(match):
        escaped.append("${" + match.group(1) + "}")
        return _ESCAPE_TOKEN.format(len(escaped) - 1)

    return ESCAPED_PATTERN.sub(_stash, text), escaped


def restore_escapes(text: str, escaped: List[str]) -> str:
    for i, literal in enumerate(escaped):
        text = text.replace(_ESCAPE_TOKEN.format(i), literal)
    return text


def extract_expressions(text: str) -> List[str]:
    """Return the unescaped placeholder expressions in order of appearance."""
    if not has_placeholders(text):
        return []
    protected, _ = protect_escapes(text)
    return [match.group(1).strip() for match in PLACEHOLDER_PATTERN.finditer(protected)]


def substitute(text: str, render: Callable[[str], str]) -> str:
    """Replace every placeholder with ``render(expression)``, honouring escapes."""
    protected, escaped = protect_escapes(text)
    replaced = PLACEHOLDER_PATTERN.sub(lambda m: render(m.group(1).strip()), protected)
    return restore_escapes(replaced, escaped)
