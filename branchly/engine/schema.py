"""JSON-Schema validation of flow state, with compiled validators cached per schema."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError, ValidationError

from branchly.core.cache import LRUCache
from branchly.core.errors import StateValidationError

_REQUIRED_MESSAGE = re.compile(r"^'(.*)' is a required property$")


@dataclass
class SchemaValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def _path(error: ValidationError) -> str:
    if not error.absolute_path:
        return "root"
    return "/" + "/".join(str(part) for part in error.absolute_path)


def format_error(error: ValidationError) -> str:
    """Turn a jsonschema error into a message naming the failing path."""
    path = _path(error)
    keyword = error.validator
    limit = error.validator_value

    if keyword == "required":
        match = _REQUIRED_MESSAGE.match(error.message)
        missing = match.group(1) if match else ", ".join(limit)
        return f"Missing required property: {missing} at {path}"
    if keyword == "type":
        return f"Invalid type at {path}: expected {limit}, got {_json_type(error.instance)}"
    if keyword in ("minimum", "exclusiveMinimum"):
        return f"Value at {path} ({error.instance}) is below minimum {limit}"
    if keyword in ("maximum", "exclusiveMaximum"):
        return f"Value at {path} ({error.instance}) is above maximum {limit}"
    if keyword == "minLength":
        return f"String at {path} is too short (minimum length: {limit})"
    if keyword == "maxLength":
        return f"String at {path} is too long (maximum length: {limit})"
    if keyword == "pattern":
        return f"String at {path} does not match required pattern"
    if keyword == "format":
        return f"Invalid format at {path}: expected {limit}"
    if keyword == "maxItems":
        return f"Array at {path} has too many items (maximum: {limit})"
    if keyword == "minItems":
        return f"Array at {path} has too few items (minimum: {limit})"
    if keyword == "additionalProperties":
        allowed = set((error.schema or {}).get("properties", {}))
        instance = error.instance if isinstance(error.instance, dict) else {}
        extra = [name for name in instance if name not in allowed]
        return f"Unexpected property '{', '.join(extra)}' at {path}"
    return f"Validation error at {path}: {error.message}"


class SchemaValidator:
    """
    Validates data against Draft 7 schemas.

    Compiled validators are cached by the schema's canonical JSON text, so
    equal schemas built separately share one validator.
    """

    def __init__(self, cache_size: int = 100, cache_ttl: Optional[float] = None):
        self._validators: LRUCache = LRUCache(max_size=cache_size, ttl=cache_ttl)

    def compile_schema(self, schema: Dict[str, Any], schema_id: Optional[str] = None) -> Draft7Validator:
        key = schema_id or json.dumps(schema, sort_keys=True, default=str)
        validator = self._validators.get(key)
        if validator is None:
            try:
                Draft7Validator.check_schema(schema)
            except SchemaError as e:
                raise ValueError(f"Failed to compile schema: {e.message}") from e
            validator = Draft7Validator(schema, format_checker=FormatChecker())
            self._validators.set(key, validator)
        return validator

    def validate(self, data: Any, schema: Dict[str, Any], schema_id: Optional[str] = None) -> SchemaValidationResult:
        try:
            validator = self.compile_schema(schema, schema_id)
        except ValueError as e:
            return SchemaValidationResult(is_valid=False, errors=[f"Schema validation failed: {e}"])

        errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
        if not errors:
            return SchemaValidationResult(is_valid=True)
        return SchemaValidationResult(is_valid=False, errors=[format_error(e) for e in errors])

    def validate_or_raise(self, data: Any, schema: Dict[str, Any], schema_id: Optional[str] = None) -> None:
        result = self.validate(data, schema, schema_id)
        if not result.is_valid:
            raise StateValidationError(f"Schema validation failed: {', '.join(result.errors)}", result.errors)

    def clear_cache(self) -> None:
        self._validators.clear()
