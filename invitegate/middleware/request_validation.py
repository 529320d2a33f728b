"""
Request Validation - schema-driven checks and sanitization for body, query
and path parameters.

A schema maps field names to FieldRule. For every field the checks run in
this order:

    required -> type -> sanitize -> min/max -> pattern -> enum -> custom

Every failure is collected; the caller gets the full list, not just the first.

Body values must already have the declared type (the JSON parser typed them).
Query and path values arrive as strings and are coerced first:
- number:  leading integer prefix ("12abc" -> 12), otherwise an error
- boolean: case-insensitive "true", anything else is False
- array:   comma split, each item trimmed and sanitized

Usage:
    schema = {"name": FieldRule(type="string", required=True, min=2, max=50)}
    result = validate_body(payload, schema)
    if result.errors:
        ...  # 400 with result.errors
"""

import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from invitegate.security.sanitization import MAX_STRING_LENGTH, sanitize, sanitize_shallow

FieldType = Literal["string", "number", "boolean", "array", "object"]

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class FieldRule:
    type: FieldType
    required: bool = False
    min: float | None = None
    max: float | None = None
    pattern: re.Pattern | str | None = None
    enum: list[Any] | None = None
    # Returns True, or an error message
    custom: Callable[[Any], bool | str] | None = None

    def __post_init__(self):
        if isinstance(self.pattern, str):
            self.pattern = re.compile(self.pattern)


Schema = dict[str, FieldRule]


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    sanitized: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _fmt(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def _parse_int(value: str) -> int | None:
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def _check_type(name: str, rule: FieldRule, value: Any) -> tuple[str | None, Any]:
    """Return (error, sanitized value) for an already-typed value."""
    if rule.type == "string":
        if not isinstance(value, str):
            return f"{name} must be a string", value
        return None, sanitize(value)
    if rule.type == "number":
        if not _is_number(value):
            return f"{name} must be a number", value
        return None, value
    if rule.type == "boolean":
        if not isinstance(value, bool):
            return f"{name} must be a boolean", value
        return None, value
    if rule.type == "array":
        if not isinstance(value, list):
            return f"{name} must be an array", value
        return None, sanitize_shallow(value)
    if rule.type == "object":
        if not isinstance(value, dict):
            return f"{name} must be an object", value
        return None, sanitize_shallow(value)
    return f"{name} has an unsupported type", value


def _check_bounds(name: str, rule: FieldRule, value: Any, errors: list[str]) -> None:
    if rule.type == "string":
        if rule.min is not None and len(value) < rule.min:
            errors.append(f"{name} must be at least {_fmt(rule.min)} characters long")
        if rule.max is not None and len(value) > rule.max:
            errors.append(f"{name} must be at most {_fmt(rule.max)} characters long")
        if rule.pattern is not None and not rule.pattern.search(value):
            errors.append(f"{name} format is invalid")
    elif rule.type == "number":
        if rule.min is not None and value < rule.min:
            errors.append(f"{name} must be at least {_fmt(rule.min)}")
        if rule.max is not None and value > rule.max:
            errors.append(f"{name} must be at most {_fmt(rule.max)}")
    elif rule.type == "array":
        if rule.min is not None and len(value) < rule.min:
            errors.append(f"{name} must have at least {_fmt(rule.min)} items")
        if rule.max is not None and len(value) > rule.max:
            errors.append(f"{name} must have at most {_fmt(rule.max)} items")

    if rule.enum is not None and rule.type in ("string", "number", "boolean"):
        candidate = value if rule.type == "string" else _enum_repr(value)
        if candidate not in [str(option) for option in rule.enum]:
            errors.append(f"{name} must be one of: {', '.join(str(o) for o in rule.enum)}")


def _enum_repr(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _check_custom(name: str, rule: FieldRule, value: Any, errors: list[str]) -> None:
    if rule.custom is None:
        return
    outcome = rule.custom(value)
    if outcome is not True:
        errors.append(outcome if isinstance(outcome, str) else f"{name} is invalid")


def _coerce(name: str, rule: FieldRule, value: Any) -> tuple[str | None, Any]:
    """Turn a raw query/path string into the declared type."""
    if not isinstance(value, str):
        return None, value
    if rule.type == "number":
        parsed = _parse_int(value)
        if parsed is None:
            return f"{name} must be a valid number", None
        return None, parsed
    if rule.type == "boolean":
        return None, value.lower() == "true"
    if rule.type == "array":
        return None, [sanitize(item.strip()) for item in value.split(",")]
    return None, value


def _validate(data: dict[str, Any] | None, schema: Schema, coerce: bool) -> ValidationResult:
    data = data or {}
    result = ValidationResult()

    for name, rule in schema.items():
        value = data.get(name)

        if rule.required and _is_missing(value):
            result.errors.append(f"{name} is required")
            continue
        if value is None:
            continue

        if coerce:
            error, value = _coerce(name, rule, value)
            if error:
                result.errors.append(error)
                continue

        error, cleaned = _check_type(name, rule, value)
        if error:
            result.errors.append(error)
        else:
            result.sanitized[name] = cleaned
            _check_bounds(name, rule, cleaned, result.errors)

        _check_custom(name, rule, result.sanitized.get(name, value), result.errors)

    return result


def validate_body(data: dict[str, Any] | None, schema: Schema) -> ValidationResult:
    """Validate a parsed JSON body; values must already be typed."""
    return _validate(data, schema, coerce=False)


def validate_query(data: dict[str, Any] | None, schema: Schema) -> ValidationResult:
    """Validate query parameters, coercing strings to the declared types."""
    return _validate(data, schema, coerce=True)


def validate_params(data: dict[str, Any] | None, schema: Schema) -> ValidationResult:
    """Validate path parameters, coercing strings to the declared types."""
    return _validate(data, schema, coerce=True)


def oversized_fields(data: dict[str, Any] | None, limit: int = MAX_STRING_LENGTH) -> list[str]:
    """Default guard applied to every body: no string field over `limit` chars."""
    if not isinstance(data, dict):
        return []
    return [
        "Input too large"
        for value in data.values()
        if isinstance(value, str) and len(value) > limit
    ]
