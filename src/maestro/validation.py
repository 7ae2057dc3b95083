"""Conversion of pydantic validation failures into issue records.

Pydantic already collects every problem of a model in one pass; this module
maps its error list onto :class:`~maestro.exceptions.ValidationIssue`
records (dotted field path, issue category, message, offending value) so all
configuration surfaces report errors the same way.

Example:
    >>> try:
    ...     OddballConfig.model_validate(raw)
    ... except ValidationError as e:
    ...     raise InvalidConfig("Invalid oddball config", issues_from_validation_error(e))
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .exceptions import InvalidConfig, ValidationIssue

__all__ = [
    "issues_from_validation_error",
    "validate_model",
    "field_path",
]

M = TypeVar("M", bound=BaseModel)

# Discriminator tags of NumericField appear in pydantic locations; they are
# not part of the user's field path.
_UNION_TAGS = frozenset({"scalar", "uniform", "normal", "loguniform", "categorical"})

_TYPE_MAP = {
    "missing": "required_field",
    "extra_forbidden": "invalid_value",
    "greater_than": "range_violation",
    "greater_than_equal": "range_violation",
    "less_than": "range_violation",
    "less_than_equal": "range_violation",
    "too_short": "constraint_violation",
    "too_long": "constraint_violation",
    "literal_error": "invalid_value",
    "enum": "invalid_value",
    "union_tag_invalid": "invalid_value",
    "unknown_distribution": "invalid_value",
}

# Custom error types raised from model validators keep their name.
_PASSTHROUGH = frozenset(
    {
        "type_mismatch",
        "required_field",
        "invalid_value",
        "constraint_violation",
        "range_violation",
        "probability_sum",
    }
)


def field_path(loc: Iterable[Any], prefix: str = "") -> str:
    """Join a pydantic location tuple into a dotted path.

    List indices are rendered as ``name[i]``.
    """
    path = prefix
    for part in loc:
        if isinstance(part, int):
            path = f"{path}[{part}]"
        elif part in _UNION_TAGS:
            continue
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or "<root>"


def _error_type(pydantic_type: str) -> str:
    if pydantic_type in _PASSTHROUGH:
        return pydantic_type
    if pydantic_type in _TYPE_MAP:
        return _TYPE_MAP[pydantic_type]
    if pydantic_type.endswith("_type") or pydantic_type.endswith("_parsing"):
        return "type_mismatch"
    return "invalid_value"


def issues_from_validation_error(error: ValidationError, prefix: str = "") -> List[ValidationIssue]:
    """Translate a pydantic ValidationError into issue records."""
    issues = []
    for err in error.errors(include_url=False):
        ctx = err.get("ctx") or {}
        expected = ctx.get("expected")
        if expected is None and "ge" in ctx:
            expected = f">= {ctx['ge']}"
        elif expected is None and "gt" in ctx:
            expected = f"> {ctx['gt']}"
        elif expected is None and "le" in ctx:
            expected = f"<= {ctx['le']}"
        elif expected is None and "lt" in ctx:
            expected = f"< {ctx['lt']}"

        value = err.get("input")
        if err["type"] == "missing" or isinstance(value, (dict, list)):
            value = None

        issues.append(
            ValidationIssue(
                field_path=field_path(err["loc"], prefix),
                error_type=_error_type(err["type"]),
                message=err["msg"],
                value=value,
                expected=None if expected is None else str(expected),
            )
        )
    return issues


def validate_model(model: Type[M], raw: Any, what: str, prefix: str = "", error_cls: Optional[Type[InvalidConfig]] = None) -> M:
    """Validate ``raw`` into ``model`` or raise InvalidConfig with all issues.

    Args:
        model: Pydantic model class
        raw: Mapping or model instance
        what: Short description used in the error message
        prefix: Field path prefix for reported issues
        error_cls: InvalidConfig subclass to raise

    Raises:
        InvalidConfig: Validation failed
    """
    if isinstance(raw, model):
        return raw
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        issues = issues_from_validation_error(e, prefix)
        raise (error_cls or InvalidConfig)(f"Invalid {what}", issues) from e
