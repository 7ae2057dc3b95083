"""Collect-all validation of NumericFields and nested parameter structs."""

from __future__ import annotations

from typing import Any, Dict, List

from ..exceptions import InvalidConfig, ValidationIssue
from .models import is_numeric_field, parse_numeric_field

__all__ = ["validate_numeric_field", "validate_numeric_struct"]


def validate_numeric_field(raw: Any, field_path: str) -> List[ValidationIssue]:
    """Return every problem with ``raw`` as a NumericField (empty if valid)."""
    if isinstance(raw, bool) or not (isinstance(raw, (int, float, dict)) or is_numeric_field(raw)):
        return [
            ValidationIssue(
                field_path=field_path,
                error_type="type_mismatch",
                message="must be a number or a distribution object",
                value=raw if isinstance(raw, (str, bool)) else type(raw).__name__,
                expected="number | {value} | {dist, ...}",
            )
        ]
    try:
        parse_numeric_field(raw, field_path=field_path)
    except InvalidConfig as e:
        return e.issues
    return []


def validate_numeric_struct(params: Dict[str, Any], prefix: str = "") -> List[ValidationIssue]:
    """Validate every NumericField-shaped entry of a nested dict."""
    issues: List[ValidationIssue] = []
    for key, value in params.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if is_numeric_field(value):
            issues.extend(validate_numeric_field(value, path))
        elif isinstance(value, dict):
            issues.extend(validate_numeric_struct(value, path))
    return issues
