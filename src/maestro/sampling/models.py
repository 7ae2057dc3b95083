"""NumericField models.

A NumericField is either a fixed scalar (a plain number or ``{value: X}``)
or a distribution descriptor tagged by ``dist``:

- uniform:     ``{dist, min, max, scope}`` with ``min < max``
- normal:      ``{dist, mean, std, scope, clip_min?, clip_max?}`` with ``std >= 0``
- loguniform:  ``{dist, min, max, scope}`` with ``0 < min < max``
- categorical: ``{dist, categories, probabilities, scope}``; at least two
  categories, equal lengths, probabilities in [0, 1] summing to 1 +- 1e-3

``scope`` decides how long a sampled value is reused (see
:class:`~maestro.sampling.scope.ScopeCache`).

Example:
    >>> field = parse_numeric_field({"dist": "uniform", "min": 500, "max": 700, "scope": "per_trial"})
    >>> field.max
    700.0
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, ValidationError, model_validator
from pydantic_core import PydanticCustomError

from ..exceptions import InvalidConfig, UnknownDistribution
from ..validation import issues_from_validation_error

__all__ = [
    "Scope",
    "ScalarField",
    "UniformField",
    "NormalField",
    "LogUniformField",
    "CategoricalField",
    "DistributionField",
    "NumericField",
    "DISTRIBUTIONS",
    "PROBABILITY_TOLERANCE",
    "parse_numeric_field",
    "is_numeric_field",
]

PROBABILITY_TOLERANCE = 1e-3

DISTRIBUTIONS = ("uniform", "normal", "loguniform", "categorical")


class Scope(str, Enum):
    """Lifetime of a sampled value."""

    PER_TRIAL = "per_trial"
    PER_BLOCK = "per_block"
    PER_SESSION = "per_session"


# ============================================================================
# Field Variants
# ============================================================================


class ScalarField(BaseModel):
    """Fixed value. Accepts a bare number as shorthand."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    value: float

    @model_validator(mode="before")
    @classmethod
    def _wrap_number(cls, data: Any) -> Any:
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return {"value": data}
        return data


class UniformField(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    dist: Literal["uniform"] = "uniform"
    min: float
    max: float
    scope: Scope

    @model_validator(mode="after")
    def _check_bounds(self) -> "UniformField":
        if self.min >= self.max:
            raise PydanticCustomError(
                "range_violation",
                "min ({min}) must be less than max ({max})",
                {"min": self.min, "max": self.max, "expected": "min < max"},
            )
        return self


class NormalField(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    dist: Literal["normal"] = "normal"
    mean: float
    std: float = Field(..., ge=0)
    scope: Scope
    clip_min: Optional[float] = None
    clip_max: Optional[float] = None

    @model_validator(mode="after")
    def _check_clip(self) -> "NormalField":
        if self.clip_min is not None and self.clip_max is not None and self.clip_min >= self.clip_max:
            raise PydanticCustomError(
                "range_violation",
                "clip_min ({clip_min}) must be less than clip_max ({clip_max})",
                {"clip_min": self.clip_min, "clip_max": self.clip_max, "expected": "clip_min < clip_max"},
            )
        return self


class LogUniformField(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    dist: Literal["loguniform"] = "loguniform"
    min: float = Field(..., gt=0)
    max: float = Field(..., gt=0)
    scope: Scope

    @model_validator(mode="after")
    def _check_bounds(self) -> "LogUniformField":
        if self.min >= self.max:
            raise PydanticCustomError(
                "range_violation",
                "min ({min}) must be less than max ({max})",
                {"min": self.min, "max": self.max, "expected": "0 < min < max"},
            )
        return self


class CategoricalField(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    dist: Literal["categorical"] = "categorical"
    categories: List[float] = Field(..., min_length=2)
    probabilities: List[Annotated[float, Field(ge=0, le=1)]]
    scope: Scope

    @model_validator(mode="after")
    def _check_probabilities(self) -> "CategoricalField":
        if len(self.categories) != len(self.probabilities):
            raise PydanticCustomError(
                "constraint_violation",
                "categories ({n_cat}) and probabilities ({n_prob}) must have the same length",
                {"n_cat": len(self.categories), "n_prob": len(self.probabilities)},
            )
        total = sum(self.probabilities)
        if abs(total - 1.0) > PROBABILITY_TOLERANCE:
            raise PydanticCustomError(
                "probability_sum",
                "probabilities sum to {total}, not 1",
                {"total": round(total, 6), "expected": "sum == 1 +- 0.001"},
            )
        return self


# ============================================================================
# Tagged Union
# ============================================================================


def _field_tag(value: Any) -> str:
    if isinstance(value, dict):
        return value.get("dist", "scalar")
    if isinstance(value, BaseModel):
        return getattr(value, "dist", "scalar")
    # Numbers and anything malformed go to ScalarField, which reports the type error
    return "scalar"


DistributionField = Union[UniformField, NormalField, LogUniformField, CategoricalField]

NumericField = Annotated[
    Union[
        Annotated[ScalarField, Tag("scalar")],
        Annotated[UniformField, Tag("uniform")],
        Annotated[NormalField, Tag("normal")],
        Annotated[LogUniformField, Tag("loguniform")],
        Annotated[CategoricalField, Tag("categorical")],
    ],
    Discriminator(
        _field_tag,
        custom_error_type="unknown_distribution",
        custom_error_message="Unknown distribution type",
        custom_error_context={"expected": ", ".join(DISTRIBUTIONS)},
    ),
]

_NUMERIC_FIELD_ADAPTER = TypeAdapter(NumericField)


def parse_numeric_field(raw: Any, field_path: str = "value") -> Union[ScalarField, DistributionField]:
    """Validate raw input into a NumericField model.

    Raises:
        UnknownDistribution: ``dist`` names an unsupported distribution
        InvalidConfig: Any other validation problem (all issues attached)
    """
    if isinstance(raw, (ScalarField, UniformField, NormalField, LogUniformField, CategoricalField)):
        return raw
    try:
        return _NUMERIC_FIELD_ADAPTER.validate_python(raw)
    except ValidationError as e:
        issues = issues_from_validation_error(e, prefix=field_path)
        if any(err["type"] == "unknown_distribution" for err in e.errors()):
            raise UnknownDistribution(f"Unknown distribution type for '{field_path}': {raw.get('dist')!r}", issues) from e
        raise InvalidConfig(f"Invalid numeric field '{field_path}'", issues) from e


def is_numeric_field(value: Any) -> bool:
    """True if ``value`` has the shape of a NumericField (number, ``{value}`` or ``{dist, ...}``)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, (ScalarField, UniformField, NormalField, LogUniformField, CategoricalField)):
        return True
    if isinstance(value, dict):
        return "dist" in value or set(value) == {"value"}
    return False
