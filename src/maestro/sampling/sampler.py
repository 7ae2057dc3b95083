"""Scope-aware sampling of NumericFields.

:class:`SamplingContext` bundles an :class:`RNGStreamManager` and a
:class:`ScopeCache` and is passed explicitly to every adapter, generator and
compiler call. Each parameter draws from its own stream (``param.<name>``),
so adding a parameter never shifts the values of the others.

Example:
    >>> ctx = SamplingContext(master_seed=7)
    >>> ctx.set_session("S01")
    >>> ctx.set_block(0)
    >>> iti = ctx.sample({"dist": "uniform", "min": 500, "max": 700, "scope": "per_block"}, "iti_ms")
    >>> iti == ctx.sample({"dist": "uniform", "min": 500, "max": 700, "scope": "per_block"}, "iti_ms")
    True
    >>> compute_moments({"dist": "uniform", "min": 500, "max": 700, "scope": "per_trial"})["representative"]
    600.0
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Hashable, Optional

import numpy as np

from .models import (
    CategoricalField,
    LogUniformField,
    NormalField,
    ScalarField,
    UniformField,
    is_numeric_field,
    parse_numeric_field,
)
from .rng import RNGStreamManager
from .scope import ScopeCache

__all__ = ["SamplingContext", "draw", "compute_moments", "representative_value"]

logger = logging.getLogger(__name__)


# ============================================================================
# Distribution Draws
# ============================================================================


def draw(field: Any, rng: np.random.Generator) -> float:
    """Draw one value from a distribution field.

    Consumes exactly one draw from ``rng``. Scalars are returned without
    touching the generator.
    """
    field = parse_numeric_field(field)

    if isinstance(field, ScalarField):
        return field.value

    if isinstance(field, UniformField):
        return float(field.min + rng.random() * (field.max - field.min))

    if isinstance(field, NormalField):
        value = field.mean + field.std * rng.standard_normal()
        if field.clip_min is not None:
            value = max(value, field.clip_min)
        if field.clip_max is not None:
            value = min(value, field.clip_max)
        return float(value)

    if isinstance(field, LogUniformField):
        log_min, log_max = math.log(field.min), math.log(field.max)
        return float(math.exp(log_min + rng.random() * (log_max - log_min)))

    if isinstance(field, CategoricalField):
        probs = np.asarray(field.probabilities, dtype=float)
        cumulative = np.cumsum(probs / probs.sum())
        index = int(np.searchsorted(cumulative, rng.random(), side="left"))
        return float(field.categories[min(index, len(field.categories) - 1)])

    # parse_numeric_field only returns the variants above
    raise TypeError(f"Unsupported field type: {type(field).__name__}")


def compute_moments(field: Any) -> Dict[str, float]:
    """Summary statistics of a NumericField without drawing randomness.

    Returns:
        Dict with ``mean``, ``variance`` and ``representative``. The
        representative value is what callers needing a single number use:
        the value for scalars, the midpoint for uniform, the mean for
        normal, the geometric mean for loguniform and the first category
        for categorical.
    """
    field = parse_numeric_field(field)

    if isinstance(field, ScalarField):
        return {"mean": field.value, "variance": 0.0, "representative": field.value}

    if isinstance(field, UniformField):
        mean = (field.min + field.max) / 2
        return {"mean": mean, "variance": (field.max - field.min) ** 2 / 12, "representative": mean}

    if isinstance(field, NormalField):
        return {"mean": field.mean, "variance": field.std**2, "representative": field.mean}

    if isinstance(field, LogUniformField):
        log_min, log_max = math.log(field.min), math.log(field.max)
        geometric_mean = math.exp((log_min + log_max) / 2)
        log_variance = (log_max - log_min) ** 2 / 12
        variance = geometric_mean**2 * (math.exp(log_variance) - 1)
        return {"mean": geometric_mean, "variance": variance, "representative": geometric_mean}

    # Categorical
    categories = np.asarray(field.categories, dtype=float)
    probs = np.asarray(field.probabilities, dtype=float)
    probs = probs / probs.sum()
    mean = float(np.sum(categories * probs))
    variance = float(np.sum(probs * (categories - mean) ** 2))
    return {"mean": mean, "variance": variance, "representative": float(categories[0])}


def representative_value(field: Any) -> float:
    """Shorthand for ``compute_moments(field)["representative"]``."""
    return compute_moments(field)["representative"]


# ============================================================================
# Sampling Context
# ============================================================================


class SamplingContext:
    """RNG streams plus scope cache, owned by one experiment session.

    Not thread-safe; sessions running in parallel each own a context.

    Args:
        master_seed: Seed for all streams (None draws entropy)
        rng: Existing stream manager to reuse instead of creating one
        scopes: Existing scope cache to reuse
    """

    def __init__(
        self,
        master_seed: Optional[int] = None,
        rng: Optional[RNGStreamManager] = None,
        scopes: Optional[ScopeCache] = None,
    ):
        self.rng = rng if rng is not None else RNGStreamManager(master_seed)
        self.scopes = scopes if scopes is not None else ScopeCache()

    @property
    def master_seed(self) -> int:
        return self.rng.master_seed

    def get_stream(self, name: str) -> np.random.Generator:
        return self.rng.get_stream(name)

    def set_block(self, block_id: Hashable) -> None:
        self.scopes.set_context("block", block_id)

    def set_session(self, session_id: Hashable) -> None:
        self.scopes.set_context("session", session_id)

    def sample(self, field: Any, param_name: str) -> float:
        """Resolve a NumericField to a concrete value.

        Scalars return immediately. Distributions draw from stream
        ``param.<param_name>`` unless a value is cached for the field's
        scope.

        Raises:
            UnknownDistribution: Unsupported ``dist``
            InvalidConfig: Malformed field
        """
        field = parse_numeric_field(field, field_path=param_name)
        if isinstance(field, ScalarField):
            return field.value

        stream_name = f"param.{param_name}"
        return self.scopes.get_or_sample(param_name, field.scope, lambda: draw(field, self.get_stream(stream_name)))

    def sample_struct(self, params: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
        """Resolve every NumericField in a nested parameter dict.

        Non-numeric entries (strings, lists, booleans) are copied unchanged.
        Parameter names are dotted paths, e.g. ``tone_1k.level.value``.
        """
        resolved: Dict[str, Any] = {}
        for key, value in params.items():
            name = f"{prefix}.{key}" if prefix else str(key)
            if is_numeric_field(value):
                resolved[key] = self.sample(value, name)
            elif isinstance(value, dict):
                resolved[key] = self.sample_struct(value, name)
            else:
                resolved[key] = value
        return resolved

    def seed_record(self) -> Dict[str, Any]:
        return self.rng.seed_record()

    def __repr__(self) -> str:
        return f"SamplingContext(master_seed={self.master_seed}, block={self.scopes.block_id!r}, session={self.scopes.session_id!r})"
