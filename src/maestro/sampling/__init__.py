"""Deterministic, scope-aware sampling of numeric parameters.

Public API:
-----------
- NumericField models: ScalarField, UniformField, NormalField,
  LogUniformField, CategoricalField (tagged by ``dist``)
- RNGStreamManager: named streams derived from one master seed
- ScopeCache: per_trial / per_block / per_session reuse of sampled values
- SamplingContext: the two above, passed explicitly through the pipeline
- compute_moments / representative_value: statistics without randomness
- validate_numeric_field: collect-all validation into ValidationIssue records

Example:
--------
>>> from maestro.sampling import SamplingContext
>>> ctx = SamplingContext(master_seed=1234)
>>> ctx.set_session("S01"); ctx.set_block(0)
>>> level = ctx.sample({"dist": "normal", "mean": -20, "std": 2, "scope": "per_block"}, "tone.level")
"""

from .models import (
    DISTRIBUTIONS,
    PROBABILITY_TOLERANCE,
    CategoricalField,
    DistributionField,
    LogUniformField,
    NormalField,
    NumericField,
    ScalarField,
    Scope,
    UniformField,
    is_numeric_field,
    parse_numeric_field,
)
from .rng import RNGStreamManager, stream_key
from .sampler import SamplingContext, compute_moments, draw, representative_value
from .scope import ScopeCache
from .validation import validate_numeric_field, validate_numeric_struct

__all__ = [
    # Models
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
    # Streams and scopes
    "RNGStreamManager",
    "stream_key",
    "ScopeCache",
    "SamplingContext",
    # Sampling
    "draw",
    "compute_moments",
    "representative_value",
    # Validation
    "validate_numeric_field",
    "validate_numeric_struct",
]
