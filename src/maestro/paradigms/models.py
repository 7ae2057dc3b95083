"""Trial plan and paradigm configuration models.

Trial plans are the output of every paradigm adapter and the input of the
pattern builder. They are frozen once created.

Paradigm configurations are validated once at construction; adapters
never assemble them field by field. Each carries a ``paradigm`` tag so a
single mapping loaded from TOML/JSON can be dispatched to its adapter.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

from ..sampling import NumericField, ScalarField

__all__ = [
    "ParadigmKind",
    "SelectionMode",
    "SelectionConfig",
    "ParadigmConfigBase",
    "Element",
    "Trial",
    "TrialPlan",
    "StimulusToken",
    "OddballToken",
    "OddballConfig",
    "LocalGlobalPattern",
    "LocalGlobalConfig",
    "ForeperiodOutcome",
    "ForeperiodConfig",
    "OMISSION_REF",
    "CONSTRAINT_PREFIX",
]

OMISSION_REF = "omission"
CONSTRAINT_PREFIX = "max_consecutive_"


# ============================================================================
# Enums
# ============================================================================


class ParadigmKind(str, Enum):
    """Supported experimental paradigms."""

    ODDBALL = "oddball"
    LOCAL_GLOBAL = "local_global"
    FOREPERIOD = "foreperiod"


class SelectionMode(str, Enum):
    """How trial types are drawn from their probabilities."""

    IID = "iid"
    BALANCED_SHUFFLE = "balanced_shuffle"
    CSV_PRESET = "csv_preset"


# ============================================================================
# Trial Plan
# ============================================================================


class Element(BaseModel):
    """One stimulus presentation inside a trial.

    Onsets are relative to the trial start. Omission elements mark an
    expected-but-absent stimulus: zero duration, placeholder reference.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stimulus_ref: str = Field(..., min_length=1, description="Key into the stimulus library")
    scheduled_onset_ms: float = Field(..., ge=0, description="Onset relative to trial start (ms)")
    duration_ms: float = Field(..., ge=0, description="Nominal duration (ms)")
    role: Optional[str] = Field(default=None, description="Semantic role, e.g. 'cue' or 'outcome'")
    symbol: Optional[str] = Field(default=None, description="Pattern symbol, e.g. 'A'")
    ttl_code: Optional[int] = Field(default=None, ge=0, le=255, description="Event marker written on the TTL line")
    is_omission: bool = Field(default=False, description="Expected stimulus deliberately withheld")

    @model_validator(mode="after")
    def _check_duration(self) -> "Element":
        if self.is_omission and self.duration_ms != 0:
            raise PydanticCustomError("constraint_violation", "omission elements must have duration_ms == 0")
        if not self.is_omission and self.duration_ms <= 0:
            raise PydanticCustomError(
                "range_violation",
                "duration_ms must be > 0 (got {duration_ms})",
                {"duration_ms": self.duration_ms, "expected": "> 0"},
            )
        return self


class Trial(BaseModel):
    """Ordered elements sharing one trial start.

    Extra paradigm-specific attributes (e.g. ``foreperiod_ms``) are allowed
    and carried through to logs.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    trial_index: int = Field(..., ge=0, description="0-based position in the plan")
    label: str = Field(..., description="Trial type label")
    code: Optional[int] = Field(default=None, ge=0, le=255, description="Trial-level TTL code")
    elements: List[Element] = Field(default_factory=list)


class TrialPlan(BaseModel):
    """Output of a paradigm adapter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    paradigm: Optional[ParadigmKind] = Field(default=None)
    n_trials: int = Field(..., ge=0)
    iti_ms: float = Field(..., ge=0, description="Inter-trial interval after each trial's end")
    refractory_ms: float = Field(default=0.0, ge=0, description="Gap added to each trial's span before the ITI")
    trials: List[Trial] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_trials(self) -> "TrialPlan":
        if len(self.trials) != self.n_trials:
            raise PydanticCustomError(
                "constraint_violation",
                "n_trials is {n_trials} but {n} trials were given",
                {"n_trials": self.n_trials, "n": len(self.trials)},
            )
        for position, trial in enumerate(self.trials):
            if trial.trial_index != position:
                raise PydanticCustomError(
                    "constraint_violation",
                    "trial at position {position} has trial_index {trial_index}",
                    {"position": position, "trial_index": trial.trial_index},
                )
        return self


# ============================================================================
# Shared Configuration Pieces
# ============================================================================


class SelectionConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: SelectionMode
    seed: Optional[int] = Field(default=None, ge=0, description="Dedicated seed for trial-type selection")
    sequence: Optional[List[Union[int, str]]] = Field(
        default=None, description="csv_preset only: 0-based token indices or token labels"
    )


class StimulusToken(BaseModel):
    """A stimulus reference with a nominal duration and optional TTL code."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    stimulus_ref: str = Field(..., min_length=1)
    duration_ms: NumericField = Field(default=ScalarField(value=150.0))
    code: Optional[int] = Field(default=None, ge=0, le=255)


class ParadigmConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    selection: SelectionConfig
    iti: NumericField
    constraints: Dict[str, int] = Field(default_factory=dict, description="max_consecutive_<label>: limit")
    refractory_ms: float = Field(default=0.0, ge=0)

    @field_validator("constraints")
    @classmethod
    def _check_constraints(cls, v: Dict[str, int]) -> Dict[str, int]:
        for key, limit in v.items():
            if not key.startswith(CONSTRAINT_PREFIX) or key == CONSTRAINT_PREFIX:
                raise PydanticCustomError(
                    "invalid_value",
                    "unknown constraint '{key}'",
                    {"key": key, "expected": f"{CONSTRAINT_PREFIX}<label>"},
                )
            if limit < 1:
                raise PydanticCustomError(
                    "range_violation",
                    "{key} must be >= 1 (got {limit})",
                    {"key": key, "limit": limit, "expected": ">= 1"},
                )
        return v

    def constraint_limits(self) -> Dict[str, int]:
        """Constraints keyed by label."""
        return {key[len(CONSTRAINT_PREFIX) :]: limit for key, limit in self.constraints.items()}


# ============================================================================
# Oddball
# ============================================================================


class OddballToken(StimulusToken):
    label: str = Field(..., min_length=1)
    base_probability: float


class OddballConfig(ParadigmConfigBase):
    """Standard/deviant sequences: one stimulus per trial.

    Example (TOML):
        paradigm = "oddball"
        iti = {dist = "uniform", min = 500, max = 700, scope = "per_trial"}
        selection = {mode = "balanced_shuffle", seed = 42}
        constraints = {max_consecutive_deviant = 1}

        [[tokens]]
        label = "standard"
        stimulus_ref = "tone_1k"
        base_probability = 0.8
        code = 1
    """

    paradigm: Literal["oddball"] = "oddball"
    tokens: List[OddballToken] = Field(..., min_length=1)


# ============================================================================
# Local-Global
# ============================================================================


class LocalGlobalPattern(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str = Field(..., min_length=1)
    sequence: str = Field(..., min_length=1, pattern=r"^[AB]+$", description="Symbols, e.g. 'AAAB'")
    base_probability: float
    code: Optional[int] = Field(default=None, ge=0, le=255)


class LocalGlobalConfig(ParadigmConfigBase):
    """Patterns of two tokens (A/B) spaced by an inter-onset interval."""

    paradigm: Literal["local_global"] = "local_global"
    token_a: StimulusToken = Field(..., description="Token played for symbol 'A'")
    token_b: StimulusToken = Field(..., description="Token played for symbol 'B'")
    patterns: List[LocalGlobalPattern] = Field(..., min_length=1)
    ioi: NumericField = Field(..., description="Inter-onset interval between symbols (ms)")

    @field_validator("token_a", "token_b", mode="before")
    @classmethod
    def _default_token_duration(cls, v: Any) -> Any:
        # Local-global tokens are short; 50 ms unless given
        if isinstance(v, dict) and "duration_ms" not in v:
            return {**v, "duration_ms": 50.0}
        return v


# ============================================================================
# Foreperiod
# ============================================================================


class ForeperiodOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    label: Optional[str] = Field(default=None)
    stimulus_ref: Optional[str] = Field(default=None, min_length=1)
    probability: float = Field(default=1.0)
    duration_ms: NumericField = Field(default=ScalarField(value=150.0))
    is_omission: bool = Field(default=False)
    code: Optional[int] = Field(default=None, ge=0, le=255)

    @model_validator(mode="after")
    def _check_ref(self) -> "ForeperiodOutcome":
        if not self.is_omission and self.stimulus_ref is None:
            raise PydanticCustomError("required_field", "stimulus_ref is required unless is_omission is true")
        return self

    def display_label(self, index: int) -> str:
        if self.label:
            return self.label
        if self.is_omission:
            return OMISSION_REF
        return self.stimulus_ref or f"outcome_{index}"


class ForeperiodConfig(ParadigmConfigBase):
    """Cue, variable delay, outcome (possibly omitted)."""

    paradigm: Literal["foreperiod"] = "foreperiod"
    cue: StimulusToken
    outcome: Optional[ForeperiodOutcome] = Field(default=None, description="Single outcome played every trial")
    outcomes: Optional[List[ForeperiodOutcome]] = Field(default=None, min_length=1)
    foreperiods: List[float] = Field(..., min_length=1, description="Cue-to-outcome delays (ms)")
    foreperiod_probs: List[float] = Field(..., min_length=1)

    @field_validator("foreperiods")
    @classmethod
    def _check_foreperiods(cls, v: List[float]) -> List[float]:
        if any(fp <= 0 for fp in v):
            raise PydanticCustomError("range_violation", "foreperiods must be > 0 ms", {"expected": "> 0"})
        return v

    @model_validator(mode="after")
    def _check_structure(self) -> "ForeperiodConfig":
        if self.outcome is None and self.outcomes is None:
            raise PydanticCustomError("required_field", "either 'outcome' or 'outcomes' is required")
        if self.outcome is not None and self.outcomes is not None:
            raise PydanticCustomError("constraint_violation", "give either 'outcome' or 'outcomes', not both")
        if len(self.foreperiods) != len(self.foreperiod_probs):
            raise PydanticCustomError(
                "constraint_violation",
                "foreperiods ({n_fp}) and foreperiod_probs ({n_prob}) must have the same length",
                {"n_fp": len(self.foreperiods), "n_prob": len(self.foreperiod_probs)},
            )
        return self

    def outcome_list(self) -> List[ForeperiodOutcome]:
        return list(self.outcomes) if self.outcomes is not None else [self.outcome]
