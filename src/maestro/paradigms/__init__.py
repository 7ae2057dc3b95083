"""Paradigm adapters: configuration + trial count -> TrialPlan.

Adapters are selected by :class:`ParadigmKind` from the closed registry
:data:`ADAPTERS`; configurations carry their kind in the ``paradigm`` key.

Example:
--------
>>> from maestro.paradigms import generate_trial_plan
>>> from maestro.sampling import SamplingContext
>>>
>>> plan = generate_trial_plan(
...     {
...         "paradigm": "local_global",
...         "token_a": {"stimulus_ref": "tone_1k"},
...         "token_b": {"stimulus_ref": "tone_2k"},
...         "patterns": [
...             {"label": "xx", "sequence": "AAAA", "base_probability": 0.8},
...             {"label": "xY", "sequence": "AAAB", "base_probability": 0.2},
...         ],
...         "ioi": 100,
...         "iti": 800,
...         "selection": {"mode": "balanced_shuffle"},
...     },
...     n_trials=50,
...     context=SamplingContext(master_seed=3),
... )
"""

from typing import Any, Dict, Mapping, Optional, Type, Union

from ..exceptions import InvalidConfig, ValidationIssue
from ..sampling import SamplingContext
from .base import ParadigmAdapter, Selection
from .foreperiod import ForeperiodAdapter, foreperiod_label
from .local_global import LocalGlobalAdapter
from .models import (
    CONSTRAINT_PREFIX,
    OMISSION_REF,
    Element,
    ForeperiodConfig,
    ForeperiodOutcome,
    LocalGlobalConfig,
    LocalGlobalPattern,
    OddballConfig,
    OddballToken,
    ParadigmConfigBase,
    ParadigmKind,
    SelectionConfig,
    SelectionMode,
    StimulusToken,
    Trial,
    TrialPlan,
)
from .oddball import OddballAdapter
from .selection import (
    balanced_counts,
    count_violations,
    enforce_max_consecutive,
    max_run_length,
    select_balanced_shuffle,
    select_iid,
    select_indices,
    select_preset,
)

__all__ = [
    # Models
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
    # Adapters
    "ParadigmAdapter",
    "Selection",
    "OddballAdapter",
    "LocalGlobalAdapter",
    "ForeperiodAdapter",
    "ADAPTERS",
    "get_adapter",
    "validate_paradigm_config",
    "generate_trial_plan",
    "foreperiod_label",
    # Selection
    "select_iid",
    "select_balanced_shuffle",
    "select_preset",
    "select_indices",
    "balanced_counts",
    "enforce_max_consecutive",
    "count_violations",
    "max_run_length",
]

ADAPTERS: Dict[ParadigmKind, Type[ParadigmAdapter]] = {
    ParadigmKind.ODDBALL: OddballAdapter,
    ParadigmKind.LOCAL_GLOBAL: LocalGlobalAdapter,
    ParadigmKind.FOREPERIOD: ForeperiodAdapter,
}


def get_adapter(kind: Union[ParadigmKind, str]) -> ParadigmAdapter:
    """Instantiate the adapter for ``kind``.

    Raises:
        InvalidConfig: Unknown paradigm
    """
    try:
        kind = ParadigmKind(kind)
    except ValueError:
        raise InvalidConfig(
            f"Unknown paradigm {kind!r}",
            [
                ValidationIssue(
                    field_path="paradigm",
                    error_type="invalid_value",
                    message="unknown paradigm",
                    value=kind,
                    expected=", ".join(k.value for k in ParadigmKind),
                )
            ],
        )
    return ADAPTERS[kind]()


def _adapter_for(config: Mapping[str, Any]) -> ParadigmAdapter:
    if "paradigm" not in config:
        raise InvalidConfig(
            "Paradigm configuration has no 'paradigm' key",
            [ValidationIssue(field_path="paradigm", error_type="required_field", message="field required")],
        )
    return get_adapter(config["paradigm"])


def validate_paradigm_config(config: Mapping[str, Any]) -> ParadigmConfigBase:
    """Validate a tagged configuration with its paradigm's adapter."""
    return _adapter_for(config).validate(config)


def generate_trial_plan(
    config: Mapping[str, Any],
    n_trials: int,
    context: Optional[SamplingContext] = None,
) -> TrialPlan:
    """Dispatch on ``config["paradigm"]`` and generate a trial plan."""
    return _adapter_for(config).generate_trial_plan(config, n_trials, context)
