"""Pattern builder: TrialPlan -> absolutely timed element table.

Trials are laid out back to back. A cursor holds the current trial start:

- each element's ``absolute_onset_ms = trial_start + scheduled_onset_ms``;
- a trial ends at the latest ``scheduled_onset_ms + duration_ms`` of its
  elements;
- the next trial starts at ``end + refractory_ms + iti_ms``;
- a trial without elements produces no rows and advances the cursor by the
  ITI only.

Rows come out time-ordered because trials are visited in order and
element onsets within a trial must be non-decreasing.

Element table columns:
    trial_index, element_index, stimulus_ref, absolute_onset_ms,
    duration_ms, label [, role, symbol, ttl_code, is_omission]

The optional columns are present only when at least one element carries
them. ``ttl_code`` is the element's own code, else the trial code on the
trial's first element, else 0 (no marker).

Example:
    >>> table = build_element_table(plan)
    >>> table[["trial_index", "absolute_onset_ms"]].head()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import InvalidConfig, PatternBuildError
from .paradigms.models import Trial, TrialPlan
from .validation import validate_model

__all__ = [
    "REQUIRED_COLUMNS",
    "OPTIONAL_COLUMNS",
    "build_element_table",
    "compute_trial_windows",
    "validate_element_table",
    "empty_element_table",
]

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["trial_index", "element_index", "stimulus_ref", "absolute_onset_ms", "duration_ms", "label"]
OPTIONAL_COLUMNS = ["role", "symbol", "ttl_code", "is_omission"]

_DTYPES = {
    "trial_index": "int64",
    "element_index": "int64",
    "stimulus_ref": "object",
    "absolute_onset_ms": "float64",
    "duration_ms": "float64",
    "label": "object",
    "role": "object",
    "symbol": "object",
    "ttl_code": "int64",
    "is_omission": "bool",
}


def _as_plan(plan: Union[TrialPlan, Mapping[str, Any]]) -> TrialPlan:
    try:
        return validate_model(TrialPlan, plan, "trial plan")
    except InvalidConfig as e:
        raise PatternBuildError(e.report(), context={"issues": [i.model_dump() for i in e.issues]}) from e


def _layout(plan: TrialPlan) -> Iterator[Tuple[Trial, float, float]]:
    """Yield (trial, start_ms, end_ms) in plan order."""
    cursor = 0.0
    for trial in plan.trials:
        start = cursor
        if not trial.elements:
            yield trial, start, start
            cursor = start + plan.iti_ms
            continue

        onsets = [e.scheduled_onset_ms for e in trial.elements]
        if any(later < earlier for earlier, later in zip(onsets, onsets[1:])):
            raise PatternBuildError(
                f"Trial {trial.trial_index}: element onsets must be non-decreasing, got {onsets}",
                context={"trial_index": trial.trial_index},
            )

        end = start + max(e.scheduled_onset_ms + e.duration_ms for e in trial.elements)
        yield trial, start, end
        cursor = end + plan.refractory_ms + plan.iti_ms


def empty_element_table() -> pd.DataFrame:
    """Element table with the required columns and no rows."""
    return pd.DataFrame({col: pd.Series(dtype=_DTYPES[col]) for col in REQUIRED_COLUMNS})


def build_element_table(plan: Union[TrialPlan, Mapping[str, Any]]) -> pd.DataFrame:
    """Flatten a trial plan into an absolutely timed element table.

    Args:
        plan: TrialPlan or an equivalent mapping

    Returns:
        DataFrame with one row per element

    Raises:
        PatternBuildError: Invalid plan or unordered element onsets
    """
    plan = _as_plan(plan)

    rows: List[Dict[str, Any]] = []
    for trial, start, _ in _layout(plan):
        for element_index, element in enumerate(trial.elements):
            ttl_code = element.ttl_code
            if ttl_code is None and element_index == 0:
                ttl_code = trial.code
            rows.append(
                {
                    "trial_index": trial.trial_index,
                    "element_index": element_index,
                    "stimulus_ref": element.stimulus_ref,
                    "absolute_onset_ms": start + element.scheduled_onset_ms,
                    "duration_ms": element.duration_ms,
                    "label": trial.label,
                    "role": element.role,
                    "symbol": element.symbol,
                    "ttl_code": ttl_code,
                    "is_omission": element.is_omission,
                }
            )

    if not rows:
        logger.info("Trial plan produced an empty element table")
        return empty_element_table()

    table = pd.DataFrame(rows)
    columns = list(REQUIRED_COLUMNS)
    fills = {"role": "", "symbol": "", "ttl_code": 0, "is_omission": False}
    for col in OPTIONAL_COLUMNS:
        present = table[col].astype(bool) if col == "is_omission" else table[col].notna()
        if present.any():
            table[col] = table[col].where(table[col].notna(), fills[col])
            columns.append(col)

    table = table[columns].astype({col: _DTYPES[col] for col in columns})
    logger.debug(f"Built element table: {len(table)} elements over {plan.n_trials} trials")
    return table.reset_index(drop=True)


def compute_trial_windows(plan: Union[TrialPlan, Mapping[str, Any]]) -> pd.DataFrame:
    """Start/end time of every trial, including element-less ones.

    Returns:
        DataFrame with columns trial_index, label, start_ms, end_ms, n_elements
    """
    plan = _as_plan(plan)
    records = [
        {
            "trial_index": trial.trial_index,
            "label": trial.label,
            "start_ms": start,
            "end_ms": end,
            "n_elements": len(trial.elements),
        }
        for trial, start, end in _layout(plan)
    ]
    if not records:
        return pd.DataFrame(
            {
                "trial_index": pd.Series(dtype="int64"),
                "label": pd.Series(dtype="object"),
                "start_ms": pd.Series(dtype="float64"),
                "end_ms": pd.Series(dtype="float64"),
                "n_elements": pd.Series(dtype="int64"),
            }
        )
    return pd.DataFrame(records)


def validate_element_table(table: pd.DataFrame) -> List[str]:
    """Return a list of problems with an element table (empty if valid)."""
    problems = []
    missing = [col for col in REQUIRED_COLUMNS if col not in table.columns]
    if missing:
        problems.append(f"missing required column(s): {', '.join(missing)}")
        return problems

    if len(table) == 0:
        return problems

    onsets = table["absolute_onset_ms"].to_numpy(dtype=float)
    if np.any(onsets < 0):
        problems.append("absolute_onset_ms must be >= 0")
    if np.any(np.diff(onsets) < 0):
        problems.append("rows must be ordered by absolute_onset_ms")
    if np.any(table["duration_ms"].to_numpy(dtype=float) < 0):
        problems.append("duration_ms must be >= 0")
    if "ttl_code" in table.columns:
        codes = table["ttl_code"].to_numpy()
        if np.any((codes < 0) | (codes > 255)):
            problems.append("ttl_code must be in [0, 255]")
    return problems
