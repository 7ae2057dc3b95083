"""Foreperiod paradigm: cue, variable delay, outcome.

Every trial has exactly two elements: the cue at onset 0 (``role="cue"``)
and the outcome at the selected foreperiod (``role="outcome"``). Outcomes
flagged ``is_omission`` are withheld: they keep their place in the table
with zero duration and the placeholder reference ``"omission"`` so the
compiler can still mark the expected time on the TTL line.

Foreperiods and outcomes are drawn independently with the same selection
mode; foreperiods first.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List

from ..exceptions import ValidationIssue
from ..sampling import representative_value
from .base import ParadigmAdapter, Selection, duration_issues
from .models import OMISSION_REF, Element, ForeperiodConfig, ForeperiodOutcome, ParadigmKind, Trial

__all__ = ["ForeperiodAdapter", "foreperiod_label"]


def foreperiod_label(foreperiod_ms: float) -> str:
    """Trial label for a foreperiod, e.g. ``FP_500ms``."""
    return f"FP_{foreperiod_ms:g}ms"


class ForeperiodAdapter(ParadigmAdapter):
    kind = ParadigmKind.FOREPERIOD
    config_model = ForeperiodConfig

    def selections(self, config: ForeperiodConfig) -> List[Selection]:
        selections = [
            Selection(
                name="foreperiods",
                labels=[foreperiod_label(fp) for fp in config.foreperiods],
                probabilities=list(config.foreperiod_probs),
                probability_paths=[f"foreperiod_probs[{i}]" for i in range(len(config.foreperiod_probs))],
                sum_path="foreperiod_probs",
            )
        ]
        # A single outcome is played on every trial and needs no draw
        if config.outcomes is not None:
            selections.append(
                Selection(
                    name="outcomes",
                    labels=[o.display_label(i) for i, o in enumerate(config.outcomes)],
                    probabilities=[o.probability for o in config.outcomes],
                    probability_paths=[f"outcomes[{i}].probability" for i in range(len(config.outcomes))],
                    sum_path="outcomes",
                )
            )
        return selections

    def check_config(self, config: ForeperiodConfig) -> List[ValidationIssue]:
        issues = duration_issues(config.cue.duration_ms, "cue.duration_ms")
        prefix = "outcome" if config.outcomes is None else "outcomes"
        for i, outcome in enumerate(config.outcome_list()):
            if not outcome.is_omission:
                path = f"{prefix}.duration_ms" if config.outcomes is None else f"{prefix}[{i}].duration_ms"
                issues.extend(duration_issues(outcome.duration_ms, path))
        return issues

    def build_trials(self, config: ForeperiodConfig, chosen: Dict[str, List[int]], n_trials: int) -> List[Trial]:
        outcomes = config.outcome_list()
        outcome_indices = chosen.get("outcomes", [0] * n_trials)
        cue_duration = representative_value(config.cue.duration_ms)

        trials = []
        for trial_index, (fp_index, outcome_index) in enumerate(zip(chosen["foreperiods"], outcome_indices)):
            foreperiod_ms = config.foreperiods[fp_index]
            outcome = outcomes[outcome_index]
            cue = Element(
                stimulus_ref=config.cue.stimulus_ref,
                scheduled_onset_ms=0.0,
                duration_ms=cue_duration,
                role="cue",
                ttl_code=config.cue.code,
            )
            trials.append(
                Trial(
                    trial_index=trial_index,
                    label=foreperiod_label(foreperiod_ms),
                    elements=[cue, _outcome_element(outcome, foreperiod_ms)],
                    foreperiod_ms=foreperiod_ms,
                    outcome_label=outcome.display_label(outcome_index),
                )
            )
        return trials

    def describe(self, config: ForeperiodConfig, chosen: Dict[str, List[int]]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "n_foreperiods": len(config.foreperiods),
            "foreperiods_ms": list(config.foreperiods),
            "n_outcomes": len(config.outcome_list()),
        }
        if "outcomes" in chosen:
            counts = Counter(chosen["outcomes"])
            metadata["outcome_counts"] = {o.display_label(i): counts.get(i, 0) for i, o in enumerate(config.outcomes)}
        return metadata


def _outcome_element(outcome: ForeperiodOutcome, foreperiod_ms: float) -> Element:
    if outcome.is_omission:
        return Element(
            stimulus_ref=OMISSION_REF,
            scheduled_onset_ms=foreperiod_ms,
            duration_ms=0.0,
            role="outcome",
            ttl_code=outcome.code,
            is_omission=True,
        )
    return Element(
        stimulus_ref=outcome.stimulus_ref,
        scheduled_onset_ms=foreperiod_ms,
        duration_ms=representative_value(outcome.duration_ms),
        role="outcome",
        ttl_code=outcome.code,
    )
