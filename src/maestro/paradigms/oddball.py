"""Oddball paradigm: one token per trial, rare deviants among standards.

Example:
    >>> adapter = OddballAdapter()
    >>> plan = adapter.generate_trial_plan(
    ...     {
    ...         "tokens": [
    ...             {"label": "standard", "stimulus_ref": "tone_1k", "base_probability": 0.8, "code": 1},
    ...             {"label": "deviant", "stimulus_ref": "tone_2k", "base_probability": 0.2, "code": 2},
    ...         ],
    ...         "selection": {"mode": "balanced_shuffle", "seed": 42},
    ...         "iti": 500,
    ...     },
    ...     n_trials=100,
    ... )
    >>> plan.metadata["token_counts"]
    {'standard': 80, 'deviant': 20}
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List

from ..exceptions import ValidationIssue
from ..sampling import representative_value
from .base import ParadigmAdapter, Selection, duration_issues
from .models import Element, OddballConfig, ParadigmKind, SelectionMode, Trial

__all__ = ["OddballAdapter"]


class OddballAdapter(ParadigmAdapter):
    kind = ParadigmKind.ODDBALL
    config_model = OddballConfig
    supported_modes = (SelectionMode.IID, SelectionMode.BALANCED_SHUFFLE, SelectionMode.CSV_PRESET)

    def selections(self, config: OddballConfig) -> List[Selection]:
        return [
            Selection(
                name="tokens",
                labels=[t.label for t in config.tokens],
                probabilities=[t.base_probability for t in config.tokens],
                probability_paths=[f"tokens[{i}].base_probability" for i in range(len(config.tokens))],
                sum_path="tokens",
            )
        ]

    def check_config(self, config: OddballConfig) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for i, token in enumerate(config.tokens):
            issues.extend(duration_issues(token.duration_ms, f"tokens[{i}].duration_ms"))
        return issues

    def build_trials(self, config: OddballConfig, chosen: Dict[str, List[int]], n_trials: int) -> List[Trial]:
        durations = [representative_value(t.duration_ms) for t in config.tokens]
        trials = []
        for trial_index, token_index in enumerate(chosen["tokens"]):
            token = config.tokens[token_index]
            element = Element(
                stimulus_ref=token.stimulus_ref,
                scheduled_onset_ms=0.0,
                duration_ms=durations[token_index],
            )
            trials.append(Trial(trial_index=trial_index, label=token.label, code=token.code, elements=[element]))
        return trials

    def describe(self, config: OddballConfig, chosen: Dict[str, List[int]]) -> Dict[str, Any]:
        counts = Counter(chosen["tokens"])
        return {
            "n_tokens": len(config.tokens),
            "token_counts": {t.label: counts.get(i, 0) for i, t in enumerate(config.tokens)},
        }
