"""Local-global paradigm: short A/B patterns (e.g. "AAAB") per trial.

Each symbol becomes one element, spaced by the inter-onset interval (IOI)
and tagged with its ``symbol``. Symbol-level TTL codes come from the
token definitions; the pattern code marks the trial.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List

from ..exceptions import ValidationIssue
from ..sampling import representative_value
from .base import ParadigmAdapter, Selection, duration_issues
from .models import Element, LocalGlobalConfig, ParadigmKind, Trial

__all__ = ["LocalGlobalAdapter"]


class LocalGlobalAdapter(ParadigmAdapter):
    kind = ParadigmKind.LOCAL_GLOBAL
    config_model = LocalGlobalConfig

    def selections(self, config: LocalGlobalConfig) -> List[Selection]:
        return [
            Selection(
                name="patterns",
                labels=[p.label for p in config.patterns],
                probabilities=[p.base_probability for p in config.patterns],
                probability_paths=[f"patterns[{i}].base_probability" for i in range(len(config.patterns))],
                sum_path="patterns",
            )
        ]

    def check_config(self, config: LocalGlobalConfig) -> List[ValidationIssue]:
        issues = duration_issues(config.token_a.duration_ms, "token_a.duration_ms")
        issues += duration_issues(config.token_b.duration_ms, "token_b.duration_ms")
        issues += duration_issues(config.ioi, "ioi")
        return issues

    def build_trials(self, config: LocalGlobalConfig, chosen: Dict[str, List[int]], n_trials: int) -> List[Trial]:
        ioi_ms = representative_value(config.ioi)
        tokens = {"A": config.token_a, "B": config.token_b}
        durations = {symbol: representative_value(token.duration_ms) for symbol, token in tokens.items()}

        trials = []
        for trial_index, pattern_index in enumerate(chosen["patterns"]):
            pattern = config.patterns[pattern_index]
            elements = [
                Element(
                    stimulus_ref=tokens[symbol].stimulus_ref,
                    scheduled_onset_ms=position * ioi_ms,
                    duration_ms=durations[symbol],
                    symbol=symbol,
                    ttl_code=tokens[symbol].code,
                )
                for position, symbol in enumerate(pattern.sequence)
            ]
            trials.append(Trial(trial_index=trial_index, label=pattern.label, code=pattern.code, elements=elements))
        return trials

    def describe(self, config: LocalGlobalConfig, chosen: Dict[str, List[int]]) -> Dict[str, Any]:
        counts = Counter(chosen["patterns"])
        return {
            "n_patterns": len(config.patterns),
            "ioi_ms": representative_value(config.ioi),
            "pattern_counts": {p.label: counts.get(i, 0) for i, p in enumerate(config.patterns)},
        }
