"""Trial-type selection shared by all paradigm adapters.

Modes:

- ``iid``: independent inverse-CDF draw per trial.
- ``balanced_shuffle``: exact counts ``round(p_i * n)`` (remainder added to
  the largest count), uniformly permuted.
- ``csv_preset``: replay a given index sequence, truncated or cyclically
  repeated to ``n``.

Constraint repair (:func:`enforce_max_consecutive`) is a greedy single pass:
when a run of a label exceeds its limit, the offending position is swapped
with the next later position holding a different label. It does not
minimize disturbance and can leave violations when the constrained label
clusters at the end of the sequence; those are counted and reported.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..exceptions import InvalidConfig, InvalidSelectionMode, ValidationIssue
from ..utils import round_half_up
from .models import SelectionMode

__all__ = [
    "select_iid",
    "balanced_counts",
    "select_balanced_shuffle",
    "select_preset",
    "select_indices",
    "enforce_max_consecutive",
    "count_violations",
    "max_run_length",
]

logger = logging.getLogger(__name__)


# ============================================================================
# Selection Modes
# ============================================================================


def select_iid(probabilities: Sequence[float], n_trials: int, rng: np.random.Generator) -> List[int]:
    """Draw ``n_trials`` category indices independently.

    Each trial draws ``r ~ U(0, 1)`` and takes the first category whose
    cumulative probability is >= r.
    """
    if n_trials == 0:
        return []
    probs = np.asarray(probabilities, dtype=float)
    cumulative = np.cumsum(probs / probs.sum())
    draws = rng.random(n_trials)
    indices = np.searchsorted(cumulative, draws, side="left")
    return np.minimum(indices, len(probs) - 1).astype(int).tolist()


def balanced_counts(probabilities: Sequence[float], n_trials: int) -> List[int]:
    """Exact per-category counts summing to ``n_trials``.

    ``count_i = round_half_up(p_i * n)``; a non-zero remainder is added to
    the first largest count.
    """
    counts = [round_half_up(p * n_trials) for p in probabilities]
    remainder = n_trials - sum(counts)
    if remainder != 0 and counts:
        largest = int(np.argmax(counts))
        counts[largest] += remainder
    return counts


def select_balanced_shuffle(probabilities: Sequence[float], n_trials: int, rng: np.random.Generator) -> List[int]:
    """Exact-count sequence in uniformly random order."""
    counts = balanced_counts(probabilities, n_trials)
    ordered = np.repeat(np.arange(len(counts)), counts)
    return rng.permutation(ordered).astype(int).tolist()


def select_preset(sequence: Sequence[Union[int, str]], labels: Sequence[str], n_trials: int) -> List[int]:
    """Replay a preset sequence of 0-based indices or labels.

    Raises:
        InvalidConfig: Empty sequence, unknown label or index out of range
    """
    if not sequence:
        raise InvalidConfig(
            "csv_preset requires a non-empty selection.sequence",
            [ValidationIssue(field_path="selection.sequence", error_type="required_field", message="sequence is empty")],
        )

    issues = []
    indices = []
    for i, item in enumerate(sequence):
        if isinstance(item, str):
            if item not in labels:
                issues.append(
                    ValidationIssue(
                        field_path=f"selection.sequence[{i}]",
                        error_type="invalid_value",
                        message="unknown token label",
                        value=item,
                        expected=", ".join(labels),
                    )
                )
                continue
            indices.append(list(labels).index(item))
        else:
            if not 0 <= item < len(labels):
                issues.append(
                    ValidationIssue(
                        field_path=f"selection.sequence[{i}]",
                        error_type="range_violation",
                        message="token index out of range",
                        value=item,
                        expected=f"0..{len(labels) - 1}",
                    )
                )
                continue
            indices.append(int(item))
    if issues:
        raise InvalidConfig("Invalid csv_preset sequence", issues)

    if len(indices) > n_trials:
        logger.warning(f"Preset sequence has {len(indices)} entries; truncating to {n_trials} trials")
    elif len(indices) < n_trials:
        logger.warning(f"Preset sequence has {len(indices)} entries; repeating cyclically to {n_trials} trials")

    return [indices[i % len(indices)] for i in range(n_trials)]


def select_indices(
    mode: SelectionMode,
    probabilities: Sequence[float],
    n_trials: int,
    rng: np.random.Generator,
    labels: Optional[Sequence[str]] = None,
    sequence: Optional[Sequence[Union[int, str]]] = None,
) -> List[int]:
    """Dispatch to the selection mode.

    Raises:
        InvalidSelectionMode: Unknown mode
    """
    try:
        mode = SelectionMode(mode)
    except ValueError:
        raise InvalidSelectionMode(f"Unknown selection mode: {mode!r}")

    if mode is SelectionMode.IID:
        return select_iid(probabilities, n_trials, rng)
    if mode is SelectionMode.BALANCED_SHUFFLE:
        return select_balanced_shuffle(probabilities, n_trials, rng)
    return select_preset(sequence or [], labels or [], n_trials)


# ============================================================================
# Constraint Repair
# ============================================================================


def max_run_length(indices: Sequence[int], labels: Sequence[str], label: str) -> int:
    """Longest run of consecutive positions labelled ``label``."""
    longest = run = 0
    for idx in indices:
        run = run + 1 if labels[idx] == label else 0
        longest = max(longest, run)
    return longest


def count_violations(indices: Sequence[int], labels: Sequence[str], label: str, max_run: int) -> int:
    """Number of positions that extend a run of ``label`` beyond ``max_run``."""
    violations = run = 0
    for idx in indices:
        run = run + 1 if labels[idx] == label else 0
        if run > max_run:
            violations += 1
    return violations


def enforce_max_consecutive(
    indices: Sequence[int], labels: Sequence[str], label: str, max_run: int
) -> Tuple[List[int], int]:
    """Greedy forward-swap repair of runs longer than ``max_run``.

    Args:
        indices: Category index per trial
        labels: Label of each category
        label: Constrained label
        max_run: Maximum allowed consecutive occurrences

    Returns:
        (repaired indices, number of positions still violating)
    """
    seq = list(indices)
    n = len(seq)
    run = 0

    for i in range(n):
        if labels[seq[i]] != label:
            run = 0
            continue

        run += 1
        if run <= max_run:
            continue

        swap_with = next((j for j in range(i + 1, n) if labels[seq[j]] != label), None)
        if swap_with is None:
            # Nothing left to swap in; the tail stays in violation
            continue
        seq[i], seq[swap_with] = seq[swap_with], seq[i]
        run = 0

    remaining = count_violations(seq, labels, label, max_run)
    if remaining:
        logger.warning(f"Could not fully enforce max_consecutive_{label}={max_run}: " f"{remaining} position(s) still in violation")
    return seq, remaining
