"""Abstract paradigm adapter.

An adapter turns a paradigm configuration plus a trial count into a
:class:`~maestro.paradigms.models.TrialPlan`. The flow is the same for
every paradigm and lives here:

1. validate the whole configuration, collecting every issue;
2. draw each categorical choice (token, pattern, foreperiod, outcome) with
   the configured selection mode from one dedicated RNG stream;
3. repair ``max_consecutive_<label>`` constraints;
4. let the subclass lay the choices out as trials.

Nothing is drawn before validation succeeds, and nothing is returned unless
the whole plan could be built.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import re
from typing import Any, ClassVar, Dict, List, Mapping, NamedTuple, Optional, Tuple, Type, Union

import numpy as np
from pydantic import ValidationError

from ..exceptions import InvalidConfig, InvalidProbabilities, InvalidSelectionMode, UnknownDistribution, ValidationIssue
from ..sampling import PROBABILITY_TOLERANCE, RNGStreamManager, SamplingContext, representative_value
from ..validation import issues_from_validation_error
from .models import ParadigmKind, SelectionMode, TrialPlan, Trial, ParadigmConfigBase
from .selection import enforce_max_consecutive, select_indices

__all__ = ["ParadigmAdapter", "Selection"]

logger = logging.getLogger(__name__)

# Probability entries: tokens[0].base_probability, outcomes[1].probability, foreperiod_probs[0]
_PROBABILITY_PATH = re.compile(r"prob[a-z_]*(\[\d+\])?$")


class Selection(NamedTuple):
    """One categorical choice made for every trial."""

    name: str
    labels: List[str]
    probabilities: List[float]
    probability_paths: List[str]
    sum_path: str


class ParadigmAdapter(ABC):
    """Base class for paradigm adapters."""

    kind: ClassVar[ParadigmKind]
    config_model: ClassVar[Type[ParadigmConfigBase]]
    supported_modes: ClassVar[Tuple[SelectionMode, ...]] = (SelectionMode.IID, SelectionMode.BALANCED_SHUFFLE)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def selections(self, config: Any) -> List[Selection]:
        """Categorical choices to draw, in draw order."""

    @abstractmethod
    def build_trials(self, config: Any, chosen: Dict[str, List[int]], n_trials: int) -> List[Trial]:
        """Lay out trials from the chosen category indices."""

    def check_config(self, config: Any) -> List[ValidationIssue]:
        """Paradigm-specific semantic checks beyond the model schema."""
        return []

    def describe(self, config: Any, chosen: Dict[str, List[int]]) -> Dict[str, Any]:
        """Paradigm-specific plan metadata."""
        return {}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, config: Union[Mapping[str, Any], ParadigmConfigBase]) -> Any:
        """Validate a configuration, reporting every problem at once.

        Returns:
            The validated, frozen configuration model

        Raises:
            InvalidSelectionMode: Mode unknown or unsupported by this paradigm
            InvalidProbabilities: A probability vector is malformed
            UnknownDistribution: A NumericField names an unsupported ``dist``
            InvalidConfig: Any other structural or value problem
        """
        if isinstance(config, self.config_model):
            model = config
        else:
            try:
                model = self.config_model.model_validate(config)
            except ValidationError as e:
                issues = issues_from_validation_error(e)
                if any(err["type"] == "unknown_distribution" for err in e.errors()):
                    raise UnknownDistribution(f"Invalid {self.kind.value} configuration: unknown distribution type", issues) from e
                raise self._error_class(issues)(f"Invalid {self.kind.value} configuration", issues) from e

        issues = self._common_issues(model) + self.check_config(model)
        if issues:
            raise self._error_class(issues)(f"Invalid {self.kind.value} configuration", issues)
        return model

    @staticmethod
    def _error_class(issues: List[ValidationIssue]) -> Type[InvalidConfig]:
        if any(issue.field_path == "selection.mode" for issue in issues):
            return InvalidSelectionMode
        if any(issue.error_type == "probability_sum" for issue in issues):
            return InvalidProbabilities
        if any(issue.error_type == "range_violation" and _PROBABILITY_PATH.search(issue.field_path) for issue in issues):
            return InvalidProbabilities
        return InvalidConfig

    def _common_issues(self, config: ParadigmConfigBase) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        mode = config.selection.mode

        if mode not in self.supported_modes:
            issues.append(
                ValidationIssue(
                    field_path="selection.mode",
                    error_type="invalid_value",
                    message=f"mode not supported by the {self.kind.value} paradigm",
                    value=mode.value,
                    expected=", ".join(m.value for m in self.supported_modes),
                )
            )
        elif mode is SelectionMode.CSV_PRESET and not config.selection.sequence:
            issues.append(
                ValidationIssue(
                    field_path="selection.sequence",
                    error_type="required_field",
                    message="csv_preset requires a non-empty sequence",
                )
            )

        all_labels = set()
        for sel in self.selections(config):
            issues.extend(_probability_issues(sel))
            seen = set()
            for label in sel.labels:
                if label in seen:
                    issues.append(
                        ValidationIssue(
                            field_path=sel.sum_path,
                            error_type="constraint_violation",
                            message="labels must be unique",
                            value=label,
                        )
                    )
                seen.add(label)
            all_labels |= seen

        for label in config.constraint_limits():
            if label not in all_labels:
                issues.append(
                    ValidationIssue(
                        field_path=f"constraints.max_consecutive_{label}",
                        error_type="invalid_value",
                        message="constraint refers to an unknown label",
                        value=label,
                        expected=", ".join(sorted(all_labels)),
                    )
                )

        issues.extend(duration_issues(config.iti, "iti", allow_zero=True))
        return issues

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_trial_plan(
        self,
        config: Union[Mapping[str, Any], ParadigmConfigBase],
        n_trials: int,
        context: Optional[SamplingContext] = None,
    ) -> TrialPlan:
        """Validate ``config`` and generate a plan of ``n_trials`` trials.

        Args:
            config: Raw mapping or validated configuration model
            n_trials: Number of trials (>= 0)
            context: Sampling context; a fresh one is created when omitted

        Raises:
            InvalidConfig: Invalid configuration or trial count
        """
        config = self.validate(config)
        if isinstance(n_trials, bool) or not isinstance(n_trials, (int, np.integer)) or n_trials < 0:
            raise InvalidConfig(
                "n_trials must be a non-negative integer",
                [ValidationIssue(field_path="n_trials", error_type="range_violation", message="must be an integer >= 0", value=n_trials, expected=">= 0")],
            )
        n_trials = int(n_trials)

        if context is None:
            context = SamplingContext(master_seed=config.selection.seed)
        rng = self._selection_stream(config, context)

        limits = config.constraint_limits()
        chosen: Dict[str, List[int]] = {}
        unrepaired: Dict[str, int] = {}
        for sel in self.selections(config):
            indices = select_indices(config.selection.mode, sel.probabilities, n_trials, rng, sel.labels, config.selection.sequence)
            for label, limit in limits.items():
                if label in sel.labels:
                    indices, remaining = enforce_max_consecutive(indices, sel.labels, label, limit)
                    if remaining:
                        unrepaired[label] = remaining
            chosen[sel.name] = indices

        trials = self.build_trials(config, chosen, n_trials)

        metadata: Dict[str, Any] = {
            "paradigm": self.kind.value,
            "selection_mode": config.selection.mode.value,
            "selection_seed": config.selection.seed,
            "master_seed": context.master_seed,
        }
        if limits:
            metadata["constraints"] = dict(config.constraints)
            metadata["constraint_violations"] = unrepaired
        metadata.update(self.describe(config, chosen))

        plan = TrialPlan(
            paradigm=self.kind,
            n_trials=n_trials,
            iti_ms=representative_value(config.iti),
            refractory_ms=config.refractory_ms,
            trials=trials,
            metadata=metadata,
        )
        logger.info(f"Generated {self.kind.value} plan: {n_trials} trials ({config.selection.mode.value})")
        return plan

    def _selection_stream(self, config: ParadigmConfigBase, context: SamplingContext) -> np.random.Generator:
        name = f"selection.{self.kind.value}"
        if config.selection.seed is not None:
            return RNGStreamManager(config.selection.seed).get_stream(name)
        return context.get_stream(name)


# ============================================================================
# Shared Checks
# ============================================================================


def _probability_issues(sel: Selection) -> List[ValidationIssue]:
    issues = []
    for path, p in zip(sel.probability_paths, sel.probabilities):
        if not 0 <= p <= 1:
            issues.append(
                ValidationIssue(field_path=path, error_type="range_violation", message="probability outside [0, 1]", value=p, expected="0 <= p <= 1")
            )
    total = sum(sel.probabilities)
    if abs(total - 1.0) > PROBABILITY_TOLERANCE:
        issues.append(
            ValidationIssue(
                field_path=sel.sum_path,
                error_type="probability_sum",
                message="probabilities must sum to 1",
                value=round(total, 6),
                expected="1 +- 0.001",
            )
        )
    return issues


def duration_issues(field: Any, path: str, allow_zero: bool = False) -> List[ValidationIssue]:
    """Check that a duration-like NumericField has a usable representative value."""
    value = representative_value(field)
    if value > 0 or (allow_zero and value == 0):
        return []
    return [
        ValidationIssue(
            field_path=path,
            error_type="range_violation",
            message="duration must be " + (">= 0" if allow_zero else "> 0"),
            value=value,
            expected=">= 0" if allow_zero else "> 0",
        )
    ]
