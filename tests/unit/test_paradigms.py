"""Unit tests for paradigm adapters.

Covers configuration validation (collect-all), trial plan generation for
oddball, local-global and foreperiod paradigms, selection seeding and
constraint handling.
"""

from collections import Counter

import pytest

from maestro.exceptions import InvalidConfig, InvalidProbabilities, InvalidSelectionMode, UnknownDistribution
from maestro.paradigms import (
    ADAPTERS,
    OMISSION_REF,
    ForeperiodAdapter,
    LocalGlobalAdapter,
    OddballAdapter,
    ParadigmKind,
    TrialPlan,
    count_violations,
    foreperiod_label,
    generate_trial_plan,
    get_adapter,
    validate_paradigm_config,
)
from maestro.sampling import SamplingContext

pytestmark = pytest.mark.unit


def _with(config, **overrides):
    """Copy of a config with top-level keys replaced."""
    return {**config, **overrides}


class TestRegistry:
    """Test adapter dispatch."""

    def test_Should_RegisterAllParadigms_When_Imported(self):
        assert set(ADAPTERS) == set(ParadigmKind)

    def test_Should_ReturnAdapter_When_KindKnown(self):
        assert isinstance(get_adapter("oddball"), OddballAdapter)
        assert isinstance(get_adapter(ParadigmKind.LOCAL_GLOBAL), LocalGlobalAdapter)

    def test_Should_RaiseInvalidConfig_When_KindUnknown(self):
        with pytest.raises(InvalidConfig) as exc_info:
            get_adapter("go_nogo")

        assert exc_info.value.issues[0].field_path == "paradigm"

    def test_Should_RaiseInvalidConfig_When_ParadigmKeyMissing(self, oddball_config):
        config = dict(oddball_config)
        del config["paradigm"]

        with pytest.raises(InvalidConfig):
            generate_trial_plan(config, 10)


class TestOddballValidation:
    """Validation reports every problem in one pass."""

    def test_Should_ReturnFrozenModel_When_ConfigValid(self, oddball_config):
        config = validate_paradigm_config(oddball_config)

        assert config.paradigm == "oddball"
        assert [t.label for t in config.tokens] == ["standard", "deviant"]

    def test_Should_RaiseInvalidProbabilities_When_SumIsNotOne(self, oddball_config):
        tokens = [dict(t) for t in oddball_config["tokens"]]
        tokens[1]["base_probability"] = 0.3

        with pytest.raises(InvalidProbabilities) as exc_info:
            validate_paradigm_config(_with(oddball_config, tokens=tokens))

        assert any(issue.field_path == "tokens" and issue.error_type == "probability_sum" for issue in exc_info.value.issues)

    def test_Should_RaiseInvalidProbabilities_When_EntryOutsideUnitRange(self, oddball_config):
        tokens = [dict(t) for t in oddball_config["tokens"]]
        tokens[0]["base_probability"] = 1.2
        tokens[1]["base_probability"] = -0.2

        with pytest.raises(InvalidProbabilities) as exc_info:
            validate_paradigm_config(_with(oddball_config, tokens=tokens))

        paths = {issue.field_path for issue in exc_info.value.issues if issue.error_type == "range_violation"}
        assert paths == {"tokens[0].base_probability", "tokens[1].base_probability"}

    def test_Should_RaiseInvalidProbabilities_When_ForeperiodProbNegative(self, foreperiod_config):
        with pytest.raises(InvalidProbabilities):
            validate_paradigm_config(_with(foreperiod_config, foreperiod_probs=[1.5, -0.5]))

    def test_Should_RaiseUnknownDistribution_When_ItiDistUnsupported(self, oddball_config):
        config = _with(oddball_config, iti={"dist": "gamma", "shape": 2, "scale": 100, "scope": "per_trial"})

        with pytest.raises(UnknownDistribution) as exc_info:
            OddballAdapter().validate(config)

        assert isinstance(exc_info.value, InvalidConfig)
        assert any(issue.field_path.startswith("iti") for issue in exc_info.value.issues)

    def test_Should_RaiseInvalidSelectionMode_When_ModeUnknown(self, oddball_config):
        with pytest.raises(InvalidSelectionMode):
            validate_paradigm_config(_with(oddball_config, selection={"mode": "round_robin"}))

    def test_Should_CollectAllIssues_When_SeveralFieldsInvalid(self, oddball_config):
        """Bad iti bounds and a missing stimulus_ref are both reported."""
        tokens = [dict(t) for t in oddball_config["tokens"]]
        del tokens[0]["stimulus_ref"]
        config = _with(oddball_config, tokens=tokens, iti={"dist": "uniform", "min": 700, "max": 500, "scope": "per_trial"})

        with pytest.raises(InvalidConfig) as exc_info:
            validate_paradigm_config(config)

        paths = [issue.field_path for issue in exc_info.value.issues]
        assert "tokens[0].stimulus_ref" in paths
        assert any(path.startswith("iti") for path in paths)
        assert "Found" in exc_info.value.report()

    def test_Should_RejectConstraint_When_LabelUnknown(self, oddball_config):
        with pytest.raises(InvalidConfig) as exc_info:
            validate_paradigm_config(_with(oddball_config, constraints={"max_consecutive_target": 1}))

        assert exc_info.value.issues[0].field_path == "constraints.max_consecutive_target"

    def test_Should_RejectConstraint_When_KeyMalformed(self, oddball_config):
        with pytest.raises(InvalidConfig):
            validate_paradigm_config(_with(oddball_config, constraints={"min_gap": 2}))

    def test_Should_RejectConfig_When_UnknownKeyPresent(self, oddball_config):
        with pytest.raises(InvalidConfig):
            validate_paradigm_config(_with(oddball_config, jitter=5))

    def test_Should_RejectDuplicateLabels_When_TokensShareLabel(self, oddball_config):
        tokens = [dict(t) for t in oddball_config["tokens"]]
        tokens[1]["label"] = "standard"

        with pytest.raises(InvalidConfig):
            validate_paradigm_config(_with(oddball_config, tokens=tokens))


class TestOddballPlan:
    """Trial plan generation for oddball sequences."""

    def test_Should_ProduceExactCounts_When_BalancedShuffle(self, oddball_config, sampling_context):
        plan = generate_trial_plan(oddball_config, 100, sampling_context)

        assert isinstance(plan, TrialPlan)
        assert plan.n_trials == 100
        assert Counter(t.label for t in plan.trials) == {"standard": 80, "deviant": 20}
        assert plan.metadata["token_counts"] == {"standard": 80, "deviant": 20}

    def test_Should_HaveOneElementPerTrial_When_Oddball(self, oddball_config, sampling_context):
        plan = generate_trial_plan(oddball_config, 10, sampling_context)

        for i, trial in enumerate(plan.trials):
            assert trial.trial_index == i
            assert len(trial.elements) == 1
            assert trial.elements[0].scheduled_onset_ms == 0.0
            assert trial.code == (1 if trial.label == "standard" else 2)

    def test_Should_ReproducePlan_When_SameMasterSeed(self, oddball_config):
        a = generate_trial_plan(oddball_config, 50, SamplingContext(master_seed=7))
        b = generate_trial_plan(oddball_config, 50, SamplingContext(master_seed=7))

        assert [t.label for t in a.trials] == [t.label for t in b.trials]

    def test_Should_UseSelectionSeed_When_ContextSeedsDiffer(self, oddball_config):
        """A dedicated selection seed fixes the order regardless of the master seed."""
        config = _with(oddball_config, selection={"mode": "balanced_shuffle", "seed": 42})

        a = generate_trial_plan(config, 50, SamplingContext(master_seed=1))
        b = generate_trial_plan(config, 50, SamplingContext(master_seed=2))

        assert [t.label for t in a.trials] == [t.label for t in b.trials]
        assert a.metadata["selection_seed"] == 42

    def test_Should_UseRepresentativeIti_When_ItiIsDistribution(self, oddball_config, sampling_context):
        config = _with(oddball_config, iti={"dist": "uniform", "min": 500, "max": 700, "scope": "per_trial"})

        plan = generate_trial_plan(config, 5, sampling_context)

        assert plan.iti_ms == 600.0

    def test_Should_ReturnEmptyPlan_When_ZeroTrials(self, oddball_config, sampling_context):
        plan = generate_trial_plan(oddball_config, 0, sampling_context)

        assert plan.n_trials == 0
        assert plan.trials == []

    @pytest.mark.parametrize("n_trials", [-1, 2.5, True])
    def test_Should_RaiseInvalidConfig_When_TrialCountInvalid(self, oddball_config, n_trials):
        with pytest.raises(InvalidConfig):
            generate_trial_plan(oddball_config, n_trials)

    def test_Should_ReplayPreset_When_CsvPresetMode(self, oddball_config, sampling_context):
        config = _with(oddball_config, selection={"mode": "csv_preset", "sequence": ["standard", "standard", "deviant"]})

        plan = generate_trial_plan(config, 6, sampling_context)

        assert [t.label for t in plan.trials] == ["standard", "standard", "deviant"] * 2

    def test_Should_RequireSequence_When_CsvPresetMode(self, oddball_config):
        with pytest.raises(InvalidConfig) as exc_info:
            validate_paradigm_config(_with(oddball_config, selection={"mode": "csv_preset"}))

        assert exc_info.value.issues[0].field_path == "selection.sequence"

    def test_Should_RecordConstraintOutcome_When_ConstraintGiven(self, oddball_config, sampling_context):
        config = _with(oddball_config, constraints={"max_consecutive_deviant": 1})

        plan = generate_trial_plan(config, 100, sampling_context)

        labels = ["standard", "deviant"]
        indices = [labels.index(t.label) for t in plan.trials]
        remaining = count_violations(indices, labels, "deviant", 1)
        assert plan.metadata["constraints"] == {"max_consecutive_deviant": 1}
        assert plan.metadata["constraint_violations"].get("deviant", 0) == remaining
        assert Counter(t.label for t in plan.trials) == {"standard": 80, "deviant": 20}


class TestLocalGlobalPlan:
    """Pattern layout for local-global sequences."""

    def test_Should_ExpandSymbols_When_PatternSelected(self, local_global_config, sampling_context):
        plan = generate_trial_plan(local_global_config, 8, sampling_context)

        for trial in plan.trials:
            symbols = "".join(e.symbol for e in trial.elements)
            assert symbols == ("AAAA" if trial.label == "xx" else "AAAB")
            assert [e.scheduled_onset_ms for e in trial.elements] == [0.0, 100.0, 200.0, 300.0]

    def test_Should_UseTokenRefsAndCodes_When_BuildingElements(self, local_global_config, sampling_context):
        plan = generate_trial_plan(local_global_config, 8, sampling_context)

        for trial in plan.trials:
            for element in trial.elements:
                expected = ("tone_1k", 11) if element.symbol == "A" else ("tone_2k", 12)
                assert (element.stimulus_ref, element.ttl_code) == expected
                assert element.duration_ms == 50.0

    def test_Should_CountPatterns_When_Balanced(self, local_global_config, sampling_context):
        plan = generate_trial_plan(local_global_config, 8, sampling_context)

        assert plan.metadata["pattern_counts"] == {"xx": 6, "xY": 2}
        assert plan.metadata["ioi_ms"] == 100.0

    def test_Should_RejectPattern_When_SymbolsInvalid(self, local_global_config):
        patterns = [dict(p) for p in local_global_config["patterns"]]
        patterns[1]["sequence"] = "AAAC"

        with pytest.raises(InvalidConfig):
            validate_paradigm_config(_with(local_global_config, patterns=patterns))

    def test_Should_RejectSelection_When_CsvPresetUnsupported(self, local_global_config):
        with pytest.raises(InvalidSelectionMode):
            validate_paradigm_config(_with(local_global_config, selection={"mode": "csv_preset", "sequence": [0]}))


class TestForeperiodPlan:
    """Cue-delay-outcome layout for foreperiod sequences."""

    def test_Should_PlaceOutcomeAtForeperiod_When_Built(self, foreperiod_config, sampling_context):
        plan = generate_trial_plan(foreperiod_config, 8, sampling_context)

        for trial in plan.trials:
            cue, outcome = trial.elements
            assert (cue.role, cue.scheduled_onset_ms, cue.ttl_code) == ("cue", 0.0, 31)
            assert outcome.role == "outcome"
            assert outcome.scheduled_onset_ms == trial.foreperiod_ms
            assert trial.label == foreperiod_label(trial.foreperiod_ms)

    def test_Should_MarkOmission_When_OmittedOutcomeSelected(self, foreperiod_config, sampling_context):
        plan = generate_trial_plan(foreperiod_config, 8, sampling_context)

        omitted = [t.elements[1] for t in plan.trials if t.outcome_label == "omit"]
        assert len(omitted) == 4
        for element in omitted:
            assert element.is_omission
            assert element.stimulus_ref == OMISSION_REF
            assert element.duration_ms == 0.0
            assert element.ttl_code == 33

    def test_Should_BalanceBothSelections_When_BalancedShuffle(self, foreperiod_config, sampling_context):
        plan = generate_trial_plan(foreperiod_config, 8, sampling_context)

        assert Counter(t.foreperiod_ms for t in plan.trials) == {250.0: 4, 500.0: 4}
        assert plan.metadata["outcome_counts"] == {"tone": 4, "omit": 4}

    def test_Should_PlaySingleOutcome_When_OutcomeGiven(self, foreperiod_config, sampling_context):
        config = dict(foreperiod_config)
        del config["outcomes"]
        config["outcome"] = {"stimulus_ref": "noise_burst", "duration_ms": 100}

        plan = ForeperiodAdapter().generate_trial_plan(config, 4, sampling_context)

        assert all(t.elements[1].stimulus_ref == "noise_burst" for t in plan.trials)
        assert "outcome_counts" not in plan.metadata

    def test_Should_RejectConfig_When_ForeperiodProbsLengthDiffers(self, foreperiod_config):
        with pytest.raises(InvalidConfig):
            validate_paradigm_config(_with(foreperiod_config, foreperiod_probs=[1.0]))

    def test_Should_RejectOutcome_When_RefMissingAndNotOmission(self, foreperiod_config):
        outcomes = [dict(o) for o in foreperiod_config["outcomes"]]
        del outcomes[0]["stimulus_ref"]

        with pytest.raises(InvalidConfig):
            validate_paradigm_config(_with(foreperiod_config, outcomes=outcomes))

    def test_Should_DropTrailingZeros_When_FormattingLabel(self):
        assert foreperiod_label(500.0) == "FP_500ms"
        assert foreperiod_label(262.5) == "FP_262.5ms"
