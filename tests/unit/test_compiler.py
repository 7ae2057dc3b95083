"""Unit tests for sequence compilation."""

import numpy as np
import pandas as pd
import pytest

from maestro.compiler import (
    EVENT_COLUMNS,
    MIN_BUFFER_MS,
    TRIAL_TABLE_COLUMNS,
    TTL_PULSE_SAMPLES,
    build_events,
    build_trial_table,
    compile_sequence,
    resolve_stimuli,
)
from maestro.exceptions import CompilationError, GeneratorError, UnknownStimulus
from maestro.paradigms import generate_trial_plan
from maestro.pattern import build_element_table, empty_element_table
from maestro.sampling import SamplingContext

pytestmark = pytest.mark.unit

FS_HZ = 16000.0


def _table(rows):
    """Element table from (trial, element, ref, onset_ms, duration_ms, ttl_code) tuples."""
    return pd.DataFrame(
        [
            {
                "trial_index": t,
                "element_index": e,
                "stimulus_ref": ref,
                "absolute_onset_ms": onset,
                "duration_ms": duration,
                "label": f"trial_{t}",
                "ttl_code": code,
            }
            for t, e, ref, onset, duration, code in rows
        ]
    )


class TestResolveStimuli:
    def test_Should_ListAllMissingRefs_When_LibraryIncomplete(self, stimulus_library):
        with pytest.raises(UnknownStimulus) as exc_info:
            resolve_stimuli(["tone_1k", "zeta", "alpha", "zeta"], stimulus_library)

        assert exc_info.value.missing == ["alpha", "zeta"]

    def test_Should_RaiseCompilationError_When_DefinitionInvalid(self):
        with pytest.raises(CompilationError):
            resolve_stimuli(["bad"], {"bad": {"type": "fm.sweep"}})

    def test_Should_ParseOncePerRef_When_RefsRepeat(self, stimulus_library):
        definitions = resolve_stimuli(["tone_1k", "tone_1k", "gap"], stimulus_library)

        assert list(definitions) == ["tone_1k", "gap"]


class TestBuildTables:
    def test_Should_ComputeSampleIndex_When_BuildingEvents(self):
        table = _table([(0, 0, "tone_1k", 0.0, 50, 1), (1, 0, "tone_1k", 150.03125, 50, 2)])

        events = build_events(table, FS_HZ)

        assert list(events.columns) == EVENT_COLUMNS
        assert events["sample_index"].tolist() == [0, 2401]
        assert events["code"].dtype == np.uint8

    def test_Should_SummarizeTrials_When_BuildingTrialTable(self):
        table = _table([(0, 0, "a", 0.0, 50, 1), (0, 1, "a", 100.0, 50, 0), (1, 0, "b", 300.0, 80, 2)])

        trials = build_trial_table(table)

        assert list(trials.columns) == TRIAL_TABLE_COLUMNS
        assert trials["n_elements"].tolist() == [2, 1]
        assert trials["onset_ms"].tolist() == [0.0, 300.0]
        assert trials["offset_ms"].tolist() == [150.0, 380.0]


class TestCompileSequence:
    """Rendering element tables into audio and TTL buffers."""

    def test_Should_PadToOneSecond_When_SequenceShort(self, stimulus_library):
        artifact = compile_sequence(_table([(0, 0, "tone_1k", 0.0, 50, 1)]), stimulus_library, FS_HZ, SamplingContext(master_seed=1))

        assert artifact.n_samples == int(MIN_BUFFER_MS * FS_HZ / 1000)
        assert artifact.audio.shape == (16000, 2)
        assert artifact.ttl.shape == (16000,)

    def test_Should_CoverLastElement_When_SequenceLong(self, stimulus_library):
        table = _table([(0, 0, "tone_1k", 0.0, 50, 1), (1, 0, "tone_1k", 1500.0, 50, 1)])

        artifact = compile_sequence(table, stimulus_library, FS_HZ, SamplingContext(master_seed=1))

        assert artifact.n_samples == 1550 * 16

    def test_Should_PlaceAudioAtOnset_When_Rendering(self, stimulus_library):
        table = _table([(0, 0, "tone_1k", 100.0, 50, 1)])

        artifact = compile_sequence(table, stimulus_library, FS_HZ, SamplingContext(master_seed=1))

        nonzero = np.flatnonzero(np.abs(artifact.audio[:, 0]) > 0)
        assert nonzero[0] >= 1600
        assert nonzero[-1] < 1600 + 800
        assert not artifact.audio[:1600].any()

    def test_Should_WritePulseOfCode_When_CodePositive(self, stimulus_library):
        table = _table([(0, 0, "tone_1k", 100.0, 50, 5), (1, 0, "tone_2k", 300.0, 50, 0)])

        artifact = compile_sequence(table, stimulus_library, FS_HZ, SamplingContext(master_seed=1))

        pulse = np.flatnonzero(artifact.ttl)
        assert pulse.tolist() == list(range(1600, 1600 + TTL_PULSE_SAMPLES))
        assert set(artifact.ttl[pulse].tolist()) == {5}

    def test_Should_UseConfiguredPulseWidth_When_Given(self, stimulus_library):
        table = _table([(0, 0, "tone_1k", 0.0, 50, 9)])

        artifact = compile_sequence(table, stimulus_library, FS_HZ, SamplingContext(master_seed=1), ttl_pulse_samples=32)

        assert int(np.count_nonzero(artifact.ttl)) == 32
        assert artifact.manifest.ttl_pulse_samples == 32

    def test_Should_MarkOmissionWithoutAudio_When_RowIsOmission(self, foreperiod_config, stimulus_library):
        ctx = SamplingContext(master_seed=3)
        table = build_element_table(generate_trial_plan(foreperiod_config, 8, ctx))

        artifact = compile_sequence(table, stimulus_library, FS_HZ, ctx)

        omitted = table[table["is_omission"]]
        for onset_ms in omitted["absolute_onset_ms"]:
            start = int(round(onset_ms * FS_HZ / 1000))
            assert (artifact.ttl[start : start + TTL_PULSE_SAMPLES] == 33).all()
        assert len(artifact.events) == len(table)

    def test_Should_ExpandChannels_When_RoutingUsesHigherChannel(self, stimulus_library):
        library = {**stimulus_library, "right_only": {"type": "tone.simple", "frequency_hz": 500, "duration_ms": 30, "level": 0.5, "routing": {"channels": [3]}}}

        artifact = compile_sequence(_table([(0, 0, "right_only", 0.0, 30, 1)]), library, FS_HZ, SamplingContext(master_seed=1))

        assert artifact.manifest.n_channels == 4
        assert artifact.audio[:, 3].any()
        assert not artifact.audio[:, :3].any()

    def test_Should_FillDurationFromTable_When_DefinitionHasNone(self):
        library = {"beep": {"type": "tone.simple", "frequency_hz": 1000, "level": 0.5}}

        artifact = compile_sequence(_table([(0, 0, "beep", 0.0, 40, 1)]), library, FS_HZ, SamplingContext(master_seed=1))

        audible = np.flatnonzero(np.abs(artifact.audio[:, 0]) > 1e-6)
        assert 600 < audible[-1] < 40 * 16

    def test_Should_ClipMix_When_OverlapExceedsFullScale(self):
        library = {"loud": {"type": "tone.simple", "frequency_hz": 1000, "duration_ms": 50, "level": 0.9, "envelope": {}}}
        table = _table([(0, 0, "loud", 0.0, 50, 1), (0, 1, "loud", 0.0, 50, 0)])

        artifact = compile_sequence(table, library, FS_HZ, SamplingContext(master_seed=1))

        assert float(np.max(np.abs(artifact.audio))) == pytest.approx(1.0)

    def test_Should_RaiseUnknownStimulus_When_RefMissing(self, stimulus_library):
        with pytest.raises(UnknownStimulus):
            compile_sequence(_table([(0, 0, "missing", 0.0, 50, 1)]), stimulus_library, FS_HZ)

    def test_Should_RaiseCompilationError_When_TtlCodeOutOfRange(self, stimulus_library):
        with pytest.raises(CompilationError):
            compile_sequence(_table([(0, 0, "tone_1k", 0.0, 50, 256)]), stimulus_library, FS_HZ)

    def test_Should_RaiseCompilationError_When_TableUnordered(self, stimulus_library):
        table = _table([(0, 0, "tone_1k", 200.0, 50, 1), (1, 0, "tone_1k", 0.0, 50, 1)])

        with pytest.raises(CompilationError):
            compile_sequence(table, stimulus_library, FS_HZ)

    @pytest.mark.parametrize("fs_hz", [0, -48000])
    def test_Should_RaiseCompilationError_When_RateNotPositive(self, stimulus_library, fs_hz):
        with pytest.raises(CompilationError):
            compile_sequence(_table([(0, 0, "tone_1k", 0.0, 50, 1)]), stimulus_library, fs_hz)

    def test_Should_PropagateGeneratorError_When_ParametersInvalid(self):
        library = {"bad": {"type": "tone.simple", "frequency_hz": 12000, "duration_ms": 50, "level": 0.5}}

        with pytest.raises(GeneratorError):
            compile_sequence(_table([(0, 0, "bad", 0.0, 50, 1)]), library, FS_HZ)

    def test_Should_ProduceSilentSecond_When_TableEmpty(self, stimulus_library):
        artifact = compile_sequence(empty_element_table(), stimulus_library, FS_HZ, SamplingContext(master_seed=1))

        assert artifact.n_samples == 16000
        assert artifact.manifest.n_trials == 0
        assert len(artifact.events) == 0

    def test_Should_FillManifest_When_Compiled(self, compiled_artifact):
        manifest = compiled_artifact.manifest

        assert manifest.fs_hz == 16000.0
        assert manifest.n_trials == 10
        assert manifest.n_elements == 10
        assert manifest.master_seed == 42
        assert manifest.duration_samples == compiled_artifact.n_samples
        assert len(manifest.audio_hash) == 64

    def test_Should_FreezeBuffers_When_Compiled(self, compiled_artifact):
        with pytest.raises(ValueError):
            compiled_artifact.audio[0, 0] = 1.0
        with pytest.raises(ValueError):
            compiled_artifact.ttl[0] = 1

    def test_Should_SummarizeCodes_When_Asked(self, compiled_artifact):
        summary = compiled_artifact.summary()

        assert summary["n_events"] == 10
        assert summary["ttl_codes"] == [1, 2]
