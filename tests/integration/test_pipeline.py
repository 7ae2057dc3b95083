"""Pipeline orchestration integration tests.

Runs configuration files through planning, layout, compilation, HDF5
persistence, dry-run playback and session logging.
"""

import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from maestro.compiler import read_artifact
from maestro.config import load_paradigm_config, load_stimulus_library
from maestro.daq import DAQEngine
from maestro.exceptions import InvalidConfig, UnknownStimulus
from maestro.pipeline import compile_block, run_block
from maestro.sampling import SamplingContext
from maestro.session import SESSION_FILE, SessionLog

pytestmark = pytest.mark.integration

FS_HZ = 16000.0

ODDBALL_TOML = """
paradigm = "oddball"
iti = {dist = "uniform", min = 150, max = 250, scope = "per_trial"}
selection = {mode = "balanced_shuffle"}

[[tokens]]
label = "standard"
stimulus_ref = "tone_1k"
base_probability = 0.75
code = 1
duration_ms = 50

[[tokens]]
label = "deviant"
stimulus_ref = "tone_2k"
base_probability = 0.25
code = 2
duration_ms = 50
"""


class TestRunBlock:
    """compile -> write -> play in one call."""

    def test_Should_PlayEveryEvent_When_DryRun(self, oddball_config, stimulus_library, tmp_path: Path):
        result = run_block(
            oddball_config,
            n_trials=20,
            stimulus_library=stimulus_library,
            fs_hz=FS_HZ,
            context=SamplingContext(master_seed=42),
            daq_config={"mode": "dry_run"},
            output_path=tmp_path / "block_001.h5",
        )

        assert result["plan"].n_trials == 20
        assert result["playback"].success
        assert result["playback"].events_played == len(result["element_table"]) == 20
        assert result["artifact_path"].exists()
        assert read_artifact(result["artifact_path"]).manifest.audio_hash == result["artifact"].manifest.audio_hash

    def test_Should_ReportScopedValues_When_BlockUsesPerBlockField(self, oddball_config, stimulus_library):
        """One per_block frequency is drawn for the block and reported with the seed record."""
        library = dict(stimulus_library)
        library["tone_1k"] = {**library["tone_1k"], "frequency_hz": {"dist": "uniform", "min": 900, "max": 1100, "scope": "per_block"}}
        context = SamplingContext(master_seed=5)
        context.set_block(1)

        result = run_block(oddball_config, 10, library, FS_HZ, context)

        sampling = result["sampling"]
        frequency = sampling["scoped_values"]["per_block"]["tone_1k.frequency_hz"]
        assert 900 <= frequency <= 1100
        assert sampling["scoped_values"]["per_session"] == {}
        assert sampling["seeds"]["master_seed"] == 5
        assert "param.tone_1k.frequency_hz" in sampling["seeds"]["streams"]

    def test_Should_SkipWrite_When_NoOutputPath(self, local_global_config, stimulus_library):
        result = run_block(local_global_config, 8, stimulus_library, FS_HZ, SamplingContext(master_seed=1))

        assert result["artifact_path"] is None
        assert result["playback"].events_played == 8 * 4

    def test_Should_ReuseEngine_When_Given(self, oddball_config, stimulus_library):
        engine = DAQEngine()

        first = run_block(oddball_config, 5, stimulus_library, FS_HZ, SamplingContext(master_seed=1), engine=engine)
        second = run_block(oddball_config, 5, stimulus_library, FS_HZ, SamplingContext(master_seed=2), engine=engine)

        assert first["playback"].success and second["playback"].success
        assert engine.get_sequence_info()["audio_hash"] == second["artifact"].manifest.audio_hash

    def test_Should_RaiseUnknownStimulus_When_LibraryIncomplete(self, oddball_config, stimulus_library):
        library = {key: value for key, value in stimulus_library.items() if key != "tone_2k"}

        with pytest.raises(UnknownStimulus) as exc_info:
            run_block(oddball_config, 10, library, FS_HZ, SamplingContext(master_seed=1))

        assert exc_info.value.missing == ["tone_2k"]

    def test_Should_RaiseInvalidConfig_When_ParadigmUnknown(self, stimulus_library):
        with pytest.raises(InvalidConfig):
            compile_block({"paradigm": "roving"}, 10, stimulus_library, FS_HZ)


class TestForeperiodOmission:
    """Omitted outcomes keep their event and TTL but stay silent."""

    def test_Should_KeepEventWithoutAudio_When_OutcomeOmitted(self, foreperiod_config, stimulus_library):
        plan, table, artifact = compile_block(foreperiod_config, 12, stimulus_library, FS_HZ, SamplingContext(master_seed=5))

        outcomes = [t.outcome_label for t in plan.trials]
        assert outcomes.count("omit") == 6
        assert outcomes.count("tone") == 6

        window = int(0.05 * FS_HZ)
        outcome_rows = table.index[table["role"] == "outcome"]
        assert len(outcome_rows) == 12
        for row in outcome_rows:
            event = artifact.events.loc[row]
            start = int(event["sample_index"])
            segment = artifact.audio[start : start + window, 0]
            if table.loc[row, "is_omission"]:
                assert event["code"] == 33
                assert np.all(segment == 0.0)
            else:
                assert event["code"] == 32
                assert np.abs(segment).max() > 0
            assert artifact.ttl[start] == event["code"]

    def test_Should_LabelTrialsByForeperiod_When_Compiled(self, foreperiod_config, stimulus_library):
        plan, _, artifact = compile_block(foreperiod_config, 8, stimulus_library, FS_HZ, SamplingContext(master_seed=5))

        assert set(artifact.trial_table["label"]) <= {"FP_250ms", "FP_500ms"}
        for trial in plan.trials:
            assert trial.label == f"FP_{trial.foreperiod_ms:g}ms"


class TestFileInputs:
    """Configuration and library files through the pipeline."""

    def test_Should_CompileBlock_When_LoadedFromFiles(self, tmp_work_dir: Path, stimulus_library):
        config_path = tmp_work_dir / "configs" / "oddball.toml"
        config_path.write_text(ODDBALL_TOML)
        for ref, definition in stimulus_library.items():
            (tmp_work_dir / "stimuli" / f"{ref}.json").write_text(json.dumps(definition))

        config = load_paradigm_config(config_path)
        library = load_stimulus_library(tmp_work_dir / "stimuli")
        plan, _, artifact = compile_block(config, 16, library, FS_HZ, SamplingContext(master_seed=9))

        labels = [t.label for t in plan.trials]
        assert labels.count("standard") == 12
        assert labels.count("deviant") == 4
        assert set(artifact.events["code"]) == {1, 2}

    def test_Should_ReproduceHash_When_FilesRecompiled(self, oddball_config_file: Path, stimulus_library_file: Path):
        config = load_paradigm_config(oddball_config_file)
        library = load_stimulus_library(stimulus_library_file)

        hashes = {compile_block(config, 10, library, FS_HZ, SamplingContext(master_seed=3))[2].manifest.audio_hash for _ in range(2)}

        assert len(hashes) == 1


class TestSessionFlow:
    """Blocks compiled, played and logged inside one session."""

    def test_Should_WriteSessionTree_When_BlocksRecorded(self, oddball_config, local_global_config, stimulus_library, tmp_work_dir: Path):
        # Arrange
        session = SessionLog(tmp_work_dir / "sessions", "M01", "S001", experimenter="jd", paradigm="mixed")
        context = SamplingContext(master_seed=42)
        context.set_session("S001")

        # Act
        for index, config in enumerate([oddball_config, local_global_config], start=1):
            context.set_block(index)
            block = session.start_block(index, config)
            result = run_block(config, 6, stimulus_library, FS_HZ, context)
            block.record(result["artifact"], result["playback"])
        session.add_note("two blocks")
        path = session.finalize()

        # Assert
        metadata = json.loads(path.read_text())
        assert path == tmp_work_dir / "sessions" / "M01" / "S001" / SESSION_FILE
        assert metadata["n_blocks"] == 2
        assert [b["status"] for b in metadata["blocks"]] == ["completed", "completed"]

        events = pd.read_csv(session.session_dir / "block_002" / "events.csv")
        assert len(events) == 6 * 4
        trials = pd.read_csv(session.session_dir / "block_001" / "trials.csv")
        assert len(trials) == 6
        log_text = (session.session_dir / "events.log").read_text()
        assert "Block 2 started" in log_text
        assert "Session finalized: completed" in log_text
