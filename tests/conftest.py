"""Pytest configuration and shared fixtures for Maestro tests.

Provides:
- Paradigm configurations (oddball, local-global, foreperiod)
- A stimulus library covering every built-in generator
- Seeded sampling contexts
- A small compiled sequence artifact
- Temporary directory management
"""

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from maestro.compiler import compile_sequence
from maestro.pattern import build_element_table
from maestro.paradigms import generate_trial_plan
from maestro.sampling import SamplingContext

# Test Constants
TEST_FS_HZ = 16000.0  # Low rate keeps buffers small
TEST_SEED = 42


# ============================================================================
# Sampling
# ============================================================================


@pytest.fixture
def fs_hz() -> float:
    return TEST_FS_HZ


@pytest.fixture
def sampling_context() -> SamplingContext:
    """Seeded sampling context with session and block set."""
    ctx = SamplingContext(master_seed=TEST_SEED)
    ctx.set_session("S01")
    ctx.set_block(1)
    return ctx


# ============================================================================
# Paradigm Configuration Fixtures
# ============================================================================


@pytest.fixture
def oddball_config() -> Dict[str, Any]:
    """80/20 oddball with TTL codes, balanced selection."""
    return {
        "paradigm": "oddball",
        "tokens": [
            {"label": "standard", "stimulus_ref": "tone_1k", "base_probability": 0.8, "code": 1, "duration_ms": 50},
            {"label": "deviant", "stimulus_ref": "tone_2k", "base_probability": 0.2, "code": 2, "duration_ms": 50},
        ],
        "selection": {"mode": "balanced_shuffle"},
        "iti": 200,
    }


@pytest.fixture
def local_global_config() -> Dict[str, Any]:
    """Two patterns (xx / xY) of four symbols."""
    return {
        "paradigm": "local_global",
        "token_a": {"stimulus_ref": "tone_1k", "code": 11},
        "token_b": {"stimulus_ref": "tone_2k", "code": 12},
        "patterns": [
            {"label": "xx", "sequence": "AAAA", "base_probability": 0.75, "code": 21},
            {"label": "xY", "sequence": "AAAB", "base_probability": 0.25, "code": 22},
        ],
        "ioi": 100,
        "iti": 300,
        "selection": {"mode": "balanced_shuffle"},
    }


@pytest.fixture
def foreperiod_config() -> Dict[str, Any]:
    """Cue, two foreperiods, tone or omitted outcome."""
    return {
        "paradigm": "foreperiod",
        "cue": {"stimulus_ref": "click_cue", "duration_ms": 21, "code": 31},
        "outcomes": [
            {"label": "tone", "stimulus_ref": "noise_burst", "probability": 0.5, "duration_ms": 100, "code": 32},
            {"label": "omit", "is_omission": True, "probability": 0.5, "code": 33},
        ],
        "foreperiods": [250, 500],
        "foreperiod_probs": [0.5, 0.5],
        "iti": 400,
        "selection": {"mode": "balanced_shuffle"},
    }


# ============================================================================
# Stimulus Library
# ============================================================================


@pytest.fixture
def stimulus_library() -> Dict[str, Dict[str, Any]]:
    """One entry per built-in generator."""
    return {
        "tone_1k": {"type": "tone.simple", "frequency_hz": 1000, "duration_ms": 50, "level": 0.5},
        "tone_2k": {
            "type": "tone.simple",
            "frequency_hz": 2000,
            "duration_ms": 50,
            "level": {"value": -6, "unit": "dB_FS"},
        },
        "noise_burst": {
            "type": "noise.bandpass",
            "low_freq_hz": 500,
            "high_freq_hz": 4000,
            "duration_ms": 100,
            "level": 0.3,
            "seed": 7,
        },
        "click_cue": {
            "type": "click.train.fixed",
            "click_rate_hz": 100,
            "n_clicks": 3,
            "click_duration_ms": 1,
            "level": 0.8,
        },
        "gap": {"type": "silence", "duration_ms": 20},
    }


# ============================================================================
# Compiled Artifacts
# ============================================================================


@pytest.fixture
def compiled_artifact(oddball_config, stimulus_library):
    """Ten-trial oddball block compiled at the test rate."""
    ctx = SamplingContext(master_seed=TEST_SEED)
    plan = generate_trial_plan(oddball_config, 10, ctx)
    table = build_element_table(plan)
    return compile_sequence(table, stimulus_library, TEST_FS_HZ, ctx)


# ============================================================================
# Temporary Working Directories
# ============================================================================


@pytest.fixture
def tmp_work_dir(tmp_path: Path) -> Path:
    """Temporary working directory for test outputs.

    Structure:
        tmp_path/
        ├── configs/
        ├── stimuli/
        └── sessions/
    """
    for name in ("configs", "stimuli", "sessions"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def oddball_config_file(tmp_work_dir: Path, oddball_config: Dict[str, Any]) -> Path:
    path = tmp_work_dir / "configs" / "oddball.json"
    path.write_text(json.dumps(oddball_config))
    return path


@pytest.fixture
def stimulus_library_file(tmp_work_dir: Path, stimulus_library: Dict[str, Any]) -> Path:
    path = tmp_work_dir / "stimuli" / "library.json"
    path.write_text(json.dumps(stimulus_library))
    return path


# ============================================================================
# Markers
# ============================================================================


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as fast unit tests")
    config.addinivalue_line("markers", "property: marks invariant tests over many inputs")
    config.addinivalue_line("markers", "integration: marks tests as integration tests (may be slow)")
    config.addinivalue_line("markers", "cli: marks command-line interface tests")
