"""Pipeline orchestration: paradigm configuration -> played block.

Key Functions:
--------------
- compile_block: trial plan, element table and compiled artifact
- run_block: compile_block, then play through a DAQ engine and optionally
  write the artifact to HDF5

Example:
--------
>>> from maestro.pipeline import run_block
>>> from maestro.sampling import SamplingContext
>>>
>>> result = run_block(
...     paradigm_config,
...     n_trials=200,
...     stimulus_library=library,
...     fs_hz=48000,
...     context=SamplingContext(master_seed=42),
...     daq_config={"mode": "dry_run"},
...     output_path="block_001.h5",
... )
>>> result["playback"].events_played
200
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, TypedDict, Union

import pandas as pd

from .compiler import TTL_PULSE_SAMPLES, SequenceArtifact, compile_sequence, write_artifact
from .daq import DAQConfig, DAQEngine, PlaybackResult
from .paradigms import TrialPlan, generate_trial_plan
from .pattern import build_element_table
from .sampling import SamplingContext
from .utils import time_block

__all__ = ["RunResult", "compile_block", "run_block"]

logger = logging.getLogger(__name__)


# =============================================================================
# Result Models
# =============================================================================


class RunResult(TypedDict, total=False):
    """Result of run_block.

    Attributes:
        plan: Trial plan produced by the paradigm adapter
        element_table: Absolutely timed element table
        artifact: Compiled sequence
        playback: Playback result from the DAQ engine
        artifact_path: HDF5 file, when an output path was given
        sampling: Seed record and per_block / per_session values drawn for the block
    """

    plan: TrialPlan
    element_table: pd.DataFrame
    artifact: SequenceArtifact
    playback: PlaybackResult
    artifact_path: Optional[Path]
    sampling: Dict[str, Any]


# =============================================================================
# Core Orchestration
# =============================================================================


def compile_block(
    paradigm_config: Mapping[str, Any],
    n_trials: int,
    stimulus_library: Mapping[str, Any],
    fs_hz: float,
    context: Optional[SamplingContext] = None,
    ttl_pulse_samples: int = TTL_PULSE_SAMPLES,
) -> Tuple[TrialPlan, pd.DataFrame, SequenceArtifact]:
    """Plan, lay out and compile one block.

    Plan generation and stimulus parameters share ``context``, so one
    master seed reproduces the whole block.

    Raises:
        InvalidConfig: Invalid paradigm configuration
        PatternBuildError: Plan cannot be laid out
        CompilationError: Table/library inconsistencies
        GeneratorError: Invalid stimulus parameters
    """
    context = context if context is not None else SamplingContext()

    with time_block(f"Compile block ({paradigm_config.get('paradigm')}, {n_trials} trials)", logger):
        plan = generate_trial_plan(paradigm_config, n_trials, context)
        element_table = build_element_table(plan)
        artifact = compile_sequence(element_table, stimulus_library, fs_hz, context, ttl_pulse_samples=ttl_pulse_samples)

    return plan, element_table, artifact


def run_block(
    paradigm_config: Mapping[str, Any],
    n_trials: int,
    stimulus_library: Mapping[str, Any],
    fs_hz: float,
    context: Optional[SamplingContext] = None,
    daq_config: Union[DAQConfig, Dict[str, Any], None] = None,
    output_path: Union[str, Path, None] = None,
    engine: Optional[DAQEngine] = None,
    ttl_pulse_samples: int = TTL_PULSE_SAMPLES,
) -> RunResult:
    """Compile one block and play it.

    Args:
        paradigm_config: Tagged paradigm configuration
        n_trials: Number of trials
        stimulus_library: Mapping of stimulus ref to definition
        fs_hz: Output sample rate (Hz)
        context: Sampling context (fresh if omitted)
        daq_config: Engine configuration (dry run if omitted)
        output_path: Write the artifact to this HDF5 file before playing
        engine: Engine to use (a new one if omitted)
        ttl_pulse_samples: TTL pulse width

    Returns:
        RunResult with plan, element_table, artifact, playback, artifact_path, sampling
    """
    context = context if context is not None else SamplingContext()
    plan, element_table, artifact = compile_block(
        paradigm_config, n_trials, stimulus_library, fs_hz, context, ttl_pulse_samples=ttl_pulse_samples
    )

    artifact_path = write_artifact(artifact, output_path) if output_path is not None else None

    engine = engine if engine is not None else DAQEngine()
    engine.configure(daq_config if daq_config is not None else DAQConfig())
    engine.load_sequence(artifact)
    playback = engine.play()

    logger.info(f"Block done: {plan.n_trials} trials, {playback.events_played} events, status={playback.status}")
    return RunResult(
        plan=plan,
        element_table=element_table,
        artifact=artifact,
        playback=playback,
        artifact_path=artifact_path,
        sampling={"seeds": context.seed_record(), "scoped_values": context.scopes.cached_values()},
    )
