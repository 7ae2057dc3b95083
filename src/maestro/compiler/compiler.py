"""Element table + stimulus library -> SequenceArtifact.

Compilation runs in two phases. The first touches no audio: the table is
checked, every referenced stimulus is resolved and parsed, TTL codes are
range-checked and the buffer is sized. The second renders each row through
its generator into a zeroed buffer and writes the TTL pulses.

Buffer length is the largest of:

- the end of the last element, ``ceil(max(onset + duration) * fs / 1000)``;
- one second (:data:`MIN_BUFFER_MS`);
- the last onset sample plus one TTL pulse.

Example:
    >>> artifact = compile_sequence(table, library, fs_hz=48000, context=SamplingContext(master_seed=7))
    >>> artifact.audio.shape, artifact.manifest.audio_hash[:8]
"""

from __future__ import annotations

from datetime import datetime
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np
import pandas as pd

from ..exceptions import CompilationError, InvalidConfig, UnknownStimulus
from ..generators import GeneratorContext, StimulusDefinition, get_generator
from ..generators.dsp import clip_signal
from ..paradigms.models import OMISSION_REF
from ..pattern import validate_element_table
from ..sampling import SamplingContext
from ..utils import array_hash, round_half_up, time_block
from ..validation import validate_model
from .models import EVENT_COLUMNS, MANIFEST_VERSION, TRIAL_TABLE_COLUMNS, Manifest, SequenceArtifact

__all__ = [
    "TTL_PULSE_SAMPLES",
    "MIN_BUFFER_MS",
    "DEFAULT_N_CHANNELS",
    "compile_sequence",
    "resolve_stimuli",
    "build_events",
    "build_trial_table",
]

logger = logging.getLogger(__name__)

TTL_PULSE_SAMPLES = 10
MIN_BUFFER_MS = 1000.0
DEFAULT_N_CHANNELS = 2


# ============================================================================
# Resolution
# ============================================================================


def _omission_mask(table: pd.DataFrame) -> np.ndarray:
    mask = (table["stimulus_ref"] == OMISSION_REF).to_numpy()
    if "is_omission" in table.columns:
        mask = mask | table["is_omission"].astype(bool).to_numpy()
    return mask


def resolve_stimuli(
    refs: List[str],
    stimulus_library: Mapping[str, Union[StimulusDefinition, Mapping[str, Any]]],
) -> Dict[str, StimulusDefinition]:
    """Parse the library entries for ``refs``.

    Raises:
        UnknownStimulus: One or more refs missing from the library (all listed)
        CompilationError: A library entry is not a valid stimulus definition
    """
    missing = sorted({ref for ref in refs if ref not in stimulus_library})
    if missing:
        raise UnknownStimulus(missing)

    definitions = {}
    for ref in dict.fromkeys(refs):
        try:
            definitions[ref] = validate_model(StimulusDefinition, stimulus_library[ref], f"stimulus '{ref}'", prefix=ref)
        except InvalidConfig as e:
            raise CompilationError(e.report(), context={"stimulus_ref": ref}) from e
    return definitions


# ============================================================================
# Tables
# ============================================================================


def build_events(table: pd.DataFrame, fs_hz: float) -> pd.DataFrame:
    """One event per element row, at its rounded onset sample."""
    onsets = table["absolute_onset_ms"].to_numpy(dtype=float)
    codes = table["ttl_code"].to_numpy(dtype=np.int64) if "ttl_code" in table.columns else np.zeros(len(table), dtype=np.int64)
    events = pd.DataFrame(
        {
            "sample_index": np.array([round_half_up(ms * fs_hz / 1000.0) for ms in onsets], dtype=np.int64),
            "time_ms": onsets,
            "trial_index": table["trial_index"].to_numpy(dtype=np.int64),
            "element_index": table["element_index"].to_numpy(dtype=np.int64),
            "code": codes.astype(np.uint8),
        }
    )
    return events[EVENT_COLUMNS]


def build_trial_table(table: pd.DataFrame) -> pd.DataFrame:
    """Per-trial label, element count and time span."""
    if len(table) == 0:
        return pd.DataFrame(
            {
                "trial_index": pd.Series(dtype="int64"),
                "label": pd.Series(dtype="object"),
                "n_elements": pd.Series(dtype="int64"),
                "onset_ms": pd.Series(dtype="float64"),
                "offset_ms": pd.Series(dtype="float64"),
            }
        )

    spans = table.assign(end_ms=table["absolute_onset_ms"] + table["duration_ms"])
    grouped = spans.groupby("trial_index", sort=True)
    trial_table = pd.DataFrame(
        {
            "label": grouped["label"].first(),
            "n_elements": grouped.size(),
            "onset_ms": grouped["absolute_onset_ms"].min(),
            "offset_ms": grouped["end_ms"].max(),
        }
    ).reset_index()
    return trial_table[TRIAL_TABLE_COLUMNS].astype({"trial_index": "int64", "n_elements": "int64"})


def _buffer_samples(table: pd.DataFrame, fs_hz: float, ttl_pulse_samples: int) -> int:
    n_samples = math.ceil(MIN_BUFFER_MS * fs_hz / 1000.0)
    if len(table) == 0:
        return n_samples

    ends = table["absolute_onset_ms"].to_numpy(dtype=float) + table["duration_ms"].to_numpy(dtype=float)
    n_samples = max(n_samples, math.ceil(float(ends.max()) * fs_hz / 1000.0))

    last_onset = round_half_up(float(table["absolute_onset_ms"].max()) * fs_hz / 1000.0)
    return max(n_samples, last_onset + ttl_pulse_samples)


# ============================================================================
# Compilation
# ============================================================================


def compile_sequence(
    element_table: pd.DataFrame,
    stimulus_library: Mapping[str, Union[StimulusDefinition, Mapping[str, Any]]],
    fs_hz: float,
    context: Optional[SamplingContext] = None,
    ttl_pulse_samples: int = TTL_PULSE_SAMPLES,
) -> SequenceArtifact:
    """Render an element table into audio and TTL buffers.

    Args:
        element_table: Output of :func:`maestro.pattern.build_element_table`
        stimulus_library: Mapping of stimulus ref to definition
        fs_hz: Output sample rate (Hz)
        context: Sampling context for stimulus parameters (fresh if omitted)
        ttl_pulse_samples: Width of each TTL pulse

    Returns:
        Immutable SequenceArtifact

    Raises:
        CompilationError: Invalid table, TTL code or library entry
        UnknownStimulus: Table references stimuli missing from the library
        GeneratorError: Invalid stimulus parameters (propagated unchanged)
    """
    if fs_hz <= 0:
        raise CompilationError(f"fs_hz must be > 0, got {fs_hz}")
    if ttl_pulse_samples < 1:
        raise CompilationError(f"ttl_pulse_samples must be >= 1, got {ttl_pulse_samples}")

    problems = validate_element_table(element_table)
    if problems:
        raise CompilationError(f"Invalid element table: {'; '.join(problems)}", context={"problems": problems})

    table = element_table.reset_index(drop=True)
    sampling = context if context is not None else SamplingContext()

    # Phase 1: resolve and size, no synthesis
    omission = _omission_mask(table)
    refs = table.loc[~omission, "stimulus_ref"].astype(str).tolist()
    definitions = resolve_stimuli(refs, stimulus_library)

    if "ttl_code" in table.columns:
        codes = table["ttl_code"].to_numpy(dtype=np.int64)
        bad = codes[(codes < 0) | (codes > 255)]
        if bad.size:
            raise CompilationError(f"TTL code(s) out of range [0, 255]: {sorted(set(bad.tolist()))}")
    else:
        codes = np.zeros(len(table), dtype=np.int64)

    n_channels = max((max(d.routing.channels) + 1 for d in definitions.values()), default=DEFAULT_N_CHANNELS)
    n_samples = _buffer_samples(table, fs_hz, ttl_pulse_samples)

    audio = np.zeros((n_samples, n_channels), dtype=np.float64)
    ttl = np.zeros(n_samples, dtype=np.uint8)
    base_context = GeneratorContext(fs_hz, sampling)

    # Phase 2: render
    with time_block(f"Compile {len(table)} elements", logger):
        for row, is_omission, code in zip(table.itertuples(index=False), omission, codes):
            start = round_half_up(row.absolute_onset_ms * fs_hz / 1000.0)

            if not is_omission:
                definition = definitions[row.stimulus_ref]
                params = definition.parameters()
                if params.get("duration_ms") is None:
                    params["duration_ms"] = row.duration_ms

                generator = get_generator(definition.type)
                block, metadata = generator.generate(params, base_context.for_stimulus(row.stimulus_ref))

                stop = start + block.shape[0]
                if stop > n_samples:
                    logger.warning(
                        f"Stimulus '{row.stimulus_ref}' (trial {row.trial_index}, element {row.element_index}) "
                        f"truncated by {stop - n_samples} samples at end of buffer"
                    )
                    block = block[: n_samples - start]
                    stop = n_samples
                audio[start:stop, metadata.channels] += block

            if code > 0:
                ttl[start : start + ttl_pulse_samples] = code

    audio, _ = clip_signal(audio, source="sequence mix")
    audio = audio.astype(np.float32)

    trial_table = build_trial_table(table)
    manifest = Manifest(
        version=MANIFEST_VERSION,
        fs_hz=fs_hz,
        n_channels=n_channels,
        n_trials=len(trial_table),
        n_elements=len(table),
        duration_samples=n_samples,
        duration_ms=n_samples * 1000.0 / fs_hz,
        compiled_at=datetime.now(),
        audio_hash=array_hash(audio, np.float32),
        ttl_pulse_samples=ttl_pulse_samples,
        master_seed=sampling.master_seed,
    )

    logger.info(f"Compiled {manifest.n_elements} elements / {manifest.n_trials} trials: {manifest.duration_ms / 1000:.2f} s, {n_channels} channel(s)")
    return SequenceArtifact(
        audio=audio,
        ttl=ttl,
        events=build_events(table, fs_hz),
        trial_table=trial_table,
        element_table=table,
        manifest=manifest,
    )
