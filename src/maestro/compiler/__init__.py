"""Compiler: element table + stimulus library -> sequence artifact.

Example:
--------
>>> from maestro.compiler import compile_sequence, read_artifact, write_artifact
>>>
>>> artifact = compile_sequence(table, library, fs_hz=48000, context=ctx)
>>> write_artifact(artifact, "block_001.h5")
>>> assert read_artifact("block_001.h5").manifest.audio_hash == artifact.manifest.audio_hash
"""

from .compiler import (
    DEFAULT_N_CHANNELS,
    MIN_BUFFER_MS,
    TTL_PULSE_SAMPLES,
    build_events,
    build_trial_table,
    compile_sequence,
    resolve_stimuli,
)
from .io import TABLE_GROUPS, read_artifact, read_manifest, verify_artifact, write_artifact
from .models import EVENT_COLUMNS, MANIFEST_VERSION, TRIAL_TABLE_COLUMNS, Manifest, SequenceArtifact

__all__ = [
    # Models
    "Manifest",
    "SequenceArtifact",
    "MANIFEST_VERSION",
    "EVENT_COLUMNS",
    "TRIAL_TABLE_COLUMNS",
    # Compilation
    "compile_sequence",
    "resolve_stimuli",
    "build_events",
    "build_trial_table",
    "TTL_PULSE_SAMPLES",
    "MIN_BUFFER_MS",
    "DEFAULT_N_CHANNELS",
    # HDF5
    "write_artifact",
    "read_artifact",
    "read_manifest",
    "verify_artifact",
    "TABLE_GROUPS",
]
