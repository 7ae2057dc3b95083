"""Sequence artifact models.

A :class:`SequenceArtifact` is the compiled, immutable form of one block:
sample-accurate audio and TTL buffers, the event and trial tables derived
from the element table, and a :class:`Manifest` carrying provenance.

Arrays are flagged non-writeable on construction so a loaded or compiled
artifact cannot be edited in place after its hash was computed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import numpy.typing as npt
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = [
    "MANIFEST_VERSION",
    "EVENT_COLUMNS",
    "TRIAL_TABLE_COLUMNS",
    "Manifest",
    "SequenceArtifact",
]

MANIFEST_VERSION = "1.0"

EVENT_COLUMNS = ["sample_index", "time_ms", "trial_index", "element_index", "code"]
TRIAL_TABLE_COLUMNS = ["trial_index", "label", "n_elements", "onset_ms", "offset_ms"]


class Manifest(BaseModel):
    """Provenance and shape of a compiled sequence."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = Field(default=MANIFEST_VERSION, description="Artifact layout version")
    fs_hz: float = Field(..., gt=0, description="Sample rate (Hz)")
    n_channels: int = Field(..., ge=1, description="Audio channel count")
    n_trials: int = Field(..., ge=0, description="Trials with at least one element")
    n_elements: int = Field(..., ge=0, description="Element table rows")
    duration_samples: int = Field(..., ge=0, description="Buffer length in samples")
    duration_ms: float = Field(..., ge=0, description="Buffer length in milliseconds")
    compiled_at: datetime = Field(..., description="Compilation time")
    audio_hash: str = Field(..., description="SHA256 of the C-contiguous float32 audio bytes")
    ttl_pulse_samples: int = Field(..., ge=1, description="Width of each TTL pulse in samples")
    master_seed: Optional[int] = Field(default=None, description="Master seed of the sampling context")


class SequenceArtifact(BaseModel):
    """Compiled block: audio, TTL, tables and manifest."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    audio: npt.NDArray[np.float32] = Field(..., description="Audio buffer [n_samples, n_channels]")
    ttl: npt.NDArray[np.uint8] = Field(..., description="TTL code per sample [n_samples]")
    events: pd.DataFrame = Field(..., description="One row per element: sample_index, time_ms, trial_index, element_index, code")
    trial_table: pd.DataFrame = Field(..., description="One row per trial: trial_index, label, n_elements, onset_ms, offset_ms")
    element_table: pd.DataFrame = Field(..., description="Element table the artifact was compiled from")
    manifest: Manifest

    @field_validator("audio", mode="before")
    @classmethod
    def _freeze_audio(cls, v: Any) -> np.ndarray:
        array = np.ascontiguousarray(v, dtype=np.float32)
        if array.ndim != 2:
            raise ValueError(f"audio must be 2-D [n_samples, n_channels], got shape {array.shape}")
        array.setflags(write=False)
        return array

    @field_validator("ttl", mode="before")
    @classmethod
    def _freeze_ttl(cls, v: Any) -> np.ndarray:
        array = np.ascontiguousarray(v, dtype=np.uint8)
        if array.ndim != 1:
            raise ValueError(f"ttl must be 1-D, got shape {array.shape}")
        array.setflags(write=False)
        return array

    @model_validator(mode="after")
    def _check_shapes(self) -> "SequenceArtifact":
        if self.audio.shape[0] != self.ttl.shape[0]:
            raise ValueError(f"audio ({self.audio.shape[0]}) and ttl ({self.ttl.shape[0]}) lengths differ")
        if self.audio.shape[0] != self.manifest.duration_samples:
            raise ValueError(f"buffer length {self.audio.shape[0]} does not match manifest duration_samples {self.manifest.duration_samples}")
        if self.audio.shape[1] != self.manifest.n_channels:
            raise ValueError(f"audio has {self.audio.shape[1]} channels, manifest says {self.manifest.n_channels}")
        return self

    @property
    def fs_hz(self) -> float:
        return self.manifest.fs_hz

    @property
    def n_samples(self) -> int:
        return int(self.audio.shape[0])

    def summary(self) -> Dict[str, Any]:
        """Manifest plus event counts, JSON-serializable."""
        codes: List[int] = sorted(int(c) for c in self.events["code"].unique() if c) if len(self.events) else []
        return {
            **self.manifest.model_dump(mode="json"),
            "n_events": len(self.events),
            "ttl_codes": codes,
        }
