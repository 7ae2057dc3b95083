"""Generator contract: parameters + context -> (audio block, metadata).

A generator receives a stimulus definition's parameters (possibly holding
NumericFields) and a :class:`GeneratorContext`. It resolves the parameters
through the sampling framework, synthesizes a mono signal covering exactly
``duration_ms`` at the context's sample rate, clips it to [-1, 1] and
copies it onto every routed channel.

The returned block has shape ``[n_samples, len(channels)]``; column ``k``
belongs to output channel ``channels[k]``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
import logging
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import InvalidGeneratorParameter
from ..sampling import SamplingContext
from ..utils import array_hash, compute_hash, round_half_up
from .dsp import clip_signal, routing_channels

__all__ = [
    "GeneratorKind",
    "GeneratorContext",
    "GeneratorMetadata",
    "Generator",
    "Routing",
    "StimulusDefinition",
]

logger = logging.getLogger(__name__)


class GeneratorKind(str, Enum):
    """Closed set of built-in stimulus generators."""

    TONE_SIMPLE = "tone.simple"
    NOISE_BANDPASS = "noise.bandpass"
    CLICK_TRAIN_FIXED = "click.train.fixed"
    SILENCE = "silence"


# ============================================================================
# Stimulus Definitions
# ============================================================================


class Routing(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    channels: List[int] = Field(default_factory=lambda: [0, 1], min_length=1, description="0-based output channels")

    @field_validator("channels")
    @classmethod
    def _check_channels(cls, v: List[int]) -> List[int]:
        if any(ch < 0 for ch in v):
            raise ValueError("channels must be >= 0")
        if len(set(v)) != len(v):
            raise ValueError("channels must be unique")
        return v


class StimulusDefinition(BaseModel):
    """One stimulus library entry.

    ``type`` selects the generator; every other key except ``routing`` is a
    synthesis parameter passed to it (``frequency_hz``, ``level``,
    ``envelope``...).
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    type: GeneratorKind
    routing: Routing = Field(default_factory=Routing)
    description: Optional[str] = Field(default=None, description="Free text, ignored by generators")

    def parameters(self) -> Dict[str, Any]:
        """Generator parameters including ``routing``."""
        params = dict(self.model_extra or {})
        params.pop("stimulus_id", None)
        params["routing"] = {"channels": list(self.routing.channels)}
        return params


# ============================================================================
# Context and Metadata
# ============================================================================


class GeneratorContext:
    """Sample rate plus access to the sampling framework.

    Parameter and stream names are namespaced by ``prefix`` (the stimulus
    reference when created through :meth:`for_stimulus`), so two stimuli
    with a ``per_block`` frequency sample independently.

    Args:
        fs_hz: Output sample rate (Hz)
        sampling: Shared sampling context (a fresh one if omitted)
        prefix: Namespace for parameter and stream names
    """

    def __init__(self, fs_hz: float, sampling: Optional[SamplingContext] = None, prefix: str = ""):
        if fs_hz <= 0:
            raise InvalidGeneratorParameter("fs_hz", fs_hz, "> 0")
        self.fs_hz = float(fs_hz)
        self.sampling = sampling if sampling is not None else SamplingContext()
        self.prefix = prefix

    def _qualified(self, name: str) -> str:
        return f"{self.prefix}.{name}" if self.prefix else name

    def for_stimulus(self, stimulus_ref: str) -> "GeneratorContext":
        return GeneratorContext(self.fs_hz, self.sampling, prefix=stimulus_ref)

    def sample_field(self, field: Any, name: str) -> float:
        return self.sampling.sample(field, self._qualified(name))

    def sample_struct(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return self.sampling.sample_struct(dict(params), prefix=self.prefix)

    def get_rng_stream(self, name: str) -> np.random.Generator:
        return self.sampling.get_stream(f"generator.{self._qualified(name)}")

    def ms_to_samples(self, ms: float) -> int:
        return round_half_up(ms * self.fs_hz / 1000.0)

    def samples_to_ms(self, n_samples: int) -> float:
        return n_samples * 1000.0 / self.fs_hz


class GeneratorMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: GeneratorKind
    peak: float = Field(..., ge=0)
    rms: float = Field(..., ge=0)
    hash: str = Field(..., description="SHA256 over audio bytes and realized parameters")
    realized_params: Dict[str, Any] = Field(default_factory=dict)
    clipped: bool = False
    n_samples: int = Field(..., ge=0)
    duration_ms: float = Field(..., ge=0)
    channels: List[int] = Field(default_factory=list)


# ============================================================================
# Generator Base
# ============================================================================


class Generator(ABC):
    """Base class; subclasses implement :meth:`synthesize`."""

    kind: ClassVar[GeneratorKind]

    @abstractmethod
    def synthesize(self, params: Dict[str, Any], context: GeneratorContext) -> np.ndarray:
        """Return the mono signal from realized parameters."""

    def generate(self, params: Mapping[str, Any], context: GeneratorContext) -> Tuple[np.ndarray, GeneratorMetadata]:
        """Sample parameters, synthesize, clip and route.

        Raises:
            InvalidGeneratorParameter: Invalid physical parameter
        """
        realized = context.sample_struct(params)
        channels = routing_channels(realized.get("routing"))

        mono = np.asarray(self.synthesize(realized, context), dtype=np.float64)
        mono, clipped = clip_signal(mono, source=f"{self.kind.value} '{context.prefix}'")

        block = np.repeat(mono[:, np.newaxis], len(channels), axis=1).astype(np.float32)
        n_samples = block.shape[0]

        metadata = GeneratorMetadata(
            kind=self.kind,
            peak=float(np.max(np.abs(block))) if n_samples else 0.0,
            rms=float(np.sqrt(np.mean(np.square(block, dtype=np.float64)))) if n_samples else 0.0,
            hash=compute_hash({"audio": array_hash(block), "realized_params": realized}),
            realized_params=realized,
            clipped=clipped,
            n_samples=n_samples,
            duration_ms=context.samples_to_ms(n_samples),
            channels=channels,
        )
        return block, metadata
