"""Pure tone with attack/release envelope.

Parameters:
    frequency_hz: > 0 and below Nyquist
    duration_ms: > 0
    level: number (linear) or {value, unit}
    phase_deg: starting phase (default 0)
    envelope: {attack_ms, release_ms, shape} (default 5/5 ms cosine)
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from ..exceptions import InvalidGeneratorParameter
from .base import Generator, GeneratorContext, GeneratorKind
from .dsp import DEFAULT_ENVELOPE, apply_envelope, level_gain, require_positive

__all__ = ["ToneGenerator"]


class ToneGenerator(Generator):
    kind = GeneratorKind.TONE_SIMPLE

    def synthesize(self, params: Dict[str, Any], context: GeneratorContext) -> np.ndarray:
        frequency_hz = require_positive(params, "frequency_hz")
        duration_ms = require_positive(params, "duration_ms")
        if frequency_hz >= context.fs_hz / 2:
            raise InvalidGeneratorParameter("frequency_hz", frequency_hz, f"< Nyquist ({context.fs_hz / 2:g} Hz)")
        gain = level_gain(params.get("level"))

        n_samples = context.ms_to_samples(duration_ms)
        t = np.arange(n_samples) / context.fs_hz
        phase_rad = np.deg2rad(params.get("phase_deg", 0.0))

        tone = np.sin(2 * np.pi * frequency_hz * t + phase_rad)
        tone = apply_envelope(tone, params.get("envelope", DEFAULT_ENVELOPE), context.fs_hz)
        return tone * gain
