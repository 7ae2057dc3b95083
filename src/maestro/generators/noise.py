"""Band-limited Gaussian noise.

White noise is filtered with a 4th-order Butterworth bandpass (zero-phase,
second-order sections), normalized to unit peak, then enveloped and
levelled.

Parameters:
    low_freq_hz, high_freq_hz: passband edges, low < high
    duration_ms: > 0
    level: number (linear) or {value, unit}
    envelope: optional {attack_ms, release_ms, shape}
    seed: optional; the same seed yields the same (frozen) noise token.
        Without it, noise comes from the stimulus' stream and differs on
        every presentation while staying reproducible under the master seed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import numpy as np
from scipy import signal as sps

from ..exceptions import InvalidGeneratorParameter
from ..sampling import RNGStreamManager
from .base import Generator, GeneratorContext, GeneratorKind
from .dsp import apply_envelope, level_gain, require_positive

__all__ = ["BandpassNoiseGenerator", "FILTER_ORDER"]

logger = logging.getLogger(__name__)

FILTER_ORDER = 4

# Passband edges are kept strictly inside (0, Nyquist)
_EDGE_FRACTION = 0.99


class BandpassNoiseGenerator(Generator):
    kind = GeneratorKind.NOISE_BANDPASS

    def synthesize(self, params: Dict[str, Any], context: GeneratorContext) -> np.ndarray:
        low_hz = require_positive(params, "low_freq_hz")
        high_hz = require_positive(params, "high_freq_hz")
        duration_ms = require_positive(params, "duration_ms")
        if low_hz >= high_hz:
            raise InvalidGeneratorParameter("low_freq_hz", low_hz, f"< high_freq_hz ({high_hz:g})")
        gain = level_gain(params.get("level"))

        nyquist = context.fs_hz / 2
        if high_hz >= nyquist * _EDGE_FRACTION:
            clamped = nyquist * _EDGE_FRACTION
            logger.warning(f"high_freq_hz {high_hz:g} clamped to {clamped:g} Hz (Nyquist {nyquist:g} Hz)")
            high_hz = clamped
            if low_hz >= high_hz:
                raise InvalidGeneratorParameter("low_freq_hz", low_hz, f"< {high_hz:g} Hz after clamping to Nyquist")

        n_samples = context.ms_to_samples(duration_ms)
        rng = self._stream(params, context)
        noise = rng.standard_normal(n_samples)

        sos = sps.butter(FILTER_ORDER, [low_hz, high_hz], btype="bandpass", fs=context.fs_hz, output="sos")
        padlen = 3 * (2 * len(sos) + 1)
        if n_samples > padlen:
            filtered = sps.sosfiltfilt(sos, noise)
        else:
            filtered = sps.sosfilt(sos, noise)

        peak = np.max(np.abs(filtered)) if n_samples else 0.0
        if peak > 0:
            filtered = filtered / peak

        filtered = apply_envelope(filtered, params.get("envelope"), context.fs_hz)
        return filtered * gain

    @staticmethod
    def _stream(params: Dict[str, Any], context: GeneratorContext) -> np.random.Generator:
        seed = params.get("seed")
        if seed is None:
            return context.get_rng_stream("noise")
        return RNGStreamManager(int(seed)).get_stream("noise")
