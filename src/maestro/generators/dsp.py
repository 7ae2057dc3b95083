"""Signal helpers shared by the built-in generators."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Tuple

import numpy as np

from ..exceptions import InvalidGeneratorParameter
from ..utils import round_half_up

__all__ = [
    "DEFAULT_ENVELOPE",
    "ENVELOPE_SHAPES",
    "LEVEL_UNITS",
    "require_positive",
    "make_ramp",
    "apply_envelope",
    "level_gain",
    "routing_channels",
    "clip_signal",
]

logger = logging.getLogger(__name__)

DEFAULT_ENVELOPE = {"attack_ms": 5.0, "release_ms": 5.0, "shape": "cosine"}
ENVELOPE_SHAPES = ("linear", "cosine", "exponential")
LEVEL_UNITS = ("linear_0_1", "dB_FS", "dB_SPL")


def require_positive(params: Mapping[str, Any], name: str) -> float:
    """Fetch a required parameter that must be > 0."""
    if name not in params or params[name] is None:
        raise InvalidGeneratorParameter(name, None, "a value > 0 (required)")
    value = params[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not np.isfinite(value) or value <= 0:
        raise InvalidGeneratorParameter(name, value, "> 0")
    return float(value)


def make_ramp(n_samples: int, shape: str) -> np.ndarray:
    """Rising ramp from 0 to 1 over ``n_samples``."""
    t = np.linspace(0.0, 1.0, n_samples)
    if shape == "linear":
        return t
    if shape == "cosine":
        return 0.5 * (1.0 - np.cos(np.pi * t))
    if shape == "exponential":
        return (np.exp(3.0 * t) - 1.0) / (np.exp(3.0) - 1.0)
    raise InvalidGeneratorParameter("envelope.shape", shape, " | ".join(ENVELOPE_SHAPES))


def apply_envelope(signal: np.ndarray, envelope: Optional[Mapping[str, Any]], fs_hz: float) -> np.ndarray:
    """Apply attack and release ramps.

    Ramps longer than the signal are skipped.
    """
    if not envelope:
        return signal

    attack_ms = envelope.get("attack_ms", 0.0)
    release_ms = envelope.get("release_ms", 0.0)
    shape = envelope.get("shape", "cosine")
    if shape not in ENVELOPE_SHAPES:
        raise InvalidGeneratorParameter("envelope.shape", shape, " | ".join(ENVELOPE_SHAPES))
    for name, value in (("envelope.attack_ms", attack_ms), ("envelope.release_ms", release_ms)):
        if value < 0:
            raise InvalidGeneratorParameter(name, value, ">= 0")

    n = len(signal)
    attack = round_half_up(attack_ms * fs_hz / 1000.0)
    release = round_half_up(release_ms * fs_hz / 1000.0)

    env = np.ones(n)
    if 0 < attack < n:
        env[:attack] = make_ramp(attack, shape)
    if 0 < release < n:
        env[n - release :] = make_ramp(release, shape)[::-1]
    return signal * env


def level_gain(level: Any) -> float:
    """Linear gain for a level definition.

    Accepts a bare number (linear) or ``{value, unit}`` with unit
    ``linear_0_1``, ``dB_FS`` or ``dB_SPL``. dB SPL needs a calibration the
    system does not have, so it is treated as dB FS with a warning.
    """
    if level is None:
        raise InvalidGeneratorParameter("level", None, "number or {value, unit} (required)")

    if isinstance(level, Mapping):
        value = level.get("value")
        unit = level.get("unit", "linear_0_1")
    else:
        value, unit = level, "linear_0_1"

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidGeneratorParameter("level.value", value, "a number")

    if unit == "linear_0_1":
        if value < 0:
            raise InvalidGeneratorParameter("level.value", value, ">= 0 for linear_0_1")
        return float(value)
    if unit == "dB_SPL":
        logger.warning("dB_SPL level requires calibration; treating as dB_FS")
        return float(10.0 ** (value / 20.0))
    if unit == "dB_FS":
        return float(10.0 ** (value / 20.0))
    raise InvalidGeneratorParameter("level.unit", unit, " | ".join(LEVEL_UNITS))


def routing_channels(routing: Optional[Mapping[str, Any]]) -> List[int]:
    """Output channels from a routing definition (default [0, 1])."""
    if not routing:
        return [0, 1]
    channels = routing.get("channels", [0, 1])
    if not channels:
        raise InvalidGeneratorParameter("routing.channels", channels, "a non-empty list")
    result = []
    for ch in channels:
        if isinstance(ch, bool) or not float(ch).is_integer() or ch < 0:
            raise InvalidGeneratorParameter("routing.channels", channels, "non-negative integers")
        result.append(int(ch))
    return result


def clip_signal(signal: np.ndarray, source: str = "") -> Tuple[np.ndarray, bool]:
    """Clip to [-1, 1]; returns (signal, clipped)."""
    if signal.size == 0:
        return signal, False
    peak = float(np.max(np.abs(signal)))
    if peak <= 1.0:
        return signal, False
    logger.warning(f"Signal clipped in {source or 'generator'} (peak was {peak:.3f})")
    return np.clip(signal, -1.0, 1.0), True
