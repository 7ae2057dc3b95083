"""Train of rectangular clicks at a fixed rate.

The train lasts ``(n_clicks - 1) / click_rate_hz + click_duration_ms``.

Parameters:
    click_rate_hz: > 0
    n_clicks: >= 1 after rounding half-up (sampled counts are rounded)
    click_duration_ms: > 0 and not longer than the inter-click interval
    level: number (linear) or {value, unit}
    envelope: optional, applied to the whole train
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from ..exceptions import InvalidGeneratorParameter
from ..utils import round_half_up
from .base import Generator, GeneratorContext, GeneratorKind
from .dsp import apply_envelope, level_gain, require_positive

__all__ = ["ClickTrainGenerator"]


class ClickTrainGenerator(Generator):
    kind = GeneratorKind.CLICK_TRAIN_FIXED

    def synthesize(self, params: Dict[str, Any], context: GeneratorContext) -> np.ndarray:
        rate_hz = require_positive(params, "click_rate_hz")
        drawn = require_positive(params, "n_clicks")
        click_ms = require_positive(params, "click_duration_ms")
        n_clicks = round_half_up(drawn)
        if n_clicks < 1:
            raise InvalidGeneratorParameter("n_clicks", drawn, ">= 1 after rounding")

        interval_ms = 1000.0 / rate_hz
        if n_clicks > 1 and click_ms > interval_ms:
            raise InvalidGeneratorParameter("click_duration_ms", click_ms, f"<= inter-click interval ({interval_ms:g} ms)")
        gain = level_gain(params.get("level"))

        total_ms = interval_ms * (n_clicks - 1) + click_ms
        train = np.zeros(context.ms_to_samples(total_ms))
        click_samples = max(1, context.ms_to_samples(click_ms))
        for i in range(n_clicks):
            start = context.ms_to_samples(i * interval_ms)
            train[start : start + click_samples] = 1.0

        train = apply_envelope(train, params.get("envelope"), context.fs_hz)
        return train * gain
