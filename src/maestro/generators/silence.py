"""Silent placeholder of a given duration."""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from .base import Generator, GeneratorContext, GeneratorKind
from .dsp import require_positive

__all__ = ["SilenceGenerator"]


class SilenceGenerator(Generator):
    kind = GeneratorKind.SILENCE

    def synthesize(self, params: Dict[str, Any], context: GeneratorContext) -> np.ndarray:
        duration_ms = require_positive(params, "duration_ms")
        return np.zeros(context.ms_to_samples(duration_ms))
