"""Stimulus generators.

Each :class:`GeneratorKind` maps to one generator in :data:`GENERATORS`.
Generators turn a stimulus definition's parameters into a routed float32
audio block plus :class:`GeneratorMetadata`.

Example:
--------
>>> from maestro.generators import GeneratorContext, get_generator
>>> from maestro.sampling import SamplingContext
>>>
>>> ctx = GeneratorContext(48000, SamplingContext(master_seed=1)).for_stimulus("tone_1k")
>>> block, meta = get_generator("tone.simple").generate(
...     {"frequency_hz": 1000, "duration_ms": 100, "level": {"value": -20, "unit": "dB_FS"}},
...     ctx,
... )
>>> block.shape
(4800, 2)
"""

from typing import Dict, Type, Union

from ..exceptions import GeneratorError
from .base import Generator, GeneratorContext, GeneratorKind, GeneratorMetadata, Routing, StimulusDefinition
from .click import ClickTrainGenerator
from .dsp import DEFAULT_ENVELOPE, ENVELOPE_SHAPES, LEVEL_UNITS, apply_envelope, clip_signal, level_gain, routing_channels
from .noise import BandpassNoiseGenerator
from .silence import SilenceGenerator
from .tone import ToneGenerator

__all__ = [
    # Contract
    "Generator",
    "GeneratorContext",
    "GeneratorKind",
    "GeneratorMetadata",
    "Routing",
    "StimulusDefinition",
    # Built-ins
    "ToneGenerator",
    "BandpassNoiseGenerator",
    "ClickTrainGenerator",
    "SilenceGenerator",
    "GENERATORS",
    "get_generator",
    # DSP helpers
    "DEFAULT_ENVELOPE",
    "ENVELOPE_SHAPES",
    "LEVEL_UNITS",
    "apply_envelope",
    "level_gain",
    "routing_channels",
    "clip_signal",
]

GENERATORS: Dict[GeneratorKind, Type[Generator]] = {
    GeneratorKind.TONE_SIMPLE: ToneGenerator,
    GeneratorKind.NOISE_BANDPASS: BandpassNoiseGenerator,
    GeneratorKind.CLICK_TRAIN_FIXED: ClickTrainGenerator,
    GeneratorKind.SILENCE: SilenceGenerator,
}


def get_generator(kind: Union[GeneratorKind, str]) -> Generator:
    """Instantiate the generator for ``kind``.

    Raises:
        GeneratorError: Unknown generator kind
    """
    try:
        kind = GeneratorKind(kind)
    except ValueError:
        raise GeneratorError(
            f"Unknown generator type {kind!r}; expected one of {', '.join(k.value for k in GeneratorKind)}",
            context={"type": kind},
        )
    return GENERATORS[kind]()
