"""DAQ playback engine with dry-run and NI-DAQmx backends.

Example:
--------
>>> from maestro.daq import DAQEngine
>>> engine = DAQEngine()
>>> engine.configure({"mode": "dry_run"})
>>> engine.load_sequence(artifact)
>>> result = engine.play()
>>> result.status
'completed'
"""

from .engine import UNMAPPED_CHANNEL, DAQEngine
from .hardware import AO_RANGE_V, DEFAULT_TTL_PORT, NidaqmxBackend, PlaybackBackend
from .models import DAQConfig, EngineState, PlaybackMode, PlaybackResult

__all__ = [
    # Models
    "DAQConfig",
    "EngineState",
    "PlaybackMode",
    "PlaybackResult",
    # Engine
    "DAQEngine",
    "UNMAPPED_CHANNEL",
    # Backends
    "PlaybackBackend",
    "NidaqmxBackend",
    "DEFAULT_TTL_PORT",
    "AO_RANGE_V",
]
