"""Playback engine: sequence artifact -> device (or simulation).

The engine is a small state machine (:class:`EngineState`). Playback is
synchronous: :meth:`DAQEngine.play` returns when the sequence is done.

Dry run needs no hardware. Realized timestamps equal the scheduled ones,
and every coded event is mapped to its TTL channel name (``"unmapped"``
when the code is not in ``ttl_mapping``).

Example:
    >>> engine = DAQEngine()
    >>> engine.configure({"mode": "dry_run", "ttl_mapping": {1: "standard", 2: "deviant"}})
    >>> engine.load_sequence(artifact)
    >>> result = engine.play()
    >>> result.ttl_events["channel"].value_counts()
"""

from __future__ import annotations

from datetime import datetime
import logging
import time
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np
import pandas as pd

from ..compiler.models import EVENT_COLUMNS, SequenceArtifact
from ..exceptions import HardwareIOError, InvalidSequence, NoSequenceLoaded, NotConfigured, PlaybackError, SampleRateMismatch
from ..validation import validate_model
from .hardware import NidaqmxBackend, PlaybackBackend
from .models import DAQConfig, EngineState, PlaybackMode, PlaybackResult

__all__ = ["DAQEngine", "UNMAPPED_CHANNEL"]

logger = logging.getLogger(__name__)

UNMAPPED_CHANNEL = "unmapped"


class DAQEngine:
    """Configure, load and play compiled sequences.

    Args:
        backend: Device backend for hardware mode (NI-DAQmx if omitted)
    """

    def __init__(self, backend: Optional[PlaybackBackend] = None):
        self._backend = backend
        self._config: Optional[DAQConfig] = None
        self._state = EngineState.IDLE
        self._audio: Optional[np.ndarray] = None
        self._ttl: Optional[np.ndarray] = None
        self._events: Optional[pd.DataFrame] = None
        self._manifest: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def config(self) -> Optional[DAQConfig]:
        return self._config

    def is_configured(self) -> bool:
        return self._config is not None

    def is_loaded(self) -> bool:
        return self._audio is not None

    def get_sequence_info(self) -> Optional[Dict[str, Any]]:
        """Shape and provenance of the loaded sequence, or None."""
        if not self.is_loaded():
            return None
        fs_hz = float(self._manifest["fs_hz"])
        return {
            "n_samples": int(self._audio.shape[0]),
            "n_channels": int(self._audio.shape[1]),
            "fs_hz": fs_hz,
            "duration_ms": self._audio.shape[0] * 1000.0 / fs_hz,
            "n_events": len(self._events),
            "audio_hash": self._manifest.get("audio_hash", ""),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def configure(self, config: Union[DAQConfig, Mapping[str, Any]]) -> DAQConfig:
        """Validate and store the engine configuration.

        Raises:
            InvalidConfig: Invalid configuration
            PlaybackError: Engine is playing
        """
        if self._state == EngineState.PLAYING:
            raise PlaybackError("Cannot reconfigure while playing")
        self._config = validate_model(DAQConfig, config, "DAQ configuration")
        logger.info(f"DAQ engine configured: mode={self._config.mode.value}, device={self._config.device_id or '-'}")
        return self._config

    def load_sequence(self, artifact: Union[SequenceArtifact, Mapping[str, Any]]) -> None:
        """Load a compiled sequence and move to ``ready``.

        Accepts a :class:`SequenceArtifact` or a mapping with ``audio``,
        ``ttl``, ``events`` and ``manifest`` (holding ``fs_hz``).

        Raises:
            InvalidSequence: Missing parts or inconsistent buffer lengths
        """
        if self._state == EngineState.PLAYING:
            raise PlaybackError("Cannot load a sequence while playing")

        if isinstance(artifact, SequenceArtifact):
            parts = {
                "audio": artifact.audio,
                "ttl": artifact.ttl,
                "events": artifact.events,
                "manifest": artifact.manifest.model_dump(),
            }
        elif isinstance(artifact, Mapping):
            parts = dict(artifact)
        else:
            raise InvalidSequence(f"Expected a SequenceArtifact or mapping, got {type(artifact).__name__}")

        missing = [key for key in ("audio", "ttl", "events", "manifest") if parts.get(key) is None]
        if missing:
            raise InvalidSequence(f"Sequence is missing: {', '.join(missing)}", context={"missing": missing})

        manifest = parts["manifest"]
        if hasattr(manifest, "model_dump"):
            manifest = manifest.model_dump()
        if not isinstance(manifest, Mapping) or not manifest.get("fs_hz"):
            raise InvalidSequence("Sequence manifest has no fs_hz")

        audio = np.asarray(parts["audio"], dtype=np.float32)
        if audio.ndim == 1:
            audio = audio[:, np.newaxis]
        ttl = np.asarray(parts["ttl"], dtype=np.uint8).reshape(-1)
        if audio.ndim != 2:
            raise InvalidSequence(f"audio must be [n_samples, n_channels], got shape {audio.shape}")
        if audio.shape[0] != ttl.shape[0]:
            raise InvalidSequence(f"audio ({audio.shape[0]}) and ttl ({ttl.shape[0]}) lengths differ")

        events = pd.DataFrame(parts["events"])
        absent = [col for col in EVENT_COLUMNS if col not in events.columns]
        if absent:
            raise InvalidSequence(f"events table is missing column(s): {', '.join(absent)}")

        self._audio, self._ttl, self._events, self._manifest = audio, ttl, events, dict(manifest)
        self._state = EngineState.READY
        info = self.get_sequence_info()
        logger.info(f"Loaded sequence: {info['n_samples']} samples, {info['n_events']} events, {info['duration_ms'] / 1000:.2f} s")

    def play(self) -> PlaybackResult:
        """Play the loaded sequence and block until it finishes.

        Raises:
            NotConfigured: configure() was not called
            NoSequenceLoaded: load_sequence() was not called
            SampleRateMismatch: Configured fs_hz differs from the sequence
            HardwareIOError: Device failure (engine returns to ``ready``)
        """
        if self._config is None:
            raise NotConfigured("DAQ engine is not configured; call configure() first")
        if not self.is_loaded():
            raise NoSequenceLoaded("No sequence loaded; call load_sequence() first")
        if self._state == EngineState.PLAYING:
            raise PlaybackError("Engine is already playing")

        fs_hz = float(self._manifest["fs_hz"])
        if self._config.fs_hz is not None and self._config.fs_hz != fs_hz:
            raise SampleRateMismatch(self._config.fs_hz, fs_hz)

        duration_ms = self._audio.shape[0] * 1000.0 / fs_hz
        self._state = EngineState.PLAYING
        start_time = datetime.now()
        logger.info(f"Playback started ({self._config.mode.value}, {duration_ms / 1000:.2f} s)")

        if self._config.mode == PlaybackMode.HARDWARE:
            self._play_hardware(fs_hz, duration_ms)
            events = self._realized_events(fs_hz)
            ttl_events = None
        else:
            if self._config.real_time:
                time.sleep(duration_ms / 1000.0)
            events = self._realized_events(fs_hz)
            ttl_events = self._map_ttl_events(events)

        end_time = datetime.now()
        self._state = EngineState.COMPLETED
        logger.info(f"Playback completed: {len(events)} events in {(end_time - start_time).total_seconds():.2f} s")

        return PlaybackResult(
            success=True,
            status="completed",
            mode=self._config.mode,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            events_played=len(events),
            events=events,
            ttl_events=ttl_events,
            sequence_hash=str(self._manifest.get("audio_hash", "")),
        )

    def stop(self) -> None:
        """Abort playback (best effort) and return to ``ready``."""
        if self._state != EngineState.PLAYING:
            return
        if self._backend is not None:
            self._backend.stop()
        self._state = EngineState.READY
        logger.warning("Playback stopped")

    def reset(self) -> None:
        """Drop the loaded sequence and return to ``idle``; configuration is kept."""
        self.stop()
        self._audio = self._ttl = self._events = None
        self._manifest = {}
        self._state = EngineState.IDLE
        logger.debug("DAQ engine reset")

    # ------------------------------------------------------------------
    # Playback helpers
    # ------------------------------------------------------------------

    def _play_hardware(self, fs_hz: float, duration_ms: float) -> None:
        if self._backend is None:
            self._backend = NidaqmxBackend()
        timeout_s = duration_ms / 1000.0 + self._config.timeout_margin_s
        try:
            self._backend.write(self._audio, self._ttl, fs_hz, self._config, timeout_s)
        except Exception as e:
            self._state = EngineState.READY
            if isinstance(e, HardwareIOError):
                raise
            raise HardwareIOError(f"Hardware playback failed: {e}", context={"device_id": self._config.device_id}) from e

    def _realized_events(self, fs_hz: float) -> pd.DataFrame:
        # Both backends are sample-clocked, so realized time is the sample time
        events = self._events.copy()
        events["timestamp_ms"] = events["sample_index"].to_numpy(dtype=float) * 1000.0 / fs_hz
        return events

    def _map_ttl_events(self, events: pd.DataFrame) -> pd.DataFrame:
        coded = events[events["code"].astype(int) > 0].copy()
        mapping = self._config.ttl_mapping
        coded["channel"] = [mapping.get(int(code), UNMAPPED_CHANNEL) for code in coded["code"]]
        return coded.reset_index(drop=True)
