"""Playback backends.

:class:`PlaybackBackend` is the seam between the engine state machine and
the device. :class:`NidaqmxBackend` drives a National Instruments card:

- an analog output task carries the audio, one channel per column;
- a digital output task writes the TTL code as one byte per sample on a
  port, clocked from the analog task's sample clock so both stay
  sample-aligned.

``nidaqmx`` is imported on first use; install the ``hardware`` extra.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any, List

import numpy as np

from ..exceptions import HardwareIOError
from .models import DAQConfig

__all__ = ["PlaybackBackend", "NidaqmxBackend", "DEFAULT_TTL_PORT", "AO_RANGE_V"]

logger = logging.getLogger(__name__)

DEFAULT_TTL_PORT = "port0/line0:7"
AO_RANGE_V = (-10.0, 10.0)


class PlaybackBackend(ABC):
    """Device seam used by :class:`~maestro.daq.engine.DAQEngine` in hardware mode."""

    @abstractmethod
    def write(self, audio: np.ndarray, ttl: np.ndarray, fs_hz: float, config: DAQConfig, timeout_s: float) -> None:
        """Play ``audio`` [n, channels] and ``ttl`` [n] and block until done."""

    @abstractmethod
    def stop(self) -> None:
        """Abort a running write (best effort)."""


class NidaqmxBackend(PlaybackBackend):
    """One finite, blocking AO + DO write per call."""

    def __init__(self):
        self._tasks: List[Any] = []

    @staticmethod
    def _import():
        try:
            import nidaqmx
        except ImportError as e:
            raise HardwareIOError("nidaqmx is not installed; install the 'hardware' extra") from e
        return nidaqmx

    @staticmethod
    def audio_channel_names(config: DAQConfig, n_channels: int) -> List[str]:
        names = config.audio_channels or [f"ao{i}" for i in range(n_channels)]
        if len(names) != n_channels:
            raise HardwareIOError(f"Sequence has {n_channels} audio channel(s) but {len(names)} output channel(s) are configured")
        return [config.qualified(name) for name in names]

    def write(self, audio: np.ndarray, ttl: np.ndarray, fs_hz: float, config: DAQConfig, timeout_s: float) -> None:
        nidaqmx = self._import()
        from nidaqmx.constants import AcquisitionType, LineGrouping
        from nidaqmx.stream_writers import AnalogMultiChannelWriter, DigitalSingleChannelWriter

        n_samples = int(audio.shape[0])
        ao_names = self.audio_channel_names(config, int(audio.shape[1]))
        ttl_port = config.qualified(config.ttl_channel or DEFAULT_TTL_PORT)
        logger.info(f"Hardware write: {n_samples} samples at {fs_hz:g} Hz on {', '.join(ao_names)} + {ttl_port}")

        with nidaqmx.Task() as ao_task, nidaqmx.Task() as do_task:
            self._tasks = [ao_task, do_task]
            try:
                for name in ao_names:
                    ao_task.ao_channels.add_ao_voltage_chan(name, min_val=AO_RANGE_V[0], max_val=AO_RANGE_V[1])
                ao_task.timing.cfg_samp_clk_timing(rate=fs_hz, sample_mode=AcquisitionType.FINITE, samps_per_chan=n_samples)

                do_task.do_channels.add_do_chan(ttl_port, line_grouping=LineGrouping.CHAN_FOR_ALL_LINES)
                do_task.timing.cfg_samp_clk_timing(
                    rate=fs_hz,
                    source=f"/{config.device_id}/ao/SampleClock",
                    sample_mode=AcquisitionType.FINITE,
                    samps_per_chan=n_samples,
                )

                # Channel-major float64 for the analog writer
                AnalogMultiChannelWriter(ao_task.out_stream, auto_start=False).write_many_sample(np.ascontiguousarray(audio.T, dtype=np.float64))
                DigitalSingleChannelWriter(do_task.out_stream, auto_start=False).write_many_sample_port_byte(np.ascontiguousarray(ttl, dtype=np.uint8))

                # DO waits on the AO clock, so it starts first
                do_task.start()
                ao_task.start()
                ao_task.wait_until_done(timeout=timeout_s)
                do_task.wait_until_done(timeout=timeout_s)
            finally:
                self._tasks = []

    def stop(self) -> None:
        for task in self._tasks:
            try:
                task.stop()
            except Exception as e:
                logger.warning(f"Failed to stop DAQ task: {e}")
