"""DAQ engine configuration, state and playback result models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = ["EngineState", "PlaybackMode", "DAQConfig", "PlaybackResult"]


class EngineState(str, Enum):
    """Playback engine lifecycle.

    idle -> (load_sequence) -> ready -> (play) -> playing -> completed
    """

    IDLE = "idle"
    READY = "ready"
    PLAYING = "playing"
    COMPLETED = "completed"


class PlaybackMode(str, Enum):
    DRY_RUN = "dry_run"
    HARDWARE = "hardware"


class DAQConfig(BaseModel):
    """Engine configuration.

    ``real_time`` defaults to True on hardware and False in dry runs.
    Channel names without a ``/`` are taken relative to ``device_id``
    (``ao0`` -> ``Dev1/ao0``).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: PlaybackMode = Field(default=PlaybackMode.DRY_RUN, description="dry_run simulates playback, hardware drives NI-DAQmx")
    device_id: Optional[str] = Field(default=None, description="NI-DAQmx device name, e.g. 'Dev1'")
    audio_channels: Optional[List[str]] = Field(default=None, description="Analog output channels, one per audio column")
    ttl_channel: Optional[str] = Field(default=None, description="Digital output port carrying the 8-bit TTL code")
    ttl_mapping: Dict[int, str] = Field(default_factory=dict, description="TTL code -> channel/line name for event reports")
    fs_hz: Optional[float] = Field(default=None, gt=0, description="Device sample rate; must match the sequence when set")
    real_time: Optional[bool] = Field(default=None, description="Block for the sequence duration")
    timeout_margin_s: float = Field(default=2.0, ge=0, description="Added to the sequence duration for the write timeout")

    @field_validator("ttl_mapping")
    @classmethod
    def _check_codes(cls, v: Dict[int, str]) -> Dict[int, str]:
        for code in v:
            if not 0 <= code <= 255:
                raise ValueError(f"TTL code {code} out of range [0, 255]")
        return v

    @model_validator(mode="before")
    @classmethod
    def _default_real_time(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("real_time") is None:
            data = dict(data)
            data["real_time"] = data.get("mode", PlaybackMode.DRY_RUN) in (PlaybackMode.HARDWARE, "hardware")
        return data

    @model_validator(mode="after")
    def _check_hardware(self) -> "DAQConfig":
        if self.mode == PlaybackMode.HARDWARE and not self.device_id:
            raise ValueError("device_id is required in hardware mode")
        return self

    def qualified(self, channel: str) -> str:
        """Prefix a relative channel name with the device."""
        if "/" in channel or not self.device_id:
            return channel
        return f"{self.device_id}/{channel}"


class PlaybackResult(BaseModel):
    """Outcome of one :meth:`DAQEngine.play` call."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    success: bool
    status: Literal["completed", "failed"]
    mode: PlaybackMode
    start_time: datetime
    end_time: datetime
    duration_ms: float = Field(..., ge=0, description="Sequence duration")
    events_played: int = Field(..., ge=0)
    events: pd.DataFrame = Field(..., description="Sequence events plus realized timestamp_ms")
    ttl_events: Optional[pd.DataFrame] = Field(default=None, description="Dry run only: coded events with mapped channel")
    sequence_hash: str = Field(..., description="Audio hash of the played sequence")
    error: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """Scalar fields, JSON-serializable."""
        return self.model_dump(mode="json", exclude={"events", "ttl_events"})
