"""Configuration for Maestro.

Settings come from a TOML file and ``MAESTRO_`` environment variables, with
the environment taking precedence. Nested keys use a double underscore::

    MAESTRO_AUDIO__FS_HZ=44100
    MAESTRO_DAQ__MODE=hardware
    MAESTRO_SAMPLING__MASTER_SEED=42

This module also loads the two experiment inputs that are not settings:
paradigm configurations and stimulus libraries.

Example:
    >>> settings = load_settings("maestro.toml")
    >>> paradigm = load_paradigm_config("oddball.toml")
    >>> library = load_stimulus_library("stimuli/")
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomli as tomllib  # Python < 3.11
except ImportError:
    import tomllib  # Python >= 3.11

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ..daq.models import DAQConfig
from ..exceptions import ConfigError, InvalidConfig
from ..utils import read_json
from ..validation import issues_from_validation_error

__all__ = [
    "Settings",
    "ProjectConfig",
    "AudioConfig",
    "SamplingConfig",
    "PathsConfig",
    "LoggingConfig",
    "ENV_PREFIX",
    "LIBRARY_INDEX_NAMES",
    "load_settings",
    "load_paradigm_config",
    "load_stimulus_library",
]

logger = logging.getLogger(__name__)

ENV_PREFIX = "MAESTRO_"
LIBRARY_INDEX_NAMES = ("library.json", "library.toml")
_SUFFIXES = (".json", ".toml")


# ============================================================================
# Configuration Models
# ============================================================================


class ProjectConfig(BaseModel):
    """Project-level configuration."""

    name: str = Field(default="maestro-experiment")
    experimenter: str = Field(default="")


class AudioConfig(BaseModel):
    """Compilation output format."""

    fs_hz: float = Field(default=48000.0, gt=0, description="Output sample rate (Hz)")
    ttl_pulse_samples: int = Field(default=10, ge=1, description="TTL pulse width (samples)")


class SamplingConfig(BaseModel):
    master_seed: Optional[int] = Field(default=None, ge=0, description="Master seed; None draws entropy")


class PathsConfig(BaseModel):
    """Directory paths configuration."""

    output_root: Path = Field(default=Path("data/sessions"))
    stimulus_library: Optional[Path] = Field(default=None, description="Default stimulus library file or directory")

    @field_validator("output_root", "stimulus_library", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        """Expand environment variables and user home in paths."""
        if isinstance(v, str):
            return Path(os.path.expandvars(os.path.expanduser(v)))
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    structured: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got '{v}'")
        return v_upper


class Settings(BaseSettings):
    """Complete Maestro settings."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
    )

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    daq: DAQConfig = Field(default_factory=DAQConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment first, so it overrides values read from TOML."""
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


# ============================================================================
# File Readers
# ============================================================================


def _read_mapping(path: Path) -> Dict[str, Any]:
    """Parse a TOML or JSON file into a dict."""
    suffix = path.suffix.lower()
    if suffix == ".toml":
        with open(path, "rb") as f:
            data = tomllib.load(f)
    elif suffix == ".json":
        data = read_json(path)
    else:
        raise ConfigError(f"Unsupported configuration format '{path.suffix}' (expected .toml or .json): {path}")

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a table/object at the top level of {path}, got {type(data).__name__}")
    return data


# ============================================================================
# Loading Functions
# ============================================================================


def load_settings(toml_path: Path | str | None = None) -> Settings:
    """Load and validate settings from TOML and environment.

    Args:
        toml_path: Path to TOML configuration file (optional)

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If toml_path specified but doesn't exist
        InvalidConfig: If configuration is invalid
    """
    config_dict: dict[str, Any] = {}

    if toml_path is not None:
        toml_path = Path(toml_path)
        if not toml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {toml_path}")

        with open(toml_path, "rb") as f:
            config_dict = tomllib.load(f)

    # Sources (environment) only run through __init__
    try:
        settings = Settings(**config_dict)
    except ValidationError as e:
        raise InvalidConfig("Invalid settings", issues_from_validation_error(e)) from e
    logger.debug(f"Loaded settings (fs={settings.audio.fs_hz:g} Hz, daq={settings.daq.mode.value})")
    return settings


def load_paradigm_config(path: Path | str) -> Dict[str, Any]:
    """Read a paradigm configuration from TOML or JSON.

    The file must carry the paradigm kind in a top-level ``paradigm`` key;
    validation is left to the paradigm adapter.

    Raises:
        FileNotFoundError: File does not exist
        ConfigError: Unsupported format or missing ``paradigm`` key
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Paradigm configuration not found: {path}")

    config = _read_mapping(path)
    if "paradigm" not in config:
        raise ConfigError(f"Paradigm configuration {path} has no top-level 'paradigm' key")
    return config


def load_stimulus_library(path: Path | str) -> Dict[str, Dict[str, Any]]:
    """Load stimulus definitions keyed by stimulus ref.

    ``path`` may be a single TOML/JSON file mapping ref -> definition, or a
    directory holding an optional ``library.json``/``library.toml`` index
    plus one file per stimulus. A per-stimulus file is keyed by its
    ``stimulus_id`` if present, else by its file stem, and overrides an
    index entry with the same ref.

    A missing directory yields an empty library; unreadable files are
    skipped. Both are logged as warnings.

    Raises:
        ConfigError: ``path`` is a file that cannot be parsed
    """
    path = Path(path)

    if path.is_file():
        library = _read_mapping(path)
        logger.info(f"Loaded {len(library)} stimuli from {path}")
        return library

    if not path.is_dir():
        logger.warning(f"Stimulus library not found: {path}")
        return {}

    library: Dict[str, Dict[str, Any]] = {}
    for name in LIBRARY_INDEX_NAMES:
        index = path / name
        if index.exists():
            try:
                library.update(_read_mapping(index))
            except (ConfigError, ValueError, OSError) as e:
                logger.warning(f"Skipping stimulus library index {index}: {e}")

    for file in sorted(path.iterdir()):
        if file.name in LIBRARY_INDEX_NAMES or file.suffix.lower() not in _SUFFIXES or not file.is_file():
            continue
        try:
            definition = _read_mapping(file)
        except (ConfigError, ValueError, OSError) as e:
            logger.warning(f"Skipping stimulus file {file.name}: {e}")
            continue
        ref = str(definition.pop("stimulus_id", file.stem))
        library[ref] = definition

    logger.info(f"Loaded {len(library)} stimuli from {path}")
    return library
