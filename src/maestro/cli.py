"""Command-line interface.

Commands:
    validate  Check a paradigm configuration file
    compile   Compile a paradigm into an HDF5 sequence artifact
    inspect   Print an artifact's manifest as JSON
    play      Play an artifact (dry run or NI-DAQmx hardware)

Example:
    $ maestro validate oddball.toml
    $ maestro compile oddball.toml --library stimuli/ --trials 200 --out block_001.h5 --seed 42
    $ maestro play block_001.h5 --mode dry_run
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .compiler import read_artifact, read_manifest, write_artifact
from .config import Settings, load_paradigm_config, load_settings, load_stimulus_library
from .daq import DAQEngine, PlaybackMode
from .exceptions import ConfigError, InvalidConfig, MaestroError
from .paradigms import validate_paradigm_config
from .pipeline import compile_block
from .sampling import SamplingContext
from .utils import configure_logging

__all__ = ["app"]

logger = logging.getLogger(__name__)

app = typer.Typer(name="maestro", help="Compile and play auditory experiment sequences.", no_args_is_help=True)

_state: Dict[str, Any] = {"settings": None}


def _echo_json(data: Dict[str, Any]) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _fail(error: Exception) -> None:
    message = error.report() if isinstance(error, InvalidConfig) else str(error)
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _settings() -> Settings:
    if _state["settings"] is None:
        _state["settings"] = load_settings()
    return _state["settings"]


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings TOML file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the configured log level"),
) -> None:
    """Maestro experiment compiler."""
    try:
        settings = _state["settings"] = load_settings(config)
    except (MaestroError, FileNotFoundError) as e:
        _fail(e)
    configure_logging(log_level or settings.logging.level, settings.logging.structured)


@app.command("validate")
def validate(paradigm: Path = typer.Argument(..., help="Paradigm configuration (TOML or JSON)")) -> None:
    """Validate a paradigm configuration and report every issue."""
    try:
        config = validate_paradigm_config(load_paradigm_config(paradigm))
    except (MaestroError, FileNotFoundError) as e:
        _fail(e)
    typer.echo(f"OK: {paradigm} is a valid {config.paradigm} configuration")


@app.command("compile")
def compile_(
    paradigm: Path = typer.Argument(..., help="Paradigm configuration (TOML or JSON)"),
    library: Optional[Path] = typer.Option(None, "--library", "-l", help="Stimulus library file or directory"),
    trials: int = typer.Option(..., "--trials", "-n", min=0, help="Number of trials"),
    out: Path = typer.Option(..., "--out", "-o", help="Output HDF5 file"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Master seed (default: settings or entropy)"),
    fs: Optional[float] = typer.Option(None, "--fs", help="Sample rate in Hz (default: settings)"),
) -> None:
    """Compile a paradigm into a sequence artifact."""
    try:
        settings = _settings()
        library_path = library or settings.paths.stimulus_library
        if library_path is None:
            raise ConfigError("No stimulus library given (use --library or paths.stimulus_library)")

        context = SamplingContext(master_seed=seed if seed is not None else settings.sampling.master_seed)
        _, _, artifact = compile_block(
            load_paradigm_config(paradigm),
            trials,
            load_stimulus_library(library_path),
            fs or settings.audio.fs_hz,
            context,
            ttl_pulse_samples=settings.audio.ttl_pulse_samples,
        )
        path = write_artifact(artifact, out)
    except (MaestroError, FileNotFoundError) as e:
        _fail(e)

    manifest = artifact.manifest
    typer.echo(
        f"Compiled {manifest.n_trials} trials / {manifest.n_elements} elements "
        f"({manifest.duration_ms / 1000:.2f} s, seed {manifest.master_seed}) -> {path}"
    )


@app.command("inspect")
def inspect(
    artifact: Path = typer.Argument(..., help="Sequence artifact (HDF5)"),
    full: bool = typer.Option(False, "--full", help="Load buffers, verify the hash and add event counts"),
) -> None:
    """Print the manifest of a sequence artifact as JSON."""
    try:
        if full:
            _echo_json(read_artifact(artifact, verify=True).summary())
        else:
            _echo_json(read_manifest(artifact).model_dump(mode="json"))
    except (MaestroError, FileNotFoundError) as e:
        _fail(e)


@app.command("play")
def play(
    artifact: Path = typer.Argument(..., help="Sequence artifact (HDF5)"),
    mode: Optional[PlaybackMode] = typer.Option(None, "--mode", help="dry_run or hardware (default: settings)"),
    device: Optional[str] = typer.Option(None, "--device", help="NI-DAQmx device, e.g. Dev1"),
    real_time: Optional[bool] = typer.Option(None, "--real-time/--no-real-time", help="Block for the sequence duration"),
) -> None:
    """Play a sequence artifact and print a summary."""
    try:
        daq_config = _settings().daq.model_dump()
        overrides = {"mode": mode, "device_id": device, "real_time": real_time}
        daq_config.update({key: value for key, value in overrides.items() if value is not None})
        if mode is not None and real_time is None:
            # Let the mode pick its own default
            daq_config["real_time"] = None

        engine = DAQEngine()
        engine.configure(daq_config)
        engine.load_sequence(read_artifact(artifact, verify=True))
        result = engine.play()
    except (MaestroError, FileNotFoundError) as e:
        _fail(e)

    _echo_json(result.summary())


if __name__ == "__main__":
    app()
