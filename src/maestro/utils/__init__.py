"""Foundation utilities for Maestro.

Provides reusable primitives for file I/O, hashing, timing, and logging.
As the bottom layer, this package must not import any other Maestro
package.
"""

from __future__ import annotations

import csv
from datetime import datetime
import hashlib
import json
import logging
import math
from contextlib import contextmanager
from pathlib import Path
import time
from typing import Any, Iterator

import numpy as np

__all__ = [
    "read_json",
    "write_json",
    "write_csv",
    "compute_hash",
    "array_hash",
    "file_hash",
    "round_half_up",
    "time_block",
    "configure_logging",
]


# ============================================================================
# JSON I/O
# ============================================================================


class _MaestroEncoder(json.JSONEncoder):
    """JSON encoder aware of paths, datetimes and numpy scalars/arrays."""

    def default(self, obj):
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        return super().default(obj)


def read_json(path: Path | str) -> dict[str, Any]:
    """Read JSON file and return parsed dictionary.

    Args:
        path: Absolute or relative path to JSON file

    Returns:
        Parsed JSON as dictionary

    Raises:
        FileNotFoundError: If file does not exist
        JSONDecodeError: If file contains invalid JSON
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"JSON file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path | str, obj: dict[str, Any], indent: int = 2) -> None:
    """Write dictionary to JSON file with pretty formatting.

    Paths, datetimes and numpy values are serialized transparently.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=indent, ensure_ascii=False, cls=_MaestroEncoder)


# ============================================================================
# CSV I/O
# ============================================================================


def write_csv(
    path: Path | str,
    rows: list[dict[str, Any]],
    fieldnames: list[str] | None = None,
) -> None:
    """Write rows to CSV file with explicit field ordering.

    Args:
        path: Target CSV file path
        rows: List of dictionaries representing table rows
        fieldnames: Optional explicit column order (default: keys from first row)

    Raises:
        ValueError: If rows is empty and fieldnames not provided
    """
    path = Path(path)

    if not rows and fieldnames is None:
        raise ValueError("Cannot write CSV: rows is empty and no fieldnames provided")

    if fieldnames is None:
        fieldnames = list(rows[0].keys())

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


# ============================================================================
# Hashing
# ============================================================================


def compute_hash(data: str | dict[str, Any]) -> str:
    """Compute deterministic SHA256 hash of a string or dictionary.

    Dictionaries are canonicalized (sorted keys, compact separators)
    before hashing.
    """
    if isinstance(data, dict):
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), cls=_MaestroEncoder)
        data_bytes = canonical.encode("utf-8")
    else:
        data_bytes = data.encode("utf-8")

    return hashlib.sha256(data_bytes).hexdigest()


def array_hash(array: np.ndarray, dtype: Any = None) -> str:
    """SHA256 over the C-contiguous bytes of an array.

    Args:
        array: Array to hash
        dtype: Optional dtype to cast to before hashing

    Returns:
        Hexadecimal digest
    """
    data = np.ascontiguousarray(array, dtype=dtype)
    return hashlib.sha256(data.tobytes()).hexdigest()


def file_hash(
    path: Path | str,
    algorithm: str = "sha256",
    chunk_size: int = 8192,
) -> str:
    """Compute content hash of a file.

    Raises:
        FileNotFoundError: If file does not exist
        ValueError: If algorithm not supported
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        hasher = hashlib.new(algorithm)
    except ValueError as e:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}") from e

    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)

    return hasher.hexdigest()


# ============================================================================
# Numeric Helpers
# ============================================================================


def round_half_up(x: float) -> int:
    """Round to nearest integer with halves away from zero.

    numpy/builtin ``round`` use banker's rounding, which would make
    ``round(0.5 * n)`` depend on the parity of ``n``.
    """
    if x >= 0:
        return int(math.floor(x + 0.5))
    return -int(math.floor(-x + 0.5))


# ============================================================================
# Timing
# ============================================================================


@contextmanager
def time_block(label: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """Context manager for timing code blocks.

    Example:
        with time_block("Compile block 3", logger):
            compile_sequence(...)
        # DEBUG: "Compile block 3 completed in 0.42s"
    """
    start_time = time.perf_counter()

    try:
        yield
    finally:
        elapsed = time.perf_counter() - start_time
        (logger or logging.getLogger(__name__)).debug(f"{label} completed in {elapsed:.2f}s")


# ============================================================================
# Logging Configuration
# ============================================================================


def configure_logging(level: str = "INFO", structured: bool = False) -> None:
    """Configure root logger with standardized format.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        structured: Emit one JSON object per line

    Raises:
        ValueError: If level is not a known logging level
    """
    numeric_level = getattr(logging, level.upper(), None)

    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Avoid duplicate handlers on repeated calls
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(numeric_level)

    if structured:
        formatter = logging.Formatter('{"timestamp": "%(asctime)s", "level": "%(levelname)s", ' '"name": "%(name)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
