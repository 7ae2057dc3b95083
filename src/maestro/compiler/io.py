"""HDF5 persistence for sequence artifacts.

File layout::

    /                 root attributes = manifest fields
    /audio            float32 [n_samples, n_channels]
    /ttl              uint8 [n_samples]
    /events/<col>     one dataset per column, attribute ``columns`` = order
    /trial_table/<col>
    /element_table/<col>

Text columns are stored as variable-length UTF-8 strings. ``compiled_at``
is an ISO 8601 string and ``master_seed`` is omitted when unknown.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Union

import h5py
import numpy as np
import pandas as pd

from ..exceptions import ArtifactIntegrityError, CompilationError
from ..utils import array_hash
from .models import Manifest, SequenceArtifact

__all__ = ["TABLE_GROUPS", "write_artifact", "read_artifact", "read_manifest", "verify_artifact"]

logger = logging.getLogger(__name__)

TABLE_GROUPS = ("events", "trial_table", "element_table")


# ============================================================================
# Tables
# ============================================================================


def _write_table(group: h5py.Group, table: pd.DataFrame) -> None:
    columns = [str(c) for c in table.columns]
    group.attrs["columns"] = np.array(columns, dtype=h5py.string_dtype())
    for col in columns:
        series = table[col]
        if series.dtype == object:
            group.create_dataset(col, data=series.astype(str).to_numpy(dtype=object), dtype=h5py.string_dtype())
        else:
            group.create_dataset(col, data=series.to_numpy())


def _read_table(group: h5py.Group) -> pd.DataFrame:
    columns = [c.decode("utf-8") if isinstance(c, bytes) else str(c) for c in group.attrs["columns"]]
    data = {}
    for col in columns:
        dataset = group[col]
        if h5py.check_string_dtype(dataset.dtype) is not None:
            data[col] = pd.Series(dataset.asstr()[()], dtype=object)
        else:
            data[col] = pd.Series(dataset[()])
    return pd.DataFrame(data, columns=columns)


# ============================================================================
# Manifest
# ============================================================================


def _manifest_attrs(manifest: Manifest) -> Dict[str, Any]:
    attrs = manifest.model_dump(exclude_none=True)
    attrs["compiled_at"] = manifest.compiled_at.isoformat()
    return attrs


def _manifest_from_attrs(attrs: h5py.AttributeManager) -> Manifest:
    raw = {}
    for key in Manifest.model_fields:
        if key not in attrs:
            continue
        value = attrs[key]
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        elif isinstance(value, np.generic):
            value = value.item()
        raw[key] = value
    if "compiled_at" in raw:
        raw["compiled_at"] = datetime.fromisoformat(raw["compiled_at"])
    return Manifest.model_validate(raw)


# ============================================================================
# Read / Write
# ============================================================================


def write_artifact(artifact: SequenceArtifact, path: Union[str, Path]) -> Path:
    """Write an artifact to HDF5, overwriting ``path``.

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(path, "w") as f:
        for key, value in _manifest_attrs(artifact.manifest).items():
            f.attrs[key] = value
        f.create_dataset("audio", data=artifact.audio, dtype=np.float32)
        f.create_dataset("ttl", data=artifact.ttl, dtype=np.uint8)
        for name in TABLE_GROUPS:
            _write_table(f.create_group(name), getattr(artifact, name))

    logger.info(f"Wrote sequence artifact: {path} ({artifact.n_samples} samples)")
    return path


def verify_artifact(artifact: SequenceArtifact) -> None:
    """Recompute the audio hash and compare with the manifest.

    Raises:
        ArtifactIntegrityError: Hash mismatch
    """
    actual = array_hash(artifact.audio, np.float32)
    if actual != artifact.manifest.audio_hash:
        raise ArtifactIntegrityError(
            f"Audio hash mismatch: manifest {artifact.manifest.audio_hash[:12]}..., buffer {actual[:12]}...",
            context={"expected": artifact.manifest.audio_hash, "actual": actual},
        )


def read_manifest(path: Union[str, Path]) -> Manifest:
    """Read only the manifest attributes of an artifact file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sequence artifact not found: {path}")
    with h5py.File(path, "r") as f:
        return _manifest_from_attrs(f.attrs)


def read_artifact(path: Union[str, Path], verify: bool = True) -> SequenceArtifact:
    """Load an artifact written by :func:`write_artifact`.

    Args:
        path: HDF5 file
        verify: Check the audio hash against the manifest

    Raises:
        FileNotFoundError: File does not exist
        CompilationError: File is not a sequence artifact
        ArtifactIntegrityError: Hash mismatch (when ``verify``)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sequence artifact not found: {path}")

    with h5py.File(path, "r") as f:
        missing = [name for name in ("audio", "ttl", *TABLE_GROUPS) if name not in f]
        if missing:
            raise CompilationError(f"{path} is not a sequence artifact; missing {', '.join(missing)}")
        artifact = SequenceArtifact(
            audio=f["audio"][()],
            ttl=f["ttl"][()],
            events=_read_table(f["events"]),
            trial_table=_read_table(f["trial_table"]),
            element_table=_read_table(f["element_table"]),
            manifest=_manifest_from_attrs(f.attrs),
        )

    if verify:
        verify_artifact(artifact)
    logger.debug(f"Loaded sequence artifact: {path}")
    return artifact
