"""Session output: one directory per session, one subdirectory per block.

Layout::

    <output_root>/<subject_id>/<session_id>/
        session.json          written by finalize()
        events.log            timestamped log_event() lines
        notes.txt             add_note() lines
        block_001/
            config.json       block configuration
            events.csv        realized events (with timestamp_ms)
            trials.csv        trial table
            playback.json     playback summary and manifest
            sequence.h5       compiled artifact (optional, sha256 kept in the block summary)

Example:
    >>> session = SessionLog("data/sessions", "M01", "S001", experimenter="ab", paradigm="oddball")
    >>> block = session.start_block(1, paradigm_config)
    >>> block.record(artifact, result)
    >>> session.finalize("completed")
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd

from .compiler import SequenceArtifact, write_artifact
from .daq import PlaybackResult
from .utils import file_hash, write_csv, write_json

__all__ = ["SessionLog", "BlockLog", "SESSION_FILE"]

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"
_LEVELS = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR}


def _write_table(path: Path, table: pd.DataFrame) -> None:
    write_csv(path, table.to_dict("records"), fieldnames=[str(c) for c in table.columns])


class BlockLog:
    """Output directory of one block."""

    def __init__(self, block_dir: Path, block_index: int, block_config: Mapping[str, Any]):
        self.block_dir = Path(block_dir)
        self.block_index = block_index
        self.started_at = datetime.now()
        self.summary: Dict[str, Any] = {"block_index": block_index, "started_at": self.started_at, "status": "started"}

        self.block_dir.mkdir(parents=True, exist_ok=True)
        write_json(self.block_dir / "config.json", dict(block_config))

    def record(self, artifact: SequenceArtifact, result: PlaybackResult, save_artifact: bool = True) -> Dict[str, Any]:
        """Write the block's events, trials, playback summary and artifact."""
        _write_table(self.block_dir / "events.csv", result.events)
        _write_table(self.block_dir / "trials.csv", artifact.trial_table)

        playback = {
            **result.summary(),
            "manifest": artifact.manifest.model_dump(mode="json"),
        }
        write_json(self.block_dir / "playback.json", playback)

        if save_artifact:
            saved = write_artifact(artifact, self.block_dir / "sequence.h5")
            self.summary["artifact_file"] = saved.name
            self.summary["artifact_sha256"] = file_hash(saved)

        self.summary.update(
            {
                "status": result.status,
                "ended_at": result.end_time,
                "n_trials": artifact.manifest.n_trials,
                "events_played": result.events_played,
                "sequence_hash": result.sequence_hash,
            }
        )
        logger.info(f"Block {self.block_index} recorded: {result.events_played} events -> {self.block_dir}")
        return self.summary


class SessionLog:
    """Directory and metadata for one experiment session.

    Args:
        output_root: Root of all session output
        subject_id: Subject identifier
        session_id: Session identifier
        experimenter: Experimenter name
        paradigm: Paradigm (or experiment) name
    """

    def __init__(
        self,
        output_root: Union[str, Path],
        subject_id: str,
        session_id: str,
        experimenter: str = "",
        paradigm: str = "",
    ):
        self.subject_id = subject_id
        self.session_id = session_id
        self.experimenter = experimenter
        self.paradigm = paradigm
        self.session_dir = Path(output_root) / subject_id / session_id
        self.session_dir.mkdir(parents=True, exist_ok=True)

        self.started_at = datetime.now()
        self.ended_at: Optional[datetime] = None
        self.blocks: List[BlockLog] = []
        self.notes: List[Dict[str, Any]] = []

        self.log_event("INFO", f"Session started: subject={subject_id} session={session_id}")

    def start_block(self, block_index: int, block_config: Mapping[str, Any]) -> BlockLog:
        """Create ``block_###/`` and store the block configuration."""
        block = BlockLog(self.session_dir / f"block_{block_index:03d}", block_index, block_config)
        self.blocks.append(block)
        self.log_event("INFO", f"Block {block_index} started")
        return block

    def log_event(self, level: str, message: str) -> None:
        """Append a line to ``events.log`` and forward it to the logger."""
        level = level.upper()
        timestamp = datetime.now().isoformat(timespec="milliseconds")
        with open(self.session_dir / "events.log", "a", encoding="utf-8") as f:
            f.write(f"{timestamp} [{level}] {message}\n")
        logger.log(_LEVELS.get(level, logging.INFO), message)

    def add_note(self, note: str) -> None:
        """Record a free-text experimenter note."""
        timestamp = datetime.now()
        self.notes.append({"time": timestamp, "note": note})
        with open(self.session_dir / "notes.txt", "a", encoding="utf-8") as f:
            f.write(f"[{timestamp:%H:%M:%S}] {note}\n")

    def finalize(self, status: str = "completed") -> Path:
        """Write ``session.json`` and return its path."""
        self.ended_at = datetime.now()
        metadata = {
            "subject_id": self.subject_id,
            "session_id": self.session_id,
            "experimenter": self.experimenter,
            "paradigm": self.paradigm,
            "status": status,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_s": (self.ended_at - self.started_at).total_seconds(),
            "n_blocks": len(self.blocks),
            "blocks": [block.summary for block in self.blocks],
            "notes": self.notes,
        }
        path = self.session_dir / SESSION_FILE
        write_json(path, metadata)
        self.log_event("INFO", f"Session finalized: {status}")
        return path
