"""Exception hierarchy for Maestro.

Every error raised by the package derives from :class:`MaestroError`, so a
caller can catch the whole family at an experiment boundary while still
branching on the specific kind:

- ConfigError: invalid paradigm/stimulus/engine configuration. Fatal at
  validation time; carries the collected :class:`ValidationIssue` records.
- PatternBuildError: a trial plan that cannot be laid out in time.
- GeneratorError: invalid physical stimulus parameters.
- CompilationError: element table / stimulus library inconsistencies.
- PlaybackError: engine state, timing and hardware I/O failures.

Example:
    >>> from maestro.exceptions import InvalidConfig, MaestroError
    >>> try:
    ...     adapter.validate(raw)
    ... except InvalidConfig as e:
    ...     print(e.report())
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ValidationIssue",
    "MaestroError",
    "ConfigError",
    "InvalidConfig",
    "InvalidProbabilities",
    "InvalidSelectionMode",
    "UnknownDistribution",
    "PatternBuildError",
    "GeneratorError",
    "InvalidGeneratorParameter",
    "CompilationError",
    "UnknownStimulus",
    "ArtifactIntegrityError",
    "PlaybackError",
    "NotConfigured",
    "NoSequenceLoaded",
    "InvalidSequence",
    "SampleRateMismatch",
    "HardwareIOError",
    "format_issues",
]


# ============================================================================
# Validation Records
# ============================================================================


class ValidationIssue(BaseModel):
    """A single configuration problem, reported with its field path."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field_path: str = Field(..., description="Dotted path to the offending field")
    error_type: str = Field(..., description="Issue category, e.g. 'range_violation'")
    message: str = Field(..., description="Human-readable description")
    value: Any = Field(default=None, description="Offending value, if any")
    expected: Optional[str] = Field(default=None, description="Description of an acceptable value")


def format_issues(issues: List[ValidationIssue]) -> str:
    """Render issues as a numbered report.

    Example:
        Found 2 validation error(s):
          1. [range_violation] iti.min: min must be < max (got: 5) (expected: < 3)
          2. [required_field] tokens: field required
    """
    if not issues:
        return "No validation errors"

    lines = [f"Found {len(issues)} validation error(s):"]
    for i, issue in enumerate(issues, start=1):
        line = f"  {i}. [{issue.error_type}] {issue.field_path}: {issue.message}"
        if issue.value is not None:
            line += f" (got: {issue.value!r})"
        if issue.expected is not None:
            line += f" (expected: {issue.expected})"
        lines.append(line)
    return "\n".join(lines)


# ============================================================================
# Base Exception
# ============================================================================


class MaestroError(Exception):
    """Base exception for all Maestro errors.

    Attributes:
        message: Error description
        context: Optional structured details for logging
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigError(MaestroError):
    """Configuration could not be loaded or is unusable."""

    pass


class InvalidConfig(ConfigError):
    """Configuration failed validation.

    All problems found in one pass are attached as ``issues``.
    """

    def __init__(
        self,
        message: str,
        issues: Optional[List[ValidationIssue]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.issues: List[ValidationIssue] = list(issues or [])

    def report(self) -> str:
        return f"{self.message}\n{format_issues(self.issues)}"


class InvalidProbabilities(InvalidConfig):
    """A probability vector does not sum to 1 or has entries outside [0, 1]."""

    pass


class InvalidSelectionMode(InvalidConfig):
    """Selection mode is unknown or not supported by the paradigm."""

    pass


class UnknownDistribution(InvalidConfig):
    """NumericField names a distribution outside the supported set."""

    pass


# ============================================================================
# Build / Generation / Compilation Errors
# ============================================================================


class PatternBuildError(MaestroError):
    """Trial plan cannot be expanded into an element table."""

    pass


class GeneratorError(MaestroError):
    """Stimulus generator failed."""

    pass


class InvalidGeneratorParameter(GeneratorError):
    """Physical parameter out of range (e.g. negative frequency)."""

    def __init__(self, parameter: str, value: Any, expected: str):
        super().__init__(
            f"Invalid value for '{parameter}': {value!r} (expected {expected})",
            context={"parameter": parameter, "value": value, "expected": expected},
        )
        self.parameter = parameter
        self.value = value
        self.expected = expected


class CompilationError(MaestroError):
    """Element table could not be compiled into a sequence artifact."""

    pass


class UnknownStimulus(CompilationError):
    """Element table references stimuli missing from the library."""

    def __init__(self, missing: List[str]):
        super().__init__(
            f"Unknown stimulus reference(s): {', '.join(sorted(missing))}",
            context={"missing": sorted(missing)},
        )
        self.missing = sorted(missing)


class ArtifactIntegrityError(CompilationError):
    """Stored audio hash does not match the audio buffer."""

    pass


# ============================================================================
# Playback Errors
# ============================================================================


class PlaybackError(MaestroError):
    """DAQ engine error."""

    pass


class NotConfigured(PlaybackError):
    """play() called before configure()."""

    pass


class NoSequenceLoaded(PlaybackError):
    """play() called before load_sequence()."""

    pass


class InvalidSequence(PlaybackError):
    """Sequence artifact is missing required parts."""

    pass


class SampleRateMismatch(PlaybackError):
    """Configured device rate differs from the artifact's sample rate."""

    def __init__(self, configured_hz: float, artifact_hz: float):
        super().__init__(
            f"Sample rate mismatch: device configured for {configured_hz} Hz, sequence compiled at {artifact_hz} Hz",
            context={"configured_hz": configured_hz, "artifact_hz": artifact_hz},
        )


class HardwareIOError(PlaybackError):
    """Device or channel error during the blocking hardware write."""

    pass
