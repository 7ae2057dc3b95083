"""Maestro: experiment compiler for auditory paradigms.

Paradigm configuration -> trial plan -> element table -> sequence artifact
-> DAQ playback. See :mod:`maestro.pipeline` for the end-to-end entry points.
"""

__version__ = "0.1.0"
