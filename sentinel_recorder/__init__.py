"""Sentinel Recorder - microphone recording with live sound detection.

This package captures raw PCM audio from an input device, writes it to disk
and reports in real time whether sound is present.
"""

from .cli.commands import app

__version__ = "1.0.0"
__author__ = "Sentinel Recorder Team"

__all__ = ["app", "__version__"]
