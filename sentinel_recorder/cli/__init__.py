"""Command-line interface for Sentinel Recorder."""

from .commands import app

__all__ = ["app"]
