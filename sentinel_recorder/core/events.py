"""Events pushed from a recording session to the presentation layer."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class DetectionState(Enum):
    """Binary sound classification of the latest chunk."""
    QUIET = "quiet"
    ACTIVE = "active"


class SessionEvent:
    """Base class of everything delivered through the session callback."""


@dataclass
class StateChanged(SessionEvent):
    """Detection state flipped on a threshold crossing."""
    state: DetectionState
    loudness: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class FirstSoundDetected(SessionEvent):
    """First Quiet -> Active transition of the session."""
    loudness: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class WriteFailed(SessionEvent):
    """The capture loop stopped because the output file could not be written."""
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CaptureFailed(SessionEvent):
    """The capture loop stopped because the device failed mid-session."""
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class StopTimedOut(SessionEvent):
    """The capture loop did not exit in time; resources were force-released."""
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class PermissionRequired(SessionEvent):
    """A start was requested before microphone permission was granted."""
    reason: str = "Microphone permission is required to record"
    timestamp: float = field(default_factory=time.time)


@dataclass
class SessionSummary(SessionEvent):
    """End-of-session summary.

    The empty summary (no session was active) has no output path and zero
    counts.
    """
    output_path: Optional[str] = None
    file_size_bytes: int = 0
    ever_detected: bool = False
    chunk_count: int = 0

    @classmethod
    def empty(cls) -> "SessionSummary":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.output_path is None
