"""Core business logic for Sentinel Recorder."""

from .config import AppConfig
from .controller import RecordingController
from .errors import (
    AlreadyRunningError,
    DeviceUnavailableError,
    InvalidChunkLengthError,
    PermissionDeniedError,
    RecorderError,
    SourceClosedError,
    StopTimeoutError,
    WriteFailedError,
)
from .events import (
    CaptureFailed,
    DetectionState,
    FirstSoundDetected,
    PermissionRequired,
    SessionEvent,
    SessionSummary,
    StateChanged,
    StopTimedOut,
    WriteFailed,
)
from .log import RecordingLogger
from .processing import detect_driver_type, iter_chunks, loudness_to_db, measure
from .recording import RecordingEngine, RecordingSession
from .source import MicrophoneSource, SampleSource
from .storage import StorageManager, verify_recording
from .tracker import SoundStateTracker

__all__ = [
    "AppConfig",
    "RecordingController",
    "RecordingEngine",
    "RecordingSession",
    "RecordingLogger",
    "MicrophoneSource",
    "SampleSource",
    "SoundStateTracker",
    "StorageManager",
    "verify_recording",
    "measure",
    "loudness_to_db",
    "iter_chunks",
    "detect_driver_type",
    "DetectionState",
    "SessionEvent",
    "StateChanged",
    "FirstSoundDetected",
    "WriteFailed",
    "CaptureFailed",
    "StopTimedOut",
    "PermissionRequired",
    "SessionSummary",
    "RecorderError",
    "DeviceUnavailableError",
    "PermissionDeniedError",
    "SourceClosedError",
    "InvalidChunkLengthError",
    "AlreadyRunningError",
    "WriteFailedError",
    "StopTimeoutError",
]
