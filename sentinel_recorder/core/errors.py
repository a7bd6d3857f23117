"""Error types raised by Sentinel Recorder.

Every error carries a single-line, human readable message so that the CLI
can report it verbatim.
"""


class RecorderError(Exception):
    """Base class for all recorder errors."""


class DeviceUnavailableError(RecorderError):
    """The capture device cannot be acquired or does not support the format."""


class PermissionDeniedError(RecorderError):
    """Device access is not authorized."""


class SourceClosedError(RecorderError):
    """A read was attempted on a closed sample source."""


class InvalidChunkLengthError(RecorderError, ValueError):
    """An audio chunk is empty or has an odd number of bytes."""


class AlreadyRunningError(RecorderError):
    """A recording session is already active."""


class WriteFailedError(RecorderError):
    """The output file could not be opened or written."""


class StopTimeoutError(RecorderError):
    """The capture loop did not exit within the bounded wait."""
