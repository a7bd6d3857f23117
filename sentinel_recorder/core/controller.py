"""Boundary between the presentation layer and the recording session."""

import threading
from typing import Callable, Optional

from loguru import logger

from .errors import AlreadyRunningError
from .events import PermissionRequired, SessionEvent, SessionSummary
from .recording import RecordingSession


class RecordingController:
    """Translates external triggers into session lifecycle calls.

    Session events are relayed unchanged to *listener*.  The controller keeps
    its own "recording in progress" flag so that a second start request is
    refused without reaching the session; the flag is cleared on stop and
    whenever the session reports its summary on its own (failure path).

    Args:
        session: The recording session to drive
        listener: Presentation-layer event sink
        permission_granted: Initial microphone permission state
    """

    def __init__(
        self,
        session: RecordingSession,
        listener: Optional[Callable[[SessionEvent], None]] = None,
        permission_granted: bool = False,
    ) -> None:
        self._session = session
        self._listener = listener
        self._permission_granted = permission_granted
        self._recording = False
        self._lock = threading.Lock()
        session.set_callback(self._relay)

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._recording

    def permission_granted(self, granted: bool) -> None:
        """Record the outcome of the permission request."""
        self._permission_granted = bool(granted)
        logger.debug(f'Microphone permission granted: {self._permission_granted}')

    def request_start(self, output_path) -> bool:
        """Start recording to *output_path*.

        Returns:
            ``True`` if a session was started.  Without permission a
            :class:`PermissionRequired` event is emitted instead; with a
            recording already in progress the request is ignored.

        Raises:
            RecorderError: If the session fails to start
        """
        if not self._permission_granted:
            self._notify(PermissionRequired())
            return False

        with self._lock:
            if self._recording:
                logger.warning('Recording already in progress')
                return False
            self._recording = True

        try:
            self._session.start(output_path)
        except AlreadyRunningError:
            # A session started elsewhere is still running.
            raise
        except Exception:
            with self._lock:
                self._recording = False
            raise
        return True

    def request_stop(self) -> SessionSummary:
        """Stop the current session, if any, and return its summary."""
        summary = self._session.stop()
        with self._lock:
            self._recording = False
        return summary

    def _relay(self, event: SessionEvent) -> None:
        if isinstance(event, SessionSummary):
            with self._lock:
                self._recording = False
        self._notify(event)

    def _notify(self, event: SessionEvent) -> None:
        if self._listener is not None:
            self._listener(event)
