"""Recording engine for Sentinel Recorder.

Main public classes
-------------------
:class:`RecordingEngine`
    Static helpers for enumerating available input devices.

:class:`RecordingSession`
    Runs one capture loop at a time on a dedicated thread.  Every chunk read
    from the :class:`~sentinel_recorder.core.source.SampleSource` is appended
    to the raw PCM output file, measured, and fed to a
    :class:`~sentinel_recorder.core.tracker.SoundStateTracker`.  Detection
    events are pushed to the registered callback; nothing about the running
    session is meant to be polled from another thread.

Stopping
--------
:meth:`RecordingSession.stop` sets the stop flag, closes the source without
waiting for a pending read, joins the loop with a bounded wait and releases
the output file.  The same release path runs when the loop ends on its own:
on a write or device error the failure and then the summary arrive through
the callback; at end of stream only the summary does.
"""

import datetime
import threading
from pathlib import Path
from threading import Thread
from typing import Callable, List, Optional

import pyaudio
from loguru import logger

from .config import (
    RATE, CHANNEL, BITS_PER_SAMPLE, AMPLITUDE_THRESHOLD, STOP_TIMEOUT, DATETIME_FORMAT,
)
from .errors import (
    AlreadyRunningError, DeviceUnavailableError, PermissionDeniedError,
    SourceClosedError, StopTimeoutError, WriteFailedError,
)
from .events import (
    CaptureFailed, SessionEvent, SessionSummary, StateChanged, StopTimedOut, WriteFailed,
)
from .log import RecordingLogger
from .processing import detect_driver_type, measure
from .source import SampleSource
from .tracker import SoundStateTracker

EventCallback = Callable[[SessionEvent], None]
LevelCallback = Callable[[float], None]


class RecordingEngine:
    """Input device discovery."""

    @staticmethod
    def list_devices(
        driver_filter: Optional[str] = None,
        audio: Optional[pyaudio.PyAudio] = None,
    ) -> List[dict]:
        """List all available input audio devices.

        Args:
            driver_filter: Optional driver type to filter by ('pulse', 'alsa', 'jack', 'usb', 'default')
            audio: Existing PyAudio instance to reuse; a temporary one is
                created and terminated otherwise

        Returns:
            List of dicts with keys: id, name, driver, channels, rate, is_default
        """
        owns_audio = audio is None
        if owns_audio:
            audio = pyaudio.PyAudio()

        try:
            try:
                default_device_id = int(audio.get_default_input_device_info()['index'])
            except OSError:
                default_device_id = -1

            input_devices = []
            for i in range(audio.get_device_count()):
                device_info = audio.get_device_info_by_index(i)
                if device_info.get('maxInputChannels', 0) <= 0:
                    continue

                device_name = device_info.get('name', 'Unknown')
                driver_type = detect_driver_type(device_name)

                # Skip if driver filter is specified and doesn't match
                if driver_filter and driver_type != driver_filter.lower():
                    continue

                input_devices.append({
                    'id': i,
                    'name': device_name,
                    'driver': driver_type,
                    'channels': int(device_info.get('maxInputChannels', 0)),
                    'rate': int(device_info.get('defaultSampleRate', 0)),
                    'is_default': i == default_device_id,
                })
            return input_devices
        finally:
            if owns_audio:
                audio.terminate()


class _SessionHandle:
    """Resources and loop state of one recording run."""

    def __init__(
        self,
        session_id: str,
        output_path: str,
        source: SampleSource,
        output,
        buffer_frames: int,
        tracker: SoundStateTracker,
    ) -> None:
        self.session_id = session_id
        self.output_path = output_path
        self.source = source
        self.output = output
        self.buffer_frames = buffer_frames
        self.tracker = tracker

        self.stop_event = threading.Event()
        self.started = threading.Event()
        self.worker: Optional[Thread] = None
        self.chunk_count = 0
        self.error: Optional[str] = None

        self.release_lock = threading.Lock()
        self.summary: Optional[SessionSummary] = None

    @property
    def released(self) -> bool:
        return self.summary is not None


class RecordingSession:
    """Continuous capture, persistence and sound detection.

    Args:
        source_factory: Returns a fresh, unopened sample source per session
        callback: Receives every :class:`SessionEvent`, on the capture thread
            for loop events and on the caller thread for ``stop()``
        level_callback: Receives the loudness of every chunk
        threshold: Detection threshold on the RMS scale
        rate: Capture sample rate in Hz
        channels: Capture channel count
        stop_timeout: Seconds ``stop()`` waits for the capture loop
        authorized: Returns whether device access is currently allowed
        recording_logger: Optional JSONL session log
        datetime_format: strftime pattern used for session IDs
    """

    def __init__(
        self,
        source_factory: Callable[[], SampleSource],
        callback: Optional[EventCallback] = None,
        level_callback: Optional[LevelCallback] = None,
        threshold: float = AMPLITUDE_THRESHOLD,
        rate: int = RATE,
        channels: int = CHANNEL,
        stop_timeout: float = STOP_TIMEOUT,
        authorized: Optional[Callable[[], bool]] = None,
        recording_logger: Optional[RecordingLogger] = None,
        datetime_format: str = DATETIME_FORMAT,
    ) -> None:
        self._source_factory = source_factory
        self._callback = callback
        self._level_callback = level_callback
        self.threshold = float(threshold)
        self._rate = rate
        self._channels = channels
        self._stop_timeout = stop_timeout
        self._authorized = authorized or (lambda: True)
        self._recording_logger = recording_logger
        self._datetime_format = datetime_format

        self._lock = threading.Lock()
        self._handle: Optional[_SessionHandle] = None

    def set_callback(self, callback: Optional[EventCallback]) -> None:
        self._callback = callback

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._handle is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, output_path) -> str:
        """Open the source and the output file and launch the capture loop.

        Returns once the loop has begun.

        Args:
            output_path: Raw PCM file to create or truncate

        Returns:
            The session ID

        Raises:
            AlreadyRunningError: If a session is active
            PermissionDeniedError: If device access is not authorized
            DeviceUnavailableError: If the source cannot be opened
            WriteFailedError: If the output file cannot be opened
        """
        with self._lock:
            if self._handle is not None:
                raise AlreadyRunningError(
                    f"Recording already in progress ({self._handle.output_path})"
                )
            if not self._authorized():
                raise PermissionDeniedError("Microphone access is not authorized")

            handle = self._open_handle(str(output_path))
            self._log_session_start(handle)

            worker = Thread(target=self._capture_loop, args=(handle,), daemon=True)
            worker.name = "CaptureLoopThread"
            handle.worker = worker
            self._handle = handle
            worker.start()

        handle.started.wait(timeout=self._stop_timeout)
        logger.info(
            f'Recording started. Session ID: {handle.session_id}, '
            f'output: {handle.output_path}, threshold: {self.threshold}'
        )
        return handle.session_id

    def stop(self) -> SessionSummary:
        """Stop the active session and release its resources.

        Safe to call repeatedly; without an active session the empty summary
        is returned.
        """
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is None:
            return SessionSummary.empty()

        # Stop flag must be visible before the source unblocks the reader.
        handle.stop_event.set()
        self._close_source(handle)

        worker = handle.worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=self._stop_timeout)
            if worker.is_alive():
                error = StopTimeoutError(
                    f"Capture loop did not exit within {self._stop_timeout:.1f}s; "
                    f"resources force-released"
                )
                logger.error(str(error))
                handle.error = str(error)
                self._emit(StopTimedOut(reason=str(error)))

        summary = self._release(handle)
        self._emit(summary)
        return summary

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_session_id(self) -> str:
        return datetime.datetime.now().strftime(self._datetime_format)

    def _open_output(self, output_path: str):
        """Create or truncate the raw PCM output file."""
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        return open(output_path, 'wb')

    def _open_handle(self, output_path: str) -> _SessionHandle:
        source = self._source_factory()
        try:
            buffer_frames = source.open(self._rate, self._channels, BITS_PER_SAMPLE)
        except Exception:
            source.close()
            raise

        try:
            output = self._open_output(output_path)
        except OSError as error:
            source.close()
            raise WriteFailedError(f"Cannot open output file {output_path}: {error}") from error

        return _SessionHandle(
            session_id=self._build_session_id(),
            output_path=output_path,
            source=source,
            output=output,
            buffer_frames=buffer_frames,
            tracker=SoundStateTracker(self.threshold),
        )

    def _capture_loop(self, handle: _SessionHandle) -> None:
        """Read -> write -> measure -> classify, until stopped."""
        handle.started.set()
        failure: Optional[SessionEvent] = None
        try:
            while not handle.stop_event.is_set():
                try:
                    chunk = handle.source.read_chunk(handle.buffer_frames)
                except SourceClosedError:
                    break
                if not chunk:
                    break

                try:
                    handle.output.write(chunk)
                except (OSError, ValueError) as error:
                    raise WriteFailedError(
                        f"Cannot write to {handle.output_path}: {error}"
                    ) from error
                handle.chunk_count += 1

                loudness = measure(chunk)
                self._emit_level(loudness)
                for event in handle.tracker.update(loudness):
                    self._on_tracker_event(handle, event)
        except WriteFailedError as error:
            failure = WriteFailed(reason=str(error))
        except DeviceUnavailableError as error:
            failure = CaptureFailed(reason=str(error))
        except Exception as error:
            logger.exception('Unexpected error in capture loop')
            failure = CaptureFailed(reason=f"Capture loop failed: {error}")

        if failure is not None or not handle.stop_event.is_set():
            self._finish(handle, failure)
        logger.debug(f'Capture loop exited (session: {handle.session_id})')

    def _on_tracker_event(self, handle: _SessionHandle, event: SessionEvent) -> None:
        if isinstance(event, StateChanged):
            logger.debug(f'Sound state: {event.state.value} (loudness {event.loudness:.1f})')
            if self._recording_logger is not None:
                self._recording_logger.write_state_change(
                    session_id=handle.session_id,
                    state=event.state.value,
                    loudness=event.loudness,
                )
        else:
            logger.info(f'Sound detected (session: {handle.session_id})')
        self._emit(event)

    def _finish(self, handle: _SessionHandle, failure: Optional[SessionEvent]) -> None:
        """Tear down after the loop ended without stop().

        *failure* is ``None`` when the source simply ran dry or was closed
        underneath the loop.
        """
        with self._lock:
            owner = self._handle is handle
            if owner:
                self._handle = None

        if handle.released:
            # stop() already force-released everything.
            if failure is not None:
                logger.debug(f'Ignoring late loop failure: {failure.reason}')
            return

        if failure is None:
            logger.info(f'Sample source ended (session: {handle.session_id})')
        else:
            logger.error(failure.reason)
            handle.error = failure.reason
            self._emit(failure)
        if owner:
            self._emit(self._release(handle))

    def _close_source(self, handle: _SessionHandle) -> None:
        try:
            handle.source.close()
        except Exception as error:
            logger.error(f'Error closing sample source: {error}')

    def _release(self, handle: _SessionHandle) -> SessionSummary:
        """Close source and file exactly once and build the summary."""
        with handle.release_lock:
            if handle.summary is not None:
                return handle.summary

            self._close_source(handle)
            try:
                handle.output.close()
            except OSError as error:
                reason = f"Cannot flush {handle.output_path}: {error}"
                logger.error(reason)
                if handle.error is None:
                    handle.error = reason
                    self._emit(WriteFailed(reason=reason))

            output = Path(handle.output_path)
            file_size = output.stat().st_size if output.exists() else 0
            handle.summary = SessionSummary(
                output_path=handle.output_path,
                file_size_bytes=file_size,
                ever_detected=handle.tracker.ever_detected,
                chunk_count=handle.chunk_count,
            )

        if self._recording_logger is not None:
            self._recording_logger.write_session_end(
                session_id=handle.session_id,
                file_size_bytes=file_size,
                chunk_count=handle.chunk_count,
                ever_detected=handle.tracker.ever_detected,
                error=handle.error,
            )
        logger.info(
            f'Recording stopped. Session ID: {handle.session_id}, '
            f'{handle.chunk_count} chunks, {file_size} bytes'
        )
        return handle.summary

    def _log_session_start(self, handle: _SessionHandle) -> None:
        if self._recording_logger is None:
            return
        self._recording_logger.write_session_start(
            session_id=handle.session_id,
            output_path=handle.output_path,
            device_name=handle.source.name,
            sample_rate=self._rate,
            channels=self._channels,
            buffer_frames=handle.buffer_frames,
            threshold=self.threshold,
        )

    def _emit(self, event: SessionEvent) -> None:
        if self._callback is None:
            return
        try:
            self._callback(event)
        except Exception:
            logger.exception(f'Event callback failed for {type(event).__name__}')

    def _emit_level(self, loudness: float) -> None:
        if self._level_callback is None:
            return
        try:
            self._level_callback(loudness)
        except Exception:
            logger.exception('Level callback failed')
