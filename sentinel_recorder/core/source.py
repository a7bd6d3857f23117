"""Sample sources for Sentinel Recorder.

A sample source owns one capture device for its whole lifetime.  The
lifecycle is ``open()`` -> any number of ``read_chunk()`` calls -> ``close()``
and sources are context managers so that the device is always released::

    with MicrophoneSource(device_id=3) as source:
        frames = source.open(44100, 1, 16)
        chunk = source.read_chunk(frames)

:meth:`SampleSource.close` may be called from another thread while a read is
blocked and returns without waiting for it.  The read in flight finishes,
every later read fails with :class:`SourceClosedError`, and a
:class:`MicrophoneSource` releases its stream as soon as that read returns.
"""

import math
import threading
from typing import Optional

import pyaudio
from loguru import logger

from .config import MIN_BUFFER_FRAMES, SAMPLE_WIDTH_INT16
from .errors import DeviceUnavailableError, SourceClosedError


class SampleSource:
    """Interface of a blocking PCM capture device."""

    def open(self, sample_rate: int, channels: int, bits_per_sample: int) -> int:
        """Acquire the device and return the buffer size in frames.

        Raises:
            DeviceUnavailableError: If the format is unsupported or the device
                cannot be acquired
        """
        raise NotImplementedError

    def read_chunk(self, frames: int) -> bytes:
        """Block until *frames* samples are available and return them.

        Returns fewer bytes only at end of stream.

        Raises:
            SourceClosedError: If the source has been closed
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release the device.  Safe to call more than once."""
        raise NotImplementedError

    @property
    def name(self) -> str:
        return type(self).__name__

    def __enter__(self) -> "SampleSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def minimum_buffer_frames(device_info: dict, sample_rate: int) -> int:
    """Return the smallest buffer the device sustains at *sample_rate*.

    Derived from the device's default low input latency and floored at
    :data:`MIN_BUFFER_FRAMES`.
    """
    latency = float(device_info.get('defaultLowInputLatency', 0.0) or 0.0)
    return max(MIN_BUFFER_FRAMES, int(math.ceil(latency * sample_rate)))


class MicrophoneSource(SampleSource):
    """PyAudio blocking input stream.

    Args:
        device_id: PyAudio input device index, ``None`` for the system default
        frames_per_buffer: Buffer size override; ``None`` uses
            :func:`minimum_buffer_frames`
    """

    def __init__(
        self,
        device_id: Optional[int] = None,
        frames_per_buffer: Optional[int] = None,
    ) -> None:
        self._device_id = device_id
        self._frames_per_buffer = frames_per_buffer
        self._device_name = 'Unknown'

        self._audio_interface: Optional[pyaudio.PyAudio] = None
        self._audio_stream = None

        # Held for the duration of each read so that the stream is never torn
        # down underneath a blocked reader.
        self._stream_lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def name(self) -> str:
        return self._device_name

    @property
    def device_id(self) -> Optional[int]:
        return self._device_id

    def open(self, sample_rate: int, channels: int, bits_per_sample: int) -> int:
        if bits_per_sample != SAMPLE_WIDTH_INT16 * 8:
            raise DeviceUnavailableError(
                f"Only 16-bit PCM is supported, got {bits_per_sample}-bit"
            )

        with self._stream_lock:
            if self._audio_stream is not None or self._closed.is_set():
                raise DeviceUnavailableError("Sample source cannot be reopened")

            audio = pyaudio.PyAudio()
            try:
                if self._device_id is None:
                    device_info = audio.get_default_input_device_info()
                else:
                    device_info = audio.get_device_info_by_index(self._device_id)
                device_index = int(device_info['index'])

                audio.is_format_supported(
                    sample_rate,
                    input_device=device_index,
                    input_channels=channels,
                    input_format=pyaudio.paInt16,
                )
                frames = self._frames_per_buffer or minimum_buffer_frames(device_info, sample_rate)

                stream = audio.open(
                    format=pyaudio.paInt16,
                    channels=channels,
                    rate=sample_rate,
                    input=True,
                    input_device_index=device_index,
                    frames_per_buffer=frames,
                )
            except (OSError, ValueError) as error:
                audio.terminate()
                raise DeviceUnavailableError(f"Cannot open input device: {error}") from error

            self._audio_interface = audio
            self._audio_stream = stream
            self._device_id = device_index
            self._device_name = device_info.get('name', 'Unknown')

        logger.info(
            f"Input stream opened: {self._device_name} (ID: {device_index}), "
            f"{sample_rate} Hz, {frames} frames/buffer"
        )
        return frames

    def read_chunk(self, frames: int) -> bytes:
        try:
            with self._stream_lock:
                if self._closed.is_set() or self._audio_stream is None:
                    raise SourceClosedError("Sample source is closed")
                try:
                    return self._audio_stream.read(frames, exception_on_overflow=False)
                except OSError as error:
                    raise DeviceUnavailableError(f"Input device read failed: {error}") from error
        finally:
            # close() during this read left the teardown to us.
            if self._closed.is_set():
                self._teardown()

    def close(self) -> None:
        self._closed.set()
        if not self._teardown(blocking=False):
            logger.debug('Read in progress; input stream is released when it returns')

    def _teardown(self, blocking: bool = True) -> bool:
        """Stop and release the stream unless a reader holds it.

        Returns:
            ``False`` if *blocking* is off and a read is in flight
        """
        if not self._stream_lock.acquire(blocking=blocking):
            return False
        try:
            stream, audio = self._audio_stream, self._audio_interface
            self._audio_stream = None
            self._audio_interface = None
        finally:
            self._stream_lock.release()

        if stream is not None:
            try:
                stream.stop_stream()
            finally:
                stream.close()
        if audio is not None:
            audio.terminate()
            logger.info('Microphone has been closed')
        return True
