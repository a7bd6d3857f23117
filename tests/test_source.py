"""MicrophoneSource tests against a fake PyAudio backend."""

import threading
import time

import pyaudio
import pytest

from conftest import EventRecorder, tone
from sentinel_recorder.core import (
    DeviceUnavailableError,
    MicrophoneSource,
    RecordingSession,
    SessionSummary,
    SourceClosedError,
    StopTimedOut,
)

LOUD = tone(1000)


class FakeStream:
    """Blocking input stream; with ``hang=True`` reads wait for ``unblock``."""

    def __init__(self, hang=False, read_error=None):
        self.hang = hang
        self.read_error = read_error
        self.reading = threading.Event()
        self.unblock = threading.Event()
        self.stopped = False
        self.closed = False

    def read(self, frames, exception_on_overflow=True):
        self.reading.set()
        if self.read_error is not None:
            raise self.read_error
        if self.hang:
            self.unblock.wait(timeout=10.0)
        return LOUD

    def stop_stream(self):
        self.stopped = True

    def close(self):
        self.closed = True


class FakePyAudio:
    """Stand-in for ``pyaudio.PyAudio`` with one input device."""

    instances = []
    stream_kwargs = {}
    format_error = None

    def __init__(self):
        self.terminated = False
        self.stream = None
        self.open_kwargs = None
        FakePyAudio.instances.append(self)

    def get_default_input_device_info(self):
        return {'index': 2, 'name': 'USB Mic', 'defaultLowInputLatency': 0.25}

    def get_device_info_by_index(self, index):
        if index != 2:
            raise OSError(f"Invalid device index {index}")
        return self.get_default_input_device_info()

    def is_format_supported(self, rate, input_device=None, input_channels=None, input_format=None):
        if FakePyAudio.format_error is not None:
            raise FakePyAudio.format_error
        return True

    def open(self, **kwargs):
        self.open_kwargs = kwargs
        self.stream = FakeStream(**FakePyAudio.stream_kwargs)
        return self.stream

    def terminate(self):
        self.terminated = True


@pytest.fixture
def fake_pyaudio(monkeypatch):
    FakePyAudio.instances = []
    FakePyAudio.stream_kwargs = {}
    FakePyAudio.format_error = None
    monkeypatch.setattr(pyaudio, "PyAudio", FakePyAudio)
    return FakePyAudio


def test_open_uses_default_device_and_latency_buffer(fake_pyaudio):
    source = MicrophoneSource()

    frames = source.open(44100, 1, 16)

    audio = fake_pyaudio.instances[0]
    assert frames == 11025
    assert source.name == "USB Mic"
    assert source.device_id == 2
    assert audio.open_kwargs["frames_per_buffer"] == 11025
    assert audio.open_kwargs["format"] == pyaudio.paInt16
    assert audio.open_kwargs["input_device_index"] == 2
    source.close()


def test_open_honours_buffer_override(fake_pyaudio):
    source = MicrophoneSource(device_id=2, frames_per_buffer=512)
    assert source.open(44100, 1, 16) == 512
    source.close()


def test_open_rejects_other_bit_depths(fake_pyaudio):
    with pytest.raises(DeviceUnavailableError, match="16-bit"):
        MicrophoneSource().open(44100, 1, 24)
    assert fake_pyaudio.instances == []


@pytest.mark.parametrize("error", [ValueError("Invalid sample rate"), OSError("Device busy")])
def test_unsupported_format_becomes_device_unavailable(fake_pyaudio, error):
    fake_pyaudio.format_error = error

    with pytest.raises(DeviceUnavailableError, match=str(error)):
        MicrophoneSource().open(44100, 1, 16)

    assert fake_pyaudio.instances[0].terminated


def test_unknown_device_becomes_device_unavailable(fake_pyaudio):
    with pytest.raises(DeviceUnavailableError, match="Invalid device index 7"):
        MicrophoneSource(device_id=7).open(44100, 1, 16)
    assert fake_pyaudio.instances[0].terminated


def test_open_after_close_is_rejected(fake_pyaudio):
    source = MicrophoneSource()
    source.close()

    with pytest.raises(DeviceUnavailableError):
        source.open(44100, 1, 16)


def test_read_then_close(fake_pyaudio):
    source = MicrophoneSource()
    frames = source.open(44100, 1, 16)

    assert source.read_chunk(frames) == LOUD
    source.close()
    source.close()

    audio = fake_pyaudio.instances[0]
    assert audio.stream.stopped and audio.stream.closed
    assert audio.terminated
    with pytest.raises(SourceClosedError):
        source.read_chunk(frames)


def test_read_error_becomes_device_unavailable(fake_pyaudio):
    fake_pyaudio.stream_kwargs = {"read_error": OSError(-9981, "Input overflowed")}
    source = MicrophoneSource()
    source.open(44100, 1, 16)

    with pytest.raises(DeviceUnavailableError, match="Input overflowed"):
        source.read_chunk(1024)
    source.close()


def test_close_does_not_wait_for_a_blocked_read(fake_pyaudio):
    fake_pyaudio.stream_kwargs = {"hang": True}
    source = MicrophoneSource()
    frames = source.open(44100, 1, 16)
    stream = fake_pyaudio.instances[0].stream

    result = {}
    reader = threading.Thread(target=lambda: result.update(chunk=source.read_chunk(frames)))
    reader.start()
    assert stream.reading.wait(2.0)

    started = time.monotonic()
    source.close()
    assert time.monotonic() - started < 1.0
    assert not stream.closed

    # The reader releases the stream once its read returns.
    stream.unblock.set()
    reader.join(2.0)
    assert result["chunk"] == LOUD
    assert stream.closed
    assert fake_pyaudio.instances[0].terminated


def test_stop_is_bounded_when_the_device_stalls(fake_pyaudio, tmp_path):
    fake_pyaudio.stream_kwargs = {"hang": True}
    recorder = EventRecorder()
    session = RecordingSession(lambda: MicrophoneSource(), callback=recorder, stop_timeout=0.5)

    session.start(tmp_path / "rec.pcm")
    stream = fake_pyaudio.instances[0].stream
    assert stream.reading.wait(2.0)

    started = time.monotonic()
    summary = session.stop()
    elapsed = time.monotonic() - started

    assert elapsed < 3.0
    assert len(recorder.of_type(StopTimedOut)) == 1
    assert recorder.of_type(SessionSummary) == [summary]
    assert not session.is_running

    stream.unblock.set()
    deadline = time.monotonic() + 2.0
    while not stream.closed and time.monotonic() < deadline:
        time.sleep(0.01)
    assert stream.closed
