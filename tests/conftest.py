"""Shared test fixtures for Sentinel Recorder tests."""

import threading
import time

import numpy as np
import pytest

from sentinel_recorder.core.errors import SourceClosedError
from sentinel_recorder.core.source import SampleSource


def pcm(*samples) -> bytes:
    """Encode samples as little-endian signed 16-bit PCM."""
    return np.array(samples, dtype='<i2').tobytes()


def tone(amplitude: int, count: int = 4) -> bytes:
    """Alternating +/- amplitude samples; RMS equals *amplitude*."""
    return pcm(*[amplitude if i % 2 == 0 else -amplitude for i in range(count)])


class FakeSource(SampleSource):
    """Scripted sample source.

    Returns the scripted chunks in order, then blocks like an idle device
    until closed (end of stream).  With ``stuck=True`` the final read ignores
    ``close()`` until ``release_stuck`` is set.
    """

    def __init__(self, chunks=(), frames=4, fail_open=None, stuck=False):
        self.chunks = list(chunks)
        self.frames = frames
        self.fail_open = fail_open
        self.stuck = stuck
        self.format = None
        self.opened = False
        self.open_calls = 0
        self.close_calls = 0
        self.closed = threading.Event()
        self.drained = threading.Event()
        self.release_stuck = threading.Event()

    @property
    def name(self):
        return "Fake Mic"

    @property
    def is_open(self):
        return self.opened and not self.closed.is_set()

    def open(self, sample_rate, channels, bits_per_sample):
        self.open_calls += 1
        self.format = (sample_rate, channels, bits_per_sample)
        if self.fail_open is not None:
            raise self.fail_open
        self.opened = True
        return self.frames

    def read_chunk(self, frames):
        if self.closed.is_set():
            raise SourceClosedError("Sample source is closed")
        if self.chunks:
            return self.chunks.pop(0)

        self.drained.set()
        if self.stuck:
            self.release_stuck.wait(timeout=5.0)
            return b"\x00\x00" * frames
        self.closed.wait(timeout=5.0)
        return b""

    def close(self):
        self.close_calls += 1
        self.closed.set()


class SourceFactory:
    """Creates a FakeSource per session and remembers every one of them."""

    def __init__(self):
        self.kwargs = {}
        self.created = []

    def __call__(self):
        source = FakeSource(**self.kwargs)
        self.created.append(source)
        return source

    @property
    def last(self):
        return self.created[-1]


class EventRecorder:
    """Thread-safe event sink with blocking waits."""

    def __init__(self):
        self.events = []
        self._cond = threading.Condition()

    def __call__(self, event):
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def of_type(self, event_type):
        with self._cond:
            return [e for e in self.events if isinstance(e, event_type)]

    def wait_for(self, event_type, timeout=2.0):
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                matches = [e for e in self.events if isinstance(e, event_type)]
                if matches:
                    return matches[0]
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AssertionError(f"No {event_type.__name__} event within {timeout}s")
                self._cond.wait(remaining)


@pytest.fixture
def temp_audio_dir(tmp_path):
    """Provide temporary audio directory for tests."""
    audio_dir = tmp_path / "audio"
    audio_dir.mkdir(parents=True, exist_ok=True)
    return audio_dir


@pytest.fixture
def source_factory():
    return SourceFactory()


@pytest.fixture
def recorder():
    return EventRecorder()

