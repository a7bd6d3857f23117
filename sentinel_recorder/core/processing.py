"""Audio processing utilities for Sentinel Recorder.

This module provides the loudness measure used for sound detection, the dB
mapping used by the level meter, offline re-chunking of recorded files and
driver detection for device listings.
"""

from pathlib import Path
from typing import Iterator, Union

import numpy as np

from .config import SAMPLE_WIDTH_INT16
from .errors import InvalidChunkLengthError

# Little-endian signed 16-bit PCM
PCM_DTYPE = np.dtype('<i2')


def measure(chunk: bytes) -> float:
    """Return the root-mean-square loudness of a PCM chunk.

    Args:
        chunk: Raw little-endian signed 16-bit samples

    Returns:
        ``sqrt(sum(s_i ** 2) / N)`` over all samples in the chunk

    Raises:
        InvalidChunkLengthError: If the chunk is empty or has an odd length
    """
    if not chunk or len(chunk) % SAMPLE_WIDTH_INT16:
        raise InvalidChunkLengthError(
            f"Audio chunk must be a non-empty even number of bytes, got {len(chunk)}"
        )

    samples = np.frombuffer(chunk, dtype=PCM_DTYPE).astype(np.float64)
    return float(np.sqrt(np.mean(samples ** 2)))


def loudness_to_db(rms: float) -> float:
    """Map an RMS loudness to the 0-120 dB scale of the level meter.

    Args:
        rms: Loudness as returned by :func:`measure`

    Returns:
        dB level (0-120 range)
    """
    # Reference is max int16 value
    max_int16 = 32768
    if rms <= 0:
        return 0.0
    db = 20 * np.log10(rms / max_int16)
    return float(max(0, min(120, db + 120)))


def iter_chunks(path: Union[str, Path], chunk_bytes: int) -> Iterator[bytes]:
    """Re-chunk a raw PCM recording.

    The last chunk may be shorter when the file size is not a multiple of
    *chunk_bytes*; a trailing odd byte is dropped.
    """
    if chunk_bytes <= 0 or chunk_bytes % SAMPLE_WIDTH_INT16:
        raise InvalidChunkLengthError(
            f"Chunk size must be a positive even number of bytes, got {chunk_bytes}"
        )

    with Path(path).open('rb') as fh:
        while True:
            chunk = fh.read(chunk_bytes)
            usable = len(chunk) - len(chunk) % SAMPLE_WIDTH_INT16
            if usable == 0:
                return
            yield chunk[:usable]


def detect_driver_type(device_name: str) -> str:
    """Detect the audio driver type from device name.

    Args:
        device_name: The name of the audio device

    Returns:
        Driver type: 'pulse', 'alsa', 'jack', 'usb' or 'default'
    """
    name_lower = device_name.lower()

    if 'pulse' in name_lower or 'pipewire' in name_lower:
        return 'pulse'
    elif 'alsa' in name_lower or 'hw:' in name_lower or 'plughw' in name_lower:
        return 'alsa'
    elif 'jack' in name_lower:
        return 'jack'
    elif 'usb' in name_lower:
        return 'usb'
    else:
        return 'default'
