"""Local JSONL session log for Sentinel Recorder.

Appends structured JSON Lines entries to a log file alongside the recordings,
capturing session metadata, every detection state change and the end-of-session
summary.

Record types
------------
``session`` (event=``"start"``)
    Written once when a recording session starts, with device info and the
    detection threshold.

``state``
    Written on every Quiet/Active transition with the loudness that caused it.

``session`` (event=``"end"``)
    Written once when the session ends with the file size, whether any sound
    was detected and the error that ended it, if any.

Example log lines::

    {"type":"session","event":"start","session_id":"261019143022","output_path":"audio/recording.pcm","device_name":"USB PnP Audio Device","sample_rate":44100,"channels":1,"buffer_frames":1024,"threshold":100.0,"started_at":"2026-10-19T14:30:22"}
    {"type":"state","session_id":"261019143022","state":"active","loudness":412.7,"at":"2026-10-19T14:30:25"}
    {"type":"session","event":"end","session_id":"261019143022","ended_at":"2026-10-19T14:31:02","file_size_bytes":3528000,"chunk_count":1723,"ever_detected":true,"error":null}
"""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional


class RecordingLogger:
    """Appends JSONL log entries for recording sessions.

    Thread-safe: the capture thread writes state records while the caller
    thread writes session start/end records.  A single
    :class:`threading.Lock` serialises file writes.

    Args:
        log_path: Path to the ``.jsonl`` log file.  Parent directories are
            created automatically.
    """

    def __init__(self, log_path: Path) -> None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log_path = log_path
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write_session_start(
        self,
        session_id: str,
        output_path: str,
        device_name: str,
        sample_rate: int,
        channels: int,
        buffer_frames: int,
        threshold: float,
        started_at: Optional[datetime] = None,
    ) -> None:
        """Append a session-start record.

        Args:
            session_id: Unique session identifier (timestamp string).
            output_path: Raw PCM file the session writes to.
            device_name: Human-readable device name.
            sample_rate: Capture sample rate (Hz).
            channels: Number of recorded channels.
            buffer_frames: Frames per capture read.
            threshold: Detection threshold on the RMS scale.
            started_at: Session start time.  Defaults to ``datetime.now()``.
        """
        self._append({
            "type": "session",
            "event": "start",
            "session_id": session_id,
            "output_path": output_path,
            "device_name": device_name,
            "sample_rate": sample_rate,
            "channels": channels,
            "buffer_frames": buffer_frames,
            "threshold": threshold,
            "started_at": _iso(started_at),
        })

    def write_state_change(
        self,
        session_id: str,
        state: str,
        loudness: float,
        at: Optional[datetime] = None,
    ) -> None:
        """Append a detection state change record."""
        self._append({
            "type": "state",
            "session_id": session_id,
            "state": state,
            "loudness": round(loudness, 3),
            "at": _iso(at),
        })

    def write_session_end(
        self,
        session_id: str,
        file_size_bytes: int = 0,
        chunk_count: int = 0,
        ever_detected: bool = False,
        error: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> None:
        """Append a session-end record.

        Args:
            session_id: Session identifier matching the earlier start record.
            file_size_bytes: Size of the output file after closing.
            chunk_count: Number of chunks captured.
            ever_detected: Whether any chunk crossed the threshold.
            error: One-line reason when the session ended on a failure.
            ended_at: Session end time.  Defaults to ``datetime.now()``.
        """
        self._append({
            "type": "session",
            "event": "end",
            "session_id": session_id,
            "ended_at": _iso(ended_at),
            "file_size_bytes": file_size_bytes,
            "chunk_count": chunk_count,
            "ever_detected": ever_detected,
            "error": error,
        })

    def find_session_start(self, output_path) -> Optional[dict]:
        """Return the latest session-start record written for *output_path*.

        Paths are compared after resolving them against the working
        directory.  Returns ``None`` when the log is missing or has no match.
        """
        if not self._log_path.exists():
            return None

        target = Path(output_path).resolve()
        found = None
        with self._lock:
            with self._log_path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    try:
                        record = json.loads(line)
                    except ValueError:
                        continue
                    if not isinstance(record, dict):
                        continue
                    if record.get("type") != "session" or record.get("event") != "start":
                        continue
                    if Path(record.get("output_path", "")).resolve() == target:
                        found = record
        return found

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, record: dict) -> None:
        """Serialise *record* as JSON and append it to the log file."""
        line = json.dumps(record, ensure_ascii=False) + "\n"
        with self._lock:
            with self._log_path.open("a", encoding="utf-8") as fh:
                fh.write(line)


def _iso(dt: Optional[datetime]) -> str:
    """Return a compact ISO 8601 string for *dt*, defaulting to now."""
    if dt is None:
        dt = datetime.now()
    return dt.replace(microsecond=0).isoformat()
