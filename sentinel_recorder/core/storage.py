"""Recording file storage management for Sentinel Recorder.

This module lists, inspects, verifies and deletes raw PCM recordings.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .config import OUTPUT_DIR, PCM_EXTENSION, RATE, SAMPLE_WIDTH_INT16
from .events import SessionSummary


def verify_recording(summary: SessionSummary) -> List[str]:
    """Build the end-of-session report for the presentation layer.

    Args:
        summary: Summary returned by the session on stop

    Returns:
        One-line messages, first the file check then the detection check
    """
    if summary.is_empty:
        return []

    output = Path(summary.output_path)
    messages = []
    if output.exists() and output.stat().st_size > 0:
        messages.append(f"Recording saved! File size: {output.stat().st_size // 1024} KB")
    else:
        messages.append("Recording failed: File not found or empty")

    if not summary.ever_detected:
        messages.append("No significant sound detected during recording")
    return messages


class StorageManager:
    """Manages raw PCM recordings in one directory."""

    def __init__(self, storage_dir: str = OUTPUT_DIR, sample_rate: int = RATE) -> None:
        """Initialize storage manager.

        Args:
            storage_dir: Root directory for recordings
            sample_rate: Sample rate used to derive durations
        """
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.sample_rate = sample_rate

    def _describe(self, file_path: Path) -> Dict[str, Any]:
        stat = file_path.stat()
        return {
            "name": file_path.stem,
            "path": str(file_path),
            "size": stat.st_size,
            "duration_sec": stat.st_size / (SAMPLE_WIDTH_INT16 * self.sample_rate),
            "created": stat.st_ctime,
        }

    def list_recordings(self) -> List[Dict[str, Any]]:
        """List all stored recordings, sorted by name.

        Returns:
            List of recording metadata dictionaries
        """
        recordings = []
        try:
            for audio_file in sorted(self.storage_dir.glob(f"*.{PCM_EXTENSION}")):
                recordings.append(self._describe(audio_file))
        except OSError as e:
            logger.error(f"Error listing recordings: {e}")

        return recordings

    def get_recording_metadata(self, filename: str) -> Optional[Dict[str, Any]]:
        """Get metadata for a specific recording.

        Args:
            filename: Name of the recording file

        Returns:
            Recording metadata dictionary or None if not found
        """
        file_path = self.storage_dir / filename
        try:
            if file_path.exists():
                return self._describe(file_path)
        except OSError as e:
            logger.error(f"Error getting recording metadata: {e}")

        return None

    def delete_recording(self, filename: str) -> bool:
        """Delete a recording file.

        Args:
            filename: Name of the recording file

        Returns:
            True if successful, False otherwise
        """
        try:
            file_path = self.storage_dir / filename
            if file_path.exists():
                file_path.unlink()
                logger.info(f"Deleted recording: {filename}")
                return True
        except OSError as e:
            logger.error(f"Error deleting recording: {e}")

        return False
