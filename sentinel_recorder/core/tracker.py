"""Threshold-based sound state tracking."""

from typing import List

from .config import AMPLITUDE_THRESHOLD
from .events import DetectionState, FirstSoundDetected, SessionEvent, StateChanged


class SoundStateTracker:
    """Classifies loudness values as Quiet or Active and reports transitions.

    A chunk is Active when its loudness is strictly greater than the
    threshold.  Events are produced only when the classification differs from
    the current state, so a stable signal yields no events at all.

    Not thread-safe: a tracker belongs to a single capture loop.

    Args:
        threshold: RMS level above which a chunk counts as sound
    """

    def __init__(self, threshold: float = AMPLITUDE_THRESHOLD) -> None:
        self.threshold = float(threshold)
        self.state = DetectionState.QUIET
        self.ever_detected = False

    def classify(self, loudness: float) -> DetectionState:
        if loudness > self.threshold:
            return DetectionState.ACTIVE
        return DetectionState.QUIET

    def update(self, loudness: float) -> List[SessionEvent]:
        """Feed one loudness value and return the events it triggers."""
        new_state = self.classify(loudness)
        if new_state == self.state:
            return []

        self.state = new_state
        events: List[SessionEvent] = [StateChanged(state=new_state, loudness=loudness)]
        if new_state is DetectionState.ACTIVE and not self.ever_detected:
            self.ever_detected = True
            events.append(FirstSoundDetected(loudness=loudness))
        return events

    def reset(self) -> None:
        """Return to the initial state for a new session."""
        self.state = DetectionState.QUIET
        self.ever_detected = False
