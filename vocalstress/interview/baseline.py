"""
Adaptive acoustic baseline for the subject.
"""
import logging
import threading
from collections import deque
from typing import List, Optional

from ..config import ADAPTIVE_BASELINE_WINDOW
from ..infrastructure.audio.voice_id.profiles import AcousticSignature, ZERO_SIGNATURE

logger = logging.getLogger("adaptive_baseline")


class AdaptiveBaselineTracker:
    """
    Sliding window of recent non-key answer signatures.

    Stress is scored against the window mean so natural vocal drift over a
    session does not read as stress. Key-question answers are never pushed.
    """

    def __init__(self, capacity: int = ADAPTIVE_BASELINE_WINDOW):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._window: deque = deque(maxlen=capacity)
        self._enrolled: AcousticSignature = ZERO_SIGNATURE
        self._lock = threading.Lock()

    def push(self, signature: AcousticSignature) -> None:
        """Add a signature, evicting the oldest beyond capacity."""
        with self._lock:
            self._window.append(signature)
            logger.debug(f"Baseline window: {len(self._window)}/{self.capacity}")

    def seed(self, subject_signature: AcousticSignature) -> None:
        """Start a fresh window from the enrolled subject signature."""
        with self._lock:
            self._enrolled = subject_signature
            self._window.clear()
            self._window.append(subject_signature)

    def set_enrolled(self, subject_signature: Optional[AcousticSignature]) -> None:
        """Signature to fall back to when the window is empty."""
        with self._lock:
            self._enrolled = subject_signature or ZERO_SIGNATURE

    def current(self) -> AcousticSignature:
        """
        Element-wise mean of the window; the enrolled subject signature when
        the window is empty; the zero signature when neither exists.
        """
        with self._lock:
            if self._window:
                return AcousticSignature.mean_of(self._window)
            return self._enrolled

    def snapshot(self) -> List[AcousticSignature]:
        with self._lock:
            return list(self._window)

    def clear(self) -> None:
        with self._lock:
            self._window.clear()
            self._enrolled = ZERO_SIGNATURE

    def __len__(self) -> int:
        with self._lock:
            return len(self._window)
