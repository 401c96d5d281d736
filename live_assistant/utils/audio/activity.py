"""
Amplitude-threshold speech activity detection.

This is a cheap proxy for voice activity detection, not real VAD: ambient
noise above the threshold reads as speech and very soft speech reads as
silence.
"""

import numpy as np

from ...interfaces.activity_detector import ActivityDetectorInterface


DEFAULT_ACTIVITY_THRESHOLD = 0.05


def peak_amplitude(samples: np.ndarray) -> float:
    """Largest absolute sample value of a block (0.0 for an empty block)."""
    if samples.size == 0:
        return 0.0
    return float(np.max(np.abs(samples)))


class AmplitudeActivityDetector(ActivityDetectorInterface):
    """Flags a block as speech when its peak amplitude exceeds a threshold."""

    def __init__(self, threshold: float = DEFAULT_ACTIVITY_THRESHOLD):
        if not 0.0 < threshold < 1.0:
            raise ValueError("Activity threshold must be between 0 and 1")
        self.threshold = threshold
        # float32, the precision capture blocks arrive in
        self._limit = np.float32(threshold)

    def is_active(self, samples: np.ndarray) -> bool:
        return bool(np.float32(peak_amplitude(samples)) > self._limit)
