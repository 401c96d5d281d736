"""
Abstract interface for user speech activity detection.
"""

from abc import ABC, abstractmethod

import numpy as np


class ActivityDetectorInterface(ABC):
    """Decides, per captured block, whether the user is speaking."""

    @abstractmethod
    def is_active(self, samples: np.ndarray) -> bool:
        """
        Args:
            samples: Normalized float samples of one captured block

        Returns:
            True if the block is considered speech
        """
        pass
