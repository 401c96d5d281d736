"""
Abstract interfaces for the session engine collaborators.
"""

from .channel import SessionChannelInterface, ChannelCallbacks
from .output_sink import OutputSinkInterface
from .activity_detector import ActivityDetectorInterface

__all__ = [
    'SessionChannelInterface',
    'ChannelCallbacks',
    'OutputSinkInterface',
    'ActivityDetectorInterface'
]
