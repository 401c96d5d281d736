"""
Provider implementations: duplex channels and bound tool actions.
"""

from .channel import GeminiLiveChannel
from .tools import create_booking_tool

__all__ = [
    'GeminiLiveChannel',
    'create_booking_tool'
]
