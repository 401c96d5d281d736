"""
Duplex session channel implementations.
"""

from .gemini_live import GeminiLiveChannel

__all__ = ['GeminiLiveChannel']
