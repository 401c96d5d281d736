"""
Live Assistant - real-time duplex voice session engine.

This package provides:
- Microphone capture with per-block voice-activity detection
- Gapless, interruptible playback of streamed model audio
- Turn-based transcript assembly for both speakers
- Correlated tool-call dispatch with exactly-once responses
- A session lifecycle controller over a Gemini Live channel

Usage:
    from live_assistant import SessionController, get_framework_config

    controller = SessionController.from_config(get_framework_config())
    await controller.start()
    ...
    await controller.stop()
"""

from .session_controller import SessionController
from .config import get_framework_config
from . import interfaces
from . import models
from . import providers

__version__ = "1.0.0"

__all__ = [
    'SessionController',
    'get_framework_config',
    'interfaces',
    'models',
    'providers'
]
