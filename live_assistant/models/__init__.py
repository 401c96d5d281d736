"""
Data models for the live voice session engine.
"""

from .data_models import (
    SessionStatus,
    MessageRole,
    ToolStatus,
    AudioChunk,
    PcmPayload,
    TranscriptionEntry,
    ToolInvocation,
    ToolResponse,
    BookingSummary,
    Session,
    SessionState
)

__all__ = [
    'SessionStatus',
    'MessageRole',
    'ToolStatus',
    'AudioChunk',
    'PcmPayload',
    'TranscriptionEntry',
    'ToolInvocation',
    'ToolResponse',
    'BookingSummary',
    'Session',
    'SessionState'
]
