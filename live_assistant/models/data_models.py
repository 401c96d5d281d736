"""
Common data structures for the live voice session engine.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

import numpy as np


class SessionStatus(str, Enum):
    """Lifecycle states of a voice session."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


class MessageRole(str, Enum):
    """Speaker roles in a transcript."""
    USER = "user"
    ASSISTANT = "assistant"


class ToolStatus(str, Enum):
    """Outcome reported back to the remote service for a tool call."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class AudioChunk:
    """
    Immutable buffer of linear PCM samples.

    `samples` holds normalized float32 samples, shape (frames,) for mono or
    (frames, channels) for interleaved multi-channel audio.
    """
    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / self.sample_rate

    def mono(self) -> np.ndarray:
        """Return the samples downmixed to a single channel."""
        if self.samples.ndim == 1:
            return self.samples
        return self.samples.mean(axis=1).astype(np.float32)


@dataclass(frozen=True)
class PcmPayload:
    """Encoded 16-bit PCM bytes ready for the wire."""
    data: bytes
    sample_rate: int
    channels: int = 1

    @property
    def mime_type(self) -> str:
        return f"audio/pcm;rate={self.sample_rate}"


@dataclass(frozen=True)
class TranscriptionEntry:
    """One finalized line of the conversation history."""
    role: MessageRole
    text: str
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'role': self.role.value,
            'text': self.text,
            'timestamp': self.timestamp
        }


@dataclass(frozen=True)
class ToolInvocation:
    """A function-call request received from the remote service."""
    id: str
    name: str
    arguments: Any = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'ToolInvocation':
        """
        Build from a `functionCalls` entry (`{id, name, args}`).

        Non-object `args` are kept as received so argument validation can
        answer the call with an error.

        Raises:
            ValueError: If the entry itself is not an object
        """
        if not isinstance(data, dict):
            raise ValueError(f"Malformed function call entry: {data!r}")
        args = data.get('args')
        return cls(
            id=str(data.get('id') or ''),
            name=str(data.get('name') or ''),
            arguments=dict(args) if isinstance(args, dict) else ({} if args is None else args)
        )


@dataclass(frozen=True)
class ToolResponse:
    """The single response correlated to a ToolInvocation."""
    id: str
    name: str
    status: ToolStatus
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        """Build a `functionResponses` entry."""
        response = dict(self.payload)
        response['status'] = self.status.value
        return {
            'id': self.id,
            'name': self.name,
            'response': response
        }


@dataclass(frozen=True)
class BookingSummary:
    """The most recent successful appointment booking."""
    name: str
    date: str
    time: str


@dataclass
class Session:
    """
    One active conversation.

    Holds the handle to the duplex channel; `session_id` lets late callbacks
    from a previous session be recognized and dropped.
    """
    channel: Any
    status: SessionStatus = SessionStatus.CONNECTING
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=lambda: datetime.now().timestamp())


@dataclass
class SessionState:
    """
    Observable projections of the engine, read by presentation layers.

    Mutated only on the event loop thread.
    """
    status: SessionStatus = SessionStatus.DISCONNECTED
    transcript: List[TranscriptionEntry] = field(default_factory=list)
    user_speaking: bool = False
    assistant_speaking: bool = False
    tool_processing: bool = False
    last_booking: Optional[BookingSummary] = None
    error_message: Optional[str] = None

    def reset_activity(self) -> None:
        """Clear the per-session activity flags."""
        self.user_speaking = False
        self.assistant_speaking = False
        self.tool_processing = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'transcript': [entry.to_dict() for entry in self.transcript],
            'user_speaking': self.user_speaking,
            'assistant_speaking': self.assistant_speaking,
            'tool_processing': self.tool_processing,
            'last_booking': (
                {'name': self.last_booking.name, 'date': self.last_booking.date, 'time': self.last_booking.time}
                if self.last_booking else None
            ),
            'error_message': self.error_message
        }
