"""
Abstract interface for the duplex session channel to the remote inference service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Any, List, Optional

from ..models.data_models import PcmPayload, ToolResponse


MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]
ErrorHandlerFn = Callable[[BaseException], Awaitable[None]]
CloseHandler = Callable[[Optional[str]], Awaitable[None]]


@dataclass
class ChannelCallbacks:
    """
    Lifecycle and message callbacks a channel invokes after it is open.

    The channel awaits each callback before reading the next inbound message,
    so messages are handled strictly in arrival order.
    """
    on_message: MessageHandler
    on_error: ErrorHandlerFn
    on_close: CloseHandler


class SessionChannelInterface(ABC):
    """Abstract base class for duplex message channels."""

    @abstractmethod
    async def connect(self, callbacks: ChannelCallbacks, tool_declarations: Optional[List[Dict[str, Any]]] = None) -> None:
        """
        Open the channel and wait for the remote side to confirm it.

        Returns only once the channel is open; inbound messages are delivered
        to `callbacks` from then on.

        Args:
            callbacks: Handlers for inbound messages, errors and close
            tool_declarations: Function declarations offered to the remote model

        Raises:
            ChannelError: If the channel cannot be opened
        """
        pass

    @abstractmethod
    async def send_media(self, payload: PcmPayload) -> None:
        """Send one encoded audio chunk."""
        pass

    @abstractmethod
    async def send_text(self, text: str) -> None:
        """Send a text message as user input."""
        pass

    @abstractmethod
    async def send_tool_response(self, response: ToolResponse) -> None:
        """Send the response correlated to a tool call."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the channel.

        Must be safe to call multiple times and from inside a callback.
        """
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel is currently open."""
        pass
