"""
Abstract interface for audio output sinks with a scheduling clock.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from ..models.data_models import AudioChunk


class OutputSinkInterface(ABC):
    """
    An output device that can start buffers at exact clock times.

    The clock (`current_time`) is in seconds of rendered output and only ever
    moves forward while the sink is open.
    """

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the output device and start the clock.

        Raises:
            DeviceError: If the device cannot be acquired
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the output device. Safe to call multiple times."""
        pass

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Current output clock time in seconds."""
        pass

    @abstractmethod
    def schedule(self, chunk: AudioChunk, start_time: float, on_done: Callable[[], None]) -> Any:
        """
        Schedule a buffer to start at `start_time`.

        `on_done` is invoked on the owning event loop once the buffer has been
        fully rendered. It is never invoked for a cancelled buffer.

        A buffer is never started before the clock time at which it is
        scheduled; the token's `start_time` is the time it actually starts.

        Returns:
            A token for `cancel` exposing `start_time`
        """
        pass

    @abstractmethod
    def cancel(self, token: Any) -> None:
        """Stop a scheduled or playing buffer immediately."""
        pass
