"""
Gapless playback scheduling with barge-in cancellation.

The remote service streams speech as many small fragments that arrive in
bursts. Each fragment is scheduled to start exactly where the previous one
ends (`next_start_time`), or at the current output clock if playback has
already drained, so consecutive fragments never overlap and never leave a gap.

All methods run on the event loop thread; the sink's completion callbacks
are delivered there too, so the live set and `next_start_time` are never
touched concurrently.
"""

from dataclasses import dataclass, field
from typing import Optional, Callable, Any, List

from ...interfaces.output_sink import OutputSinkInterface
from ...models.data_models import AudioChunk
from ..error_handling import ErrorHandler, ComponentError, ErrorSeverity
from ..logging_config import get_logger


logger = get_logger("playback")


@dataclass(eq=False)
class PlaybackHandle:
    """One scheduled, possibly playing buffer."""
    chunk: AudioChunk
    start_time: float
    on_complete: Optional[Callable[['PlaybackHandle'], None]] = None
    token: Any = None
    stopped: bool = False
    completed: bool = False

    @property
    def end_time(self) -> float:
        return self.start_time + self.chunk.duration

    @property
    def is_live(self) -> bool:
        return not (self.stopped or self.completed)


SpeakingListener = Callable[[bool], None]


class PlaybackScheduler:
    """
    Plays decoded buffers back-to-back on an output sink.

    Usage:
        scheduler = PlaybackScheduler(sink, on_speaking_change=ui.set_ai_speaking)
        scheduler.open()
        scheduler.enqueue(chunk)   # FIFO, gapless
        scheduler.interrupt()      # barge-in
        scheduler.shutdown()       # interrupt + release the sink
    """

    def __init__(
        self,
        sink: OutputSinkInterface,
        on_speaking_change: Optional[SpeakingListener] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        self._sink = sink
        self._on_speaking_change = on_speaking_change
        self.error_handler = error_handler or ErrorHandler()

        self._live: List[PlaybackHandle] = []
        self._next_start_time = 0.0
        self._speaking = False
        self._is_open = False

    @property
    def next_start_time(self) -> float:
        return self._next_start_time

    @property
    def live_count(self) -> int:
        return len(self._live)

    @property
    def live_handles(self) -> List[PlaybackHandle]:
        return list(self._live)

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def current_time(self) -> float:
        return self._sink.current_time

    def open(self) -> None:
        """Acquire the output sink and rebase the playback clock."""
        if self._is_open:
            return
        self._sink.open()
        self._is_open = True
        self._next_start_time = self._sink.current_time

    def enqueue(self, chunk: AudioChunk) -> Optional[PlaybackHandle]:
        """
        Schedule a buffer right after everything already queued.

        Returns:
            The new handle, or None if the buffer could not be scheduled
        """
        if not self._is_open:
            logger.debug("Dropping audio: output sink is closed")
            return None
        if chunk.frames == 0:
            return None

        start_time = max(self._next_start_time, self._sink.current_time)
        handle = PlaybackHandle(chunk=chunk, start_time=start_time, on_complete=self._handle_complete)

        try:
            handle.token = self._sink.schedule(chunk, start_time, lambda: self._handle_complete(handle))
        except Exception as e:
            # Nothing changed yet: clock and live set stay as they were
            self.error_handler.handle_error(ComponentError(
                component="playback",
                severity=ErrorSeverity.WARNING,
                message="Failed to schedule audio buffer",
                exception=e,
                context={'start_time': start_time, 'duration': chunk.duration}
            ))
            return None

        # The sink owns the start time: the output clock may have moved on meanwhile
        handle.start_time = handle.token.start_time
        self._live.append(handle)
        self._next_start_time = handle.end_time
        logger.debug(
            f"Scheduled {chunk.duration:.3f}s at {handle.start_time:.3f} (live={len(self._live)})"
        )
        self._set_speaking(True)
        return handle

    def interrupt(self) -> int:
        """
        Barge-in: stop everything now and rebase the clock to the present.

        Returns:
            Number of handles that were stopped
        """
        stopped = 0
        for handle in self._live:
            handle.stopped = True
            try:
                self._sink.cancel(handle.token)
            except Exception as e:
                logger.warning(f"Failed to cancel playback handle: {e}")
            stopped += 1
        self._live.clear()

        try:
            self._next_start_time = self._sink.current_time
        except Exception:
            self._next_start_time = 0.0

        if stopped:
            logger.info(f"Playback interrupted ({stopped} buffers cancelled)")
        self._set_speaking(False)
        return stopped

    def shutdown(self) -> None:
        """Interrupt playback and release the output sink."""
        self.interrupt()
        if not self._is_open:
            return
        self._is_open = False
        self._sink.close()

    def _handle_complete(self, handle: PlaybackHandle) -> None:
        """Sink completion callback (event loop thread)."""
        if not handle.is_live:
            return
        handle.completed = True
        if handle in self._live:
            self._live.remove(handle)
        if not self._live:
            self._set_speaking(False)

    def _set_speaking(self, speaking: bool) -> None:
        if speaking == self._speaking:
            return
        self._speaking = speaking
        if self._on_speaking_change:
            try:
                self._on_speaking_change(speaking)
            except Exception as e:
                logger.warning(f"Speaking listener error: {e}")
