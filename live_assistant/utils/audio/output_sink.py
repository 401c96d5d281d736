"""
Sample-accurate output sink on top of a sounddevice OutputStream.

The stream callback is a small mixer: every scheduled voice has an absolute
start frame on the sink's frame clock, and the callback renders whatever
portion of each voice falls inside the current block. Two voices whose start
frames are adjacent therefore play back-to-back with no gap and no overlap,
regardless of when they were scheduled.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Optional, Callable, Any, List

import numpy as np
import sounddevice as sd

from ...interfaces.output_sink import OutputSinkInterface
from ...models.data_models import AudioChunk
from ..error_handling import DeviceError
from ..logging_config import get_logger


logger = get_logger("output")


@dataclass
class OutputSinkConfig:
    """Configuration for the output device."""
    sample_rate: int = 24000
    channels: int = 1
    block_size: int = 1024
    device_index: Optional[int] = None  # None = default device
    latency: str = 'low'


@dataclass(eq=False)
class _Voice:
    """One scheduled buffer inside the mixer."""
    samples: np.ndarray
    start_frame: int
    on_done: Callable[[], None]
    sample_rate: int
    position: int = 0
    cancelled: bool = False

    @property
    def start_time(self) -> float:
        return self.start_frame / self.sample_rate


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resample of a mono float buffer."""
    if source_rate == target_rate or samples.size == 0:
        return samples.astype(np.float32, copy=False)
    target_length = max(1, int(round(samples.size * target_rate / source_rate)))
    source_positions = np.arange(samples.size, dtype=np.float64)
    target_positions = np.linspace(0, samples.size - 1, target_length)
    return np.interp(target_positions, source_positions, samples).astype(np.float32)


class SoundDeviceOutputSink(OutputSinkInterface):
    """
    Output sink with a frame clock driven by the audio callback.

    The voice list is shared between the audio thread and the event loop and
    is only touched under `_lock`. Completion is signalled onto the event
    loop with `call_soon_threadsafe`.
    """

    def __init__(
        self,
        config: Optional[OutputSinkConfig] = None,
        stream_factory: Callable[..., Any] = sd.OutputStream
    ):
        self.config = config or OutputSinkConfig()
        self._stream_factory = stream_factory
        self._stream = None
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None

        self._lock = threading.Lock()
        self._voices: List[_Voice] = []
        self._frame_clock = 0

    @property
    def sample_rate(self) -> int:
        return self.config.sample_rate

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frame_clock / self.config.sample_rate

    def open(self) -> None:
        if self._stream is not None:
            return
        try:
            self._event_loop = asyncio.get_running_loop()
        except RuntimeError:
            self._event_loop = None

        with self._lock:
            self._voices.clear()
            self._frame_clock = 0

        try:
            stream = self._stream_factory(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                blocksize=self.config.block_size,
                dtype='float32',
                device=self.config.device_index,
                latency=self.config.latency,
                callback=self._audio_callback
            )
            stream.start()
        except Exception as e:
            raise DeviceError(f"Could not open output device: {e}") from e

        self._stream = stream
        logger.info(f"Output device acquired ({self.config.sample_rate}Hz)")

    def close(self) -> None:
        with self._lock:
            for voice in self._voices:
                voice.cancelled = True
            self._voices.clear()

        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
            logger.info("Output device released")

    def schedule(self, chunk: AudioChunk, start_time: float, on_done: Callable[[], None]) -> Any:
        if self._stream is None:
            raise DeviceError("Output device is not open")

        samples = resample(chunk.mono(), chunk.sample_rate, self.config.sample_rate)
        voice = _Voice(
            samples=samples,
            start_frame=int(round(start_time * self.config.sample_rate)),
            on_done=on_done,
            sample_rate=self.config.sample_rate
        )
        with self._lock:
            # The callback may have rendered past start_time since the caller read the clock
            voice.start_frame = max(voice.start_frame, self._frame_clock)
            self._voices.append(voice)
        return voice

    def cancel(self, token: Any) -> None:
        with self._lock:
            token.cancelled = True
            if token in self._voices:
                self._voices.remove(token)

    def _audio_callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any):
        """
        Mix every voice overlapping the current block.

        Runs in sounddevice's audio thread.
        """
        mix = np.zeros(frames, dtype=np.float32)
        finished: List[_Voice] = []

        with self._lock:
            block_start = self._frame_clock
            block_end = block_start + frames

            for voice in self._voices:
                if voice.cancelled or voice.start_frame >= block_end:
                    continue
                offset = max(0, voice.start_frame - block_start)
                count = min(frames - offset, voice.samples.size - voice.position)
                if count > 0:
                    mix[offset:offset + count] += voice.samples[voice.position:voice.position + count]
                    voice.position += count
                if voice.position >= voice.samples.size:
                    finished.append(voice)

            for voice in finished:
                self._voices.remove(voice)
            self._frame_clock = block_end

        np.clip(mix, -1.0, 1.0, out=mix)
        outdata[:] = mix.reshape(-1, 1) if self.config.channels == 1 else np.repeat(
            mix.reshape(-1, 1), self.config.channels, axis=1
        )

        loop = self._event_loop
        for voice in finished:
            if loop is None:
                continue
            try:
                loop.call_soon_threadsafe(voice.on_done)
            except RuntimeError:
                pass  # Event loop closed
