"""
Microphone capture for a live session.

Owns the sounddevice InputStream. Every fixed-size block is measured for
speech activity, encoded to 16-bit PCM, and handed to the event loop; the
audio thread never touches session state itself.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Optional, Callable, Any

import numpy as np
import sounddevice as sd

from ...interfaces.activity_detector import ActivityDetectorInterface
from ...models.data_models import PcmPayload
from ..error_handling import DeviceError
from ..logging_config import get_logger
from .activity import AmplitudeActivityDetector, DEFAULT_ACTIVITY_THRESHOLD
from . import codec


logger = get_logger("capture")


@dataclass
class CaptureConfig:
    """Configuration for microphone capture."""
    sample_rate: int = 16000
    channels: int = 1
    block_size: int = 4096  # 256ms at 16kHz
    activity_threshold: float = DEFAULT_ACTIVITY_THRESHOLD
    device_index: Optional[int] = None  # None = default device
    latency: str = 'low'


BlockHandler = Callable[[PcmPayload, bool], None]


class CaptureProducer:
    """
    Streams encoded microphone blocks to a handler on the event loop.

    Usage:
        producer = CaptureProducer(config, on_block=handle_block)
        producer.open()             # claims the microphone
        producer.start(loop)        # blocks start flowing
        producer.stop()             # no block is delivered after this returns
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        on_block: Optional[BlockHandler] = None,
        detector: Optional[ActivityDetectorInterface] = None,
        stream_factory: Callable[..., Any] = sd.InputStream
    ):
        self.config = config or CaptureConfig()
        self._on_block = on_block
        self._detector = detector or AmplitudeActivityDetector(self.config.activity_threshold)
        self._stream_factory = stream_factory

        self._stream = None
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown = threading.Event()
        self._is_running = False
        self._blocks_delivered = 0

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def blocks_delivered(self) -> int:
        return self._blocks_delivered

    def set_handler(self, on_block: Optional[BlockHandler]) -> None:
        self._on_block = on_block

    def open(self) -> None:
        """
        Acquire the input device without starting capture.

        Raises:
            DeviceError: If the microphone cannot be opened
        """
        if self._stream is not None:
            return
        try:
            self._stream = self._stream_factory(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                blocksize=self.config.block_size,
                dtype='float32',
                device=self.config.device_index,
                latency=self.config.latency,
                callback=self._audio_callback
            )
        except Exception as e:
            self._stream = None
            raise DeviceError(f"Could not open microphone: {e}") from e
        logger.info(
            f"Microphone acquired ({self.config.sample_rate}Hz, block={self.config.block_size})"
        )

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Start delivering blocks.

        Raises:
            DeviceError: If the stream was not opened or fails to start
        """
        if self._stream is None:
            raise DeviceError("Microphone not acquired; call open() first")
        if self._is_running:
            return
        self._event_loop = loop or asyncio.get_running_loop()
        self._shutdown.clear()
        try:
            self._stream.start()
        except Exception as e:
            raise DeviceError(f"Could not start microphone: {e}") from e
        self._is_running = True
        logger.info("Capture started")

    def stop(self) -> None:
        """
        Stop capture and release the microphone.

        Safe to call multiple times. After return no further block reaches
        the handler, including blocks already queued on the event loop.
        """
        self._shutdown.set()
        self._is_running = False

        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
            logger.info(f"Microphone released ({self._blocks_delivered} blocks delivered)")

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any):
        """
        Audio callback.

        Runs in sounddevice's audio thread; keeps processing fast and hands
        the result to the event loop.
        """
        if self._shutdown.is_set():
            return
        if status:
            logger.debug(f"Input stream status: {status}")

        try:
            samples = np.asarray(indata, dtype=np.float32)
            if samples.ndim > 1:
                samples = samples[:, 0]
            speaking = self._detector.is_active(samples)
            payload = PcmPayload(
                data=codec.encode(samples),
                sample_rate=self.config.sample_rate,
                channels=1
            )
        except Exception as e:
            logger.warning(f"Dropped capture block: {e}")
            return

        loop = self._event_loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._deliver, payload, speaking)
        except RuntimeError:
            pass  # Event loop closed

    def _deliver(self, payload: PcmPayload, speaking: bool) -> None:
        """Hand a block to the handler (event loop thread)."""
        if self._shutdown.is_set() or self._on_block is None:
            return
        self._blocks_delivered += 1
        self._on_block(payload, speaking)
