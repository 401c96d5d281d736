"""
Pytest configuration and shared fixtures for live assistant tests.
"""

import asyncio
import base64
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pytest
from pydantic import BaseModel

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from live_assistant.interfaces.channel import SessionChannelInterface, ChannelCallbacks
from live_assistant.interfaces.output_sink import OutputSinkInterface
from live_assistant.models.data_models import AudioChunk, PcmPayload, ToolResponse
from live_assistant.session_controller import SessionController
from live_assistant.utils.audio import codec
from live_assistant.utils.audio.capture import CaptureProducer, CaptureConfig
from live_assistant.utils.error_handling import ChannelError, DeviceError
from live_assistant.utils.tool_dispatcher import ToolBinding


@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


# =============================================================================
# Output sink with a manual clock
# =============================================================================

@dataclass(eq=False)
class FakeVoice:
    chunk: AudioChunk
    start_time: float
    on_done: Callable[[], None]
    cancelled: bool = False
    done: bool = False

    @property
    def end_time(self) -> float:
        return self.start_time + self.chunk.duration


class FakeOutputSink(OutputSinkInterface):
    """Records scheduled buffers; time only moves when a test calls advance()."""

    def __init__(self):
        self.now = 0.0
        self.is_open = False
        self.open_count = 0
        self.close_count = 0
        self.scheduled: List[FakeVoice] = []
        self.fail_open = False
        self.fail_next_schedule = False
        self.render_before_schedule = 0.0

    def open(self) -> None:
        if self.fail_open:
            raise DeviceError("No output device")
        self.is_open = True
        self.open_count += 1

    def close(self) -> None:
        self.is_open = False
        self.close_count += 1

    @property
    def current_time(self) -> float:
        return self.now

    def schedule(self, chunk, start_time, on_done):
        if self.fail_next_schedule:
            self.fail_next_schedule = False
            raise DeviceError("Output underrun")
        if self.render_before_schedule:
            # Audio thread rendered a block after the caller read the clock
            self.now += self.render_before_schedule
            self.render_before_schedule = 0.0
        voice = FakeVoice(chunk=chunk, start_time=max(start_time, self.now), on_done=on_done)
        self.scheduled.append(voice)
        return voice

    def cancel(self, token) -> None:
        token.cancelled = True

    def advance(self, seconds: float) -> None:
        """Move the clock forward and complete every buffer that finished."""
        self.now += seconds
        for voice in list(self.scheduled):
            if not voice.cancelled and not voice.done and voice.end_time <= self.now + 1e-9:
                voice.done = True
                voice.on_done()

    @property
    def cancelled(self) -> List[FakeVoice]:
        return [voice for voice in self.scheduled if voice.cancelled]


@pytest.fixture
def fake_sink():
    return FakeOutputSink()


# =============================================================================
# Microphone stream
# =============================================================================

class FakeInputStream:
    """Stands in for sounddevice.InputStream; tests push blocks with feed()."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs['callback']
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def feed(self, samples):
        block = np.asarray(samples, dtype=np.float32).reshape(-1, 1)
        self.callback(block, block.shape[0], None, None)


@pytest.fixture
def input_streams():
    """List collecting every FakeInputStream created through `stream_factory`."""
    return []


@pytest.fixture
def stream_factory(input_streams):
    def factory(**kwargs):
        stream = FakeInputStream(**kwargs)
        input_streams.append(stream)
        return stream
    return factory


# =============================================================================
# Duplex channel
# =============================================================================

class FakeChannel(SessionChannelInterface):
    """Records outbound traffic; tests inject inbound messages."""

    def __init__(self, connect_error: Optional[BaseException] = None, connect_gate: Optional[asyncio.Event] = None):
        self.connect_error = connect_error
        self.connect_gate = connect_gate
        self.callbacks: Optional[ChannelCallbacks] = None
        self.declarations = None
        self.sent: List[tuple] = []
        self.close_count = 0
        self.fail_sends = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self, callbacks, tool_declarations=None):
        self.callbacks = callbacks
        self.declarations = tool_declarations
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        if self.close_count:
            raise ChannelError("Connection closed during setup")
        self._open = True

    async def _record(self, kind: str, payload: Any):
        if self.fail_sends or not self._open:
            raise ChannelError("Channel is not open")
        self.sent.append((kind, payload))

    async def send_media(self, payload: PcmPayload):
        await self._record("media", payload)

    async def send_text(self, text: str):
        await self._record("text", text)

    async def send_tool_response(self, response: ToolResponse):
        await self._record("tool_response", response)

    async def close(self):
        self.close_count += 1
        self._open = False

    # Inbound side

    async def deliver(self, message: Dict[str, Any]):
        await self.callbacks.on_message(message)

    async def fail(self, error: BaseException):
        await self.callbacks.on_error(error)

    async def remote_close(self, reason: str = "code=1000"):
        await self.callbacks.on_close(reason)

    # Views

    @property
    def texts(self) -> List[str]:
        return [payload for kind, payload in self.sent if kind == "text"]

    @property
    def media(self) -> List[PcmPayload]:
        return [payload for kind, payload in self.sent if kind == "media"]

    @property
    def tool_responses(self) -> List[ToolResponse]:
        return [payload for kind, payload in self.sent if kind == "tool_response"]


# =============================================================================
# Tools
# =============================================================================

class EchoArgs(BaseModel):
    text: str


@pytest.fixture
def echo_tool():
    """A tool that returns its argument; `gate` holds it until set."""
    gate = asyncio.Event()
    gate.set()
    calls = []

    async def action(args: EchoArgs):
        calls.append(args.text)
        await gate.wait()
        return {"echo": args.text}

    binding = ToolBinding(name="echo", description="Echo text back.", args_model=EchoArgs, action=action)
    binding.gate = gate
    binding.calls = calls
    return binding


@pytest.fixture
def failing_tool():
    async def action(args: EchoArgs):
        raise RuntimeError("backend down")

    return ToolBinding(name="explode", description="Always fails.", args_model=EchoArgs, action=action)


# =============================================================================
# Wire helpers
# =============================================================================

def make_samples(frames: int, amplitude: float = 0.25) -> np.ndarray:
    return np.full(frames, amplitude, dtype=np.float32)


@pytest.fixture
def audio_message():
    """Build a serverContent message carrying one PCM part."""
    def build(frames: int = 2400, rate: int = 24000, amplitude: float = 0.25, data: Optional[str] = None):
        if data is None:
            data = base64.b64encode(codec.encode(make_samples(frames, amplitude))).decode('ascii')
        return {
            "serverContent": {
                "modelTurn": {
                    "parts": [{"inlineData": {"mimeType": f"audio/pcm;rate={rate}", "data": data}}]
                }
            }
        }
    return build


@pytest.fixture
def tool_call_message():
    def build(*calls):
        return {
            "toolCall": {
                "functionCalls": [
                    {"id": call_id, "name": name, "args": args} for call_id, name, args in calls
                ]
            }
        }
    return build


async def settle(rounds: int = 5):
    """Let call_soon callbacks and freshly created tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def flush_loop():
    return settle


# =============================================================================
# Controller harness
# =============================================================================

@dataclass
class SessionHarness:
    controller: SessionController
    sink: FakeOutputSink
    channels: List[FakeChannel] = field(default_factory=list)
    streams: List[FakeInputStream] = field(default_factory=list)

    @property
    def channel(self) -> FakeChannel:
        return self.channels[-1]

    @property
    def stream(self) -> FakeInputStream:
        return self.streams[-1]


@pytest.fixture
def make_harness(fake_sink, stream_factory, input_streams):
    """
    Build a controller wired to fakes.

    `channel_builder` customizes each FakeChannel the controller creates;
    raising from it simulates a channel that cannot be created.
    """
    def factory(tools=None, greeting="Say hello.", channel_builder=None, **kwargs):
        channels: List[FakeChannel] = []

        def channel_factory():
            channel = channel_builder() if channel_builder else FakeChannel()
            channels.append(channel)
            return channel

        controller = SessionController(
            channel_factory=channel_factory,
            output_sink=fake_sink,
            tools=tools,
            greeting=greeting,
            capture_factory=lambda: CaptureProducer(
                CaptureConfig(block_size=4), stream_factory=stream_factory
            ),
            **kwargs
        )
        return SessionHarness(controller=controller, sink=fake_sink, channels=channels, streams=input_streams)

    return factory
