"""
Session controller: lifecycle state machine and inbound message demultiplexing.

Everything here runs on one asyncio event loop. Audio threads reach the
controller only through `call_soon_threadsafe`, and each inbound channel
message is handled to completion before the next is read, so the session
state (status, live playback set, playback clock, transcript accumulators)
is never mutated concurrently.
"""

import asyncio
from typing import Callable, Dict, Any, Iterable, List, Optional

from .interfaces.channel import SessionChannelInterface, ChannelCallbacks
from .interfaces.output_sink import OutputSinkInterface
from .models.data_models import (
    BookingSummary,
    MessageRole,
    PcmPayload,
    Session,
    SessionState,
    SessionStatus,
    ToolInvocation,
    ToolResponse,
    TranscriptionEntry
)
from .utils.audio import codec
from .utils.audio.capture import CaptureProducer, CaptureConfig
from .utils.audio.output_sink import SoundDeviceOutputSink, OutputSinkConfig
from .utils.audio.playback import PlaybackScheduler
from .utils.error_handling import (
    ChannelError,
    ComponentError,
    DecodeError,
    DeviceError,
    ErrorHandler,
    ErrorSeverity,
    safe_cleanup
)
from .utils.logging_config import get_logger, set_session_tag
from .utils.state_machine import SessionStateMachine
from .utils.tool_dispatcher import ToolBinding, ToolCallDispatcher, ToolErrorPolicy
from .utils.transcript_assembler import TranscriptionAssembler


logger = get_logger("session")


MISSING_KEY_MESSAGE = "API key is missing. Set GEMINI_API_KEY in your environment and restart."
DEVICE_MESSAGE = "Microphone or speaker unavailable. Check your audio devices and permissions."
UNAVAILABLE_MESSAGE = "The assistant is currently unavailable. Please check your connection or API configuration."

StateListener = Callable[[SessionState], None]


class SessionController:
    """
    Orchestrates one live voice session at a time.

    Public operations: `start`, `stop`, `toggle`, `send_text`,
    `send_quick_prompt`. Observable state lives in `self.state`; listeners
    registered with `add_listener` are called after every change.
    """

    def __init__(
        self,
        channel_factory: Callable[[], SessionChannelInterface],
        output_sink: OutputSinkInterface,
        tools: Optional[Iterable[ToolBinding]] = None,
        greeting: str = "",
        capture_factory: Optional[Callable[[], CaptureProducer]] = None,
        capture_config: Optional[CaptureConfig] = None,
        playback_sample_rate: int = 24000,
        tool_error_policy: ToolErrorPolicy = ToolErrorPolicy.REPORT_ERROR,
        quick_prompts: Optional[Dict[str, str]] = None,
        outbound_queue_size: int = 64
    ):
        self._channel_factory = channel_factory
        self._capture_factory = capture_factory or (lambda: CaptureProducer(capture_config))
        self.greeting = greeting
        self.playback_sample_rate = playback_sample_rate
        self.quick_prompts = dict(quick_prompts or {})
        self._outbound_queue_size = outbound_queue_size

        self.state = SessionState()
        self.error_handler = ErrorHandler()
        self.state_machine = SessionStateMachine()
        self.state_machine.add_listener(self._on_status_change)

        self.scheduler = PlaybackScheduler(
            output_sink,
            on_speaking_change=self._on_assistant_speaking,
            error_handler=self.error_handler
        )
        self.assembler = TranscriptionAssembler()
        self.dispatcher = ToolCallDispatcher(
            tools,
            error_policy=tool_error_policy,
            on_processing_change=self._on_tool_processing,
            on_success=self._on_tool_success,
            error_handler=self.error_handler
        )

        self._session: Optional[Session] = None
        self._capture: Optional[CaptureProducer] = None
        self._outbound: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []

    @classmethod
    def from_config(cls, config) -> 'SessionController':
        """Build a controller with real devices and the Gemini Live channel."""
        from .providers.channel.gemini_live import GeminiLiveChannel
        from .providers.tools.appointment_booking import create_booking_tool
        from .config import QUICK_PROMPTS

        channel_settings = config.channel.model_dump()
        capture_config = CaptureConfig(
            sample_rate=config.audio.capture_sample_rate,
            block_size=config.audio.block_size,
            activity_threshold=config.audio.activity_threshold,
            device_index=config.audio.input_device,
            latency=config.audio.latency
        )
        sink = SoundDeviceOutputSink(OutputSinkConfig(
            sample_rate=config.audio.playback_sample_rate,
            device_index=config.audio.output_device,
            latency=config.audio.latency
        ))
        tools = [create_booking_tool(
            webhook_url=config.tools.booking_webhook_url,
            simulated_latency=config.tools.booking_simulated_latency
        )]

        return cls(
            channel_factory=lambda: GeminiLiveChannel(channel_settings),
            output_sink=sink,
            tools=tools,
            greeting=config.channel.greeting,
            capture_config=capture_config,
            playback_sample_rate=config.audio.playback_sample_rate,
            tool_error_policy=config.tools.error_policy,
            quick_prompts=QUICK_PROMPTS
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.state_machine.current_state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def transcript(self) -> List[TranscriptionEntry]:
        return list(self.state.transcript)

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception as e:
                logger.warning(f"State listener error: {e}")

    def _on_status_change(self, previous: SessionStatus, current: SessionStatus) -> None:
        self.state.status = current
        if self._session is not None:
            self._session.status = current
        self._notify()

    def _on_assistant_speaking(self, speaking: bool) -> None:
        self.state.assistant_speaking = speaking
        self._notify()

    def _on_tool_processing(self, processing: bool) -> None:
        self.state.tool_processing = processing
        self._notify()

    def _on_tool_success(self, binding: ToolBinding, args, response: ToolResponse) -> None:
        if binding.summarize is None:
            return
        summary = binding.summarize(args)
        if isinstance(summary, BookingSummary):
            self.state.last_booking = summary
            self._notify()

    def clear_last_booking(self) -> None:
        self.state.last_booking = None
        self._notify()

    def _append_transcript(self, entries: List[TranscriptionEntry]) -> None:
        if not entries:
            return
        self.state.transcript.extend(entries)
        for entry in entries:
            logger.info(f"💬 {entry.role.value}: {entry.text}")
        self._notify()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Open a new session.

        Valid only from DISCONNECTED or ERROR. Failures end in ERROR with a
        user-visible message; nothing is retried automatically.

        Returns:
            True if the session reached CONNECTED
        """
        if self.status not in (SessionStatus.DISCONNECTED, SessionStatus.ERROR):
            logger.warning(f"start() ignored in state {self.status.name}")
            return False

        self.state.error_message = None
        self.state_machine.transition_to(SessionStatus.CONNECTING, "start requested")

        try:
            channel = self._channel_factory()
        except Exception as e:
            self._record_fatal("session", "Could not create channel", e)
            self.state.error_message = MISSING_KEY_MESSAGE if isinstance(e, ValueError) else UNAVAILABLE_MESSAGE
            self.state_machine.transition_to(SessionStatus.ERROR, "channel unavailable")
            return False

        session = Session(channel=channel)
        self._session = session
        set_session_tag(session.session_id)
        self.assembler.clear()
        self.dispatcher.reset()

        try:
            self._capture = self._capture_factory()
            self._capture.set_handler(self._on_capture_block)
            self._capture.open()
            self.scheduler.open()
            await channel.connect(
                ChannelCallbacks(
                    on_message=lambda message: self._handle_message(session, message),
                    on_error=lambda error: self._handle_channel_error(session, error),
                    on_close=lambda reason: self._handle_channel_close(session, reason)
                ),
                self.dispatcher.declarations()
            )
        except asyncio.CancelledError:
            if self._session is session:
                self._session = None
                await self._teardown(session)
                self.state_machine.force(SessionStatus.DISCONNECTED, "start cancelled")
            raise
        except Exception as e:
            if self._session is not session:
                # stop() ran while we were connecting
                return False
            await self._fail(session, e)
            return False

        if self._session is not session or self.status != SessionStatus.CONNECTING:
            await safe_cleanup(channel.close)
            return False

        return await self._handle_open(session)

    async def _handle_open(self, session: Session) -> bool:
        """CONNECTING -> CONNECTED: start capture and send the opening move."""
        self.state_machine.transition_to(SessionStatus.CONNECTED, "channel open")

        self._outbound = asyncio.Queue(maxsize=self._outbound_queue_size)
        self._pump_task = asyncio.create_task(self._pump_capture(session), name="capture-pump")
        try:
            self._capture.start(asyncio.get_running_loop())
        except DeviceError as e:
            await self._fail(session, e)
            return False

        if self.greeting:
            try:
                await session.channel.send_text(self.greeting)
                logger.debug("Opening move sent")
            except Exception as e:
                self.error_handler.handle_error(ComponentError(
                    component="session",
                    severity=ErrorSeverity.WARNING,
                    message="Failed to send opening move",
                    exception=e
                ))
        return True

    async def stop(self) -> None:
        """
        Tear the session down and end in DISCONNECTED.

        Best-effort and idempotent: never raises, and a second call (or a
        call while already DISCONNECTED) does nothing.
        """
        session = self._session
        if session is None and self.status == SessionStatus.DISCONNECTED:
            return

        self._session = None
        if session is not None:
            await self._teardown(session)
        self.state_machine.force(SessionStatus.DISCONNECTED, "stop requested")

    async def toggle(self) -> None:
        """Stop when connected or connecting, start otherwise."""
        if self.status in (SessionStatus.CONNECTED, SessionStatus.CONNECTING):
            await self.stop()
        else:
            await self.start()

    async def _teardown(self, session: Session) -> None:
        """Release capture, playback, tools and the channel; never raises."""
        capture = self._capture
        self._capture = None
        pump = self._pump_task
        self._pump_task = None
        self._outbound = None

        async def stop_capture():
            if capture is not None:
                capture.stop()

        async def stop_pump():
            if pump is not None and not pump.done():
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)

        await safe_cleanup(
            stop_capture,
            stop_pump,
            self.scheduler.shutdown,
            self.dispatcher.cancel_all,
            session.channel.close
        )

        self.assembler.clear()
        self.state.reset_activity()
        self._notify()
        logger.info(f"Session {session.session_id[:8]} torn down")
        if self._session is None:
            set_session_tag(None)

    async def _fail(self, session: Session, error: BaseException) -> None:
        """Fatal-session path: release everything and enter ERROR."""
        if self._session is session:
            self._session = None
        self._record_fatal("session", "Session failed", error)
        await self._teardown(session)
        if isinstance(error, DeviceError):
            self.state.error_message = DEVICE_MESSAGE
        else:
            self.state.error_message = UNAVAILABLE_MESSAGE
        self.state_machine.force(SessionStatus.ERROR, type(error).__name__)

    def _record_fatal(self, component: str, message: str, error: BaseException) -> None:
        self.error_handler.handle_error(ComponentError(
            component=component,
            severity=ErrorSeverity.FATAL,
            message=message,
            exception=error
        ))

    # ------------------------------------------------------------------
    # Channel callbacks
    # ------------------------------------------------------------------

    async def _handle_channel_error(self, session: Session, error: BaseException) -> None:
        if self._session is not session:
            return
        await self._fail(session, error)

    async def _handle_channel_close(self, session: Session, reason: Optional[str]) -> None:
        if self._session is not session:
            return
        self._session = None
        logger.info(f"Remote closed the session ({reason})")
        await self._teardown(session)
        self.state_machine.force(SessionStatus.DISCONNECTED, "closed by server")

    async def _handle_message(self, session: Session, message: Dict[str, Any]) -> None:
        """Demultiplex one inbound message."""
        if self._session is not session or self.status != SessionStatus.CONNECTED:
            return

        tool_call = message.get("toolCall")
        if tool_call:
            self._handle_tool_call(session, tool_call)

        content = message.get("serverContent")
        if content:
            self._handle_server_content(content)

        if "toolCallCancellation" in message:
            logger.debug(f"Tool call cancellation ignored: {message['toolCallCancellation']}")

        if "goAway" in message:
            logger.warning(f"Server will close the session soon: {message['goAway']}")

        error = message.get("error")
        if error:
            await self._fail(session, ChannelError(f"Server error: {error}"))

    def _handle_tool_call(self, session: Session, tool_call: Dict[str, Any]) -> None:
        for function_call in tool_call.get("functionCalls", []) or []:
            try:
                invocation = ToolInvocation.from_wire(function_call)
            except ValueError as e:
                logger.warning(f"Skipping tool call: {e}")
                continue
            self.dispatcher.submit(
                invocation,
                lambda response: self._send_tool_response(session, response)
            )

    async def _send_tool_response(self, session: Session, response: ToolResponse) -> None:
        if self._session is not session:
            raise ChannelError(f"Session closed before response {response.id} could be sent")
        await session.channel.send_tool_response(response)

    def _handle_server_content(self, content: Dict[str, Any]) -> None:
        model_turn = content.get("modelTurn") or {}
        for part in model_turn.get("parts", []) or []:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                self._enqueue_audio(inline)

        input_transcription = content.get("inputTranscription")
        if input_transcription:
            self.assembler.append_partial(MessageRole.USER, input_transcription.get("text", ""))

        output_transcription = content.get("outputTranscription")
        if output_transcription:
            self.assembler.append_partial(MessageRole.ASSISTANT, output_transcription.get("text", ""))

        if content.get("turnComplete"):
            self._append_transcript(self.assembler.flush_turn())

        if content.get("interrupted"):
            self.scheduler.interrupt()

    def _enqueue_audio(self, inline: Dict[str, Any]) -> None:
        """Decode one inlineData part and schedule it; bad chunks are dropped."""
        rate = codec.parse_rate(inline.get("mimeType", ""), self.playback_sample_rate)
        try:
            chunk = codec.decode_base64(inline["data"], rate, 1)
        except DecodeError as e:
            self.error_handler.handle_error(ComponentError(
                component="playback",
                severity=ErrorSeverity.WARNING,
                message="Dropped malformed audio chunk",
                exception=e
            ))
            return
        self.scheduler.enqueue(chunk)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _on_capture_block(self, payload: PcmPayload, speaking: bool) -> None:
        """Capture handler (event loop thread)."""
        if self.status != SessionStatus.CONNECTED or self._outbound is None:
            return
        if speaking != self.state.user_speaking:
            self.state.user_speaking = speaking
            self._notify()
        try:
            self._outbound.put_nowait(payload)
        except asyncio.QueueFull:
            logger.debug("Outbound audio queue full; dropping block")

    async def _pump_capture(self, session: Session) -> None:
        """Forward captured blocks to the channel in capture order."""
        queue = self._outbound
        while True:
            payload = await queue.get()
            try:
                await session.channel.send_media(payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"Failed to send audio block: {e}")

    async def send_text(self, message: str) -> bool:
        """
        Send typed text as user input.

        Valid only while CONNECTED. The text is added to the transcript
        immediately since typed input is never partial.

        Returns:
            True if the message was sent
        """
        text = (message or "").strip()
        if not text:
            return False
        session = self._session
        if session is None or self.status != SessionStatus.CONNECTED:
            logger.warning("send_text() ignored: session is not connected")
            return False

        self._append_transcript([TranscriptionEntry(role=MessageRole.USER, text=text)])
        try:
            await session.channel.send_text(text)
        except Exception as e:
            self.error_handler.handle_error(ComponentError(
                component="session",
                severity=ErrorSeverity.WARNING,
                message="Failed to send text",
                exception=e
            ))
            return False
        return True

    async def send_quick_prompt(self, label: str) -> bool:
        """Send one of the configured quick prompts by its label."""
        text = self.quick_prompts.get(label)
        if text is None:
            logger.warning(f"Unknown quick prompt: {label}")
            return False
        return await self.send_text(text)

    def get_status(self) -> Dict[str, Any]:
        return {
            **self.state.to_dict(),
            'session_id': self._session.session_id if self._session else None,
            'live_playback': self.scheduler.live_count,
            'next_start_time': self.scheduler.next_start_time,
            'outstanding_tools': self.dispatcher.outstanding,
            'errors': self.error_handler.get_error_summary()
        }
