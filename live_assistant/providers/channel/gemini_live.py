"""
Gemini Live (BidiGenerateContent) duplex channel over an aiohttp WebSocket.
"""

import asyncio
import json
from typing import Dict, Any, List, Optional

import aiohttp

from ...interfaces.channel import SessionChannelInterface, ChannelCallbacks
from ...models.data_models import PcmPayload, ToolResponse
from ...utils.audio import codec
from ...utils.error_handling import ChannelError
from ...utils.logging_config import get_logger


logger = get_logger("channel")


DEFAULT_ENDPOINT = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)


class GeminiLiveChannel(SessionChannelInterface):
    """Gemini Live WebSocket implementation of the session channel."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the channel.

        Args:
            config: Configuration dictionary containing:
                - api_key: Gemini API key
                - model: Live model name
                - voice: Prebuilt voice name (default: "Kore")
                - system_instruction: System prompt forwarded verbatim
                - endpoint: WebSocket endpoint (optional)
                - connect_timeout: Seconds to wait for setupComplete
                - heartbeat: WebSocket heartbeat interval in seconds
        """
        self.api_key = config.get('api_key')
        if not self.api_key:
            raise ValueError("Gemini API key is required")

        self.model = config.get('model', 'gemini-2.5-flash-native-audio-preview-12-2025')
        self.voice = config.get('voice', 'Kore')
        self.system_instruction = config.get('system_instruction', '')
        self.endpoint = config.get('endpoint') or DEFAULT_ENDPOINT
        self.connect_timeout = float(config.get('connect_timeout', 15.0))
        self.heartbeat = float(config.get('heartbeat', 20.0))

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._callbacks: Optional[ChannelCallbacks] = None
        self._send_lock = asyncio.Lock()
        self._open = False
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._open and self._ws is not None and not self._ws.closed

    def build_setup_message(self, tool_declarations: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Session setup: audio responses, voice, instruction, tools, transcriptions."""
        setup: Dict[str, Any] = {
            "model": self.model if self.model.startswith("models/") else f"models/{self.model}",
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": self.voice}
                    }
                }
            },
            "inputAudioTranscription": {},
            "outputAudioTranscription": {}
        }
        if self.system_instruction:
            setup["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}
        if tool_declarations:
            setup["tools"] = [{"functionDeclarations": tool_declarations}]
        return {"setup": setup}

    async def connect(self, callbacks: ChannelCallbacks, tool_declarations: Optional[List[Dict[str, Any]]] = None) -> None:
        if self._ws is not None:
            raise ChannelError("Channel already connected")
        self._callbacks = callbacks
        self._closing = False

        url = f"{self.endpoint}?key={self.api_key}"
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(url, heartbeat=self.heartbeat, max_msg_size=10 * 1024 * 1024),
                timeout=self.connect_timeout
            )
            await self._send_json(self.build_setup_message(tool_declarations))
            await asyncio.wait_for(self._await_setup_complete(), timeout=self.connect_timeout)
        except asyncio.CancelledError:
            await self._release()
            raise
        except asyncio.TimeoutError as e:
            await self._release()
            raise ChannelError(f"Timed out connecting to {self.model}") from e
        except ChannelError:
            await self._release()
            raise
        except Exception as e:
            await self._release()
            raise ChannelError(f"WebSocket connection failed: {e}") from e

        self._open = True
        self._receive_task = asyncio.create_task(self._receive_loop(), name="live-channel-receive")
        logger.info(f"Live session open ({self.model}, voice={self.voice})")

    async def _await_setup_complete(self) -> None:
        """Read frames until setupComplete arrives."""
        while True:
            msg = await self._ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                data = self._parse(msg.data)
                if data is None:
                    continue
                if "setupComplete" in data:
                    return
                if "error" in data:
                    raise ChannelError(f"Setup rejected: {data['error']}")
                logger.debug(f"Ignoring pre-setup message: {list(data.keys())}")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ChannelError(f"WebSocket error during setup: {self._ws.exception()}")
            else:
                raise ChannelError(
                    f"Connection closed during setup (code={self._ws.close_code}, reason={msg.extra})"
                )

    @staticmethod
    def _parse(raw: Any) -> Optional[Dict[str, Any]]:
        try:
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode('utf-8')
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Dropping undecodable frame: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning("Dropping non-object frame")
            return None
        return data

    async def _receive_loop(self) -> None:
        """Deliver inbound messages one at a time, in arrival order."""
        callbacks = self._callbacks
        close_reason: Optional[str] = None
        try:
            while True:
                msg = await self._ws.receive()
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    data = self._parse(msg.data)
                    if data is None:
                        continue
                    try:
                        await callbacks.on_message(data)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        logger.exception(f"Message handler error: {e}")
                    if self._closing:
                        return
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._open = False
                    if not self._closing:
                        await callbacks.on_error(ChannelError(f"WebSocket error: {self._ws.exception()}"))
                    return
                else:
                    close_reason = f"code={self._ws.close_code}" + (f", reason={msg.extra}" if msg.extra else "")
                    break
        except asyncio.CancelledError:
            self._open = False
            raise
        except Exception as e:
            self._open = False
            if not self._closing:
                await callbacks.on_error(ChannelError(f"Receive loop failed: {e}"))
            return

        self._open = False
        logger.info(f"Live session closed by server ({close_reason})")
        if not self._closing:
            await callbacks.on_close(close_reason)

    async def _send_json(self, message: Dict[str, Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise ChannelError("Channel is not open")
        async with self._send_lock:
            await self._ws.send_str(json.dumps(message))

    async def send_media(self, payload: PcmPayload) -> None:
        await self._send_json({
            "realtimeInput": {
                "mediaChunks": [{
                    "mimeType": payload.mime_type,
                    "data": codec.to_base64(payload)
                }]
            }
        })

    async def send_text(self, text: str) -> None:
        await self._send_json({"realtimeInput": {"text": text}})

    async def send_tool_response(self, response: ToolResponse) -> None:
        await self._send_json({
            "toolResponse": {
                "functionResponses": [response.to_wire()]
            }
        })

    async def close(self) -> None:
        self._closing = True
        self._open = False

        task = self._receive_task
        self._receive_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Receive loop ended with error: {e}")

        await self._release()

    async def _release(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception as e:
                logger.warning(f"WebSocket close error: {e}")

        session = self._session
        self._session = None
        if session is not None and not session.closed:
            await session.close()
