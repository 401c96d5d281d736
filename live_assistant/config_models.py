"""
Pydantic configuration models with validation.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional

from .utils.tool_dispatcher import ToolErrorPolicy


class AudioConfig(BaseModel):
    """Capture and playback device configuration."""
    capture_sample_rate: int = Field(16000, ge=8000, le=48000, description="Microphone sample rate")
    playback_sample_rate: int = Field(24000, ge=8000, le=48000, description="Speaker sample rate")
    block_size: int = Field(4096, ge=256, le=16384, description="Samples per captured block")
    activity_threshold: float = Field(0.05, gt=0.0, lt=1.0, description="Peak amplitude counted as speech")
    input_device: Optional[int] = Field(None, description="Input device index (None = default)")
    output_device: Optional[int] = Field(None, description="Output device index (None = default)")
    latency: str = Field("low", description="sounddevice latency hint")

    @field_validator('latency')
    @classmethod
    def validate_latency(cls, v):
        valid = ['low', 'high']
        if v not in valid:
            raise ValueError(f'Invalid latency. Must be one of: {valid}')
        return v


class LiveChannelConfig(BaseModel):
    """Remote live-model channel configuration."""
    api_key: Optional[str] = Field(None, description="Gemini API key")
    model: str = Field("gemini-2.5-flash-native-audio-preview-12-2025", description="Live model name")
    voice: str = Field("Kore", description="Prebuilt voice name")
    system_instruction: str = Field("", description="System instruction, forwarded verbatim")
    greeting: str = Field("", description="Opening move sent once the session opens")
    endpoint: Optional[str] = Field(None, description="WebSocket endpoint override")
    connect_timeout: float = Field(15.0, gt=0.0, le=120.0, description="Seconds to wait for the session to open")
    heartbeat: float = Field(20.0, gt=0.0, description="WebSocket heartbeat interval")

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        # Missing keys are reported at start(); only reject obviously broken ones
        if v is not None and v.strip() in ('', 'undefined'):
            return None
        return v


class ToolConfig(BaseModel):
    """Bound tool configuration."""
    error_policy: ToolErrorPolicy = Field(ToolErrorPolicy.REPORT_ERROR, description="Response status when a tool raises")
    booking_webhook_url: Optional[str] = Field(None, description="Endpoint receiving booking requests")
    booking_simulated_latency: float = Field(1.5, ge=0.0, le=30.0, description="Simulated backend latency")

    @field_validator('booking_webhook_url')
    @classmethod
    def validate_webhook(cls, v):
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError('Webhook URL must be http(s)')
        return v or None


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field("INFO", description="Log level")
    log_file: Optional[str] = Field(None, description="Optional log file path")
    use_colors: bool = True
    use_emojis: bool = True

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        valid = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid:
            raise ValueError(f'Invalid log level. Must be one of: {valid}')
        return v.upper()


class FrameworkConfig(BaseModel):
    """Complete engine configuration."""
    channel: LiveChannelConfig = Field(default_factory=LiveChannelConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    tools: ToolConfig = Field(default_factory=ToolConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
