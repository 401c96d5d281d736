"""
Configuration for the live voice session engine.
Organized into discrete feature sections for clarity.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv

from .config_models import FrameworkConfig


# =============================================================================
# SECTION 1: ENVIRONMENT & CREDENTIALS
# =============================================================================

# Load environment variables from the project root
parent_dir = Path(__file__).parent.parent
env_path = parent_dir / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _api_key() -> Optional[str]:
    return os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")


# =============================================================================
# SECTION 2: LIVE MODEL CHANNEL
# =============================================================================
# The system instruction and greeting are forwarded to the remote model as-is.

SYSTEM_INSTRUCTION = """You are Mia, the professional Voice AI Assistant for G.C Mia Dental Clinic.
Location: Antipolo City. Dr. Gloryner Mia-Dibaratun.
Goal: Assist patients with bookings, pricing, and hours.
Tone: Warm, empathetic, clinical, and fluent in Taglish/English.
Hours: Mon-Thu 4pm-7pm, Sat-Sun 12pm-7pm. Friday is CLOSED."""

GREETING = (
    "Start by saying: 'Kumusta! I am Mia, your digital receptionist for G.C Mia Dental Clinic "
    "in Antipolo. How can I help you today?' in a warm Taglish tone."
)

GEMINI_LIVE_CONFIG = {
    "api_key": _api_key(),
    "model": os.getenv("LIVE_MODEL", "gemini-2.5-flash-native-audio-preview-12-2025"),
    "voice": os.getenv("LIVE_VOICE", "Kore"),
    "system_instruction": SYSTEM_INSTRUCTION,
    "greeting": GREETING,
    "connect_timeout": 15.0,
    "heartbeat": 20.0,
}


# =============================================================================
# SECTION 3: AUDIO DEVICES
# =============================================================================

AUDIO_CONFIG = {
    "capture_sample_rate": 16000,
    "playback_sample_rate": 24000,
    "block_size": 4096,           # ~256ms per capture block at 16kHz
    "activity_threshold": 0.05,   # Peak amplitude above which the user counts as speaking
    "input_device": None,         # None = system default
    "output_device": None,
    "latency": "low",
}


# =============================================================================
# SECTION 4: TOOLS
# =============================================================================

TOOL_CONFIG = {
    # "report_error" tells the model the action failed; "report_success" lets it
    # carry on as if it succeeded (avoids a spoken apology)
    "error_policy": os.getenv("TOOL_ERROR_POLICY", "report_error"),
    "booking_webhook_url": os.getenv("BOOKING_WEBHOOK_URL") or None,
    "booking_simulated_latency": 1.5,
}


# =============================================================================
# SECTION 5: LOGGING
# =============================================================================

LOGGING_CONFIG = {
    "level": os.getenv("LOG_LEVEL", "INFO"),
    "log_file": os.getenv("LOG_FILE") or None,
    "use_colors": True,
    "use_emojis": True,
}


# =============================================================================
# SECTION 6: QUICK PROMPTS
# =============================================================================
# Preset text messages a front end can send with one action.

QUICK_PROMPTS = {
    "Book Appointment": "I'd like to book a dental appointment, please.",
    "Price Check": "How much is a tooth cleaning or filling?",
    "Clinic Hours": "What are your opening hours in Antipolo?",
    "About Dr. Mia": "Tell me about Dr. Gloryner Mia's expertise.",
}


# =============================================================================
# CONFIG ASSEMBLY
# =============================================================================

def get_framework_config(overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> FrameworkConfig:
    """
    Build the validated engine configuration.

    Args:
        overrides: Optional per-section overrides, e.g. {"audio": {"block_size": 2048}}

    Returns:
        FrameworkConfig
    """
    sections = {
        "channel": dict(GEMINI_LIVE_CONFIG),
        "audio": dict(AUDIO_CONFIG),
        "tools": dict(TOOL_CONFIG),
        "logging": dict(LOGGING_CONFIG),
    }
    for section, values in (overrides or {}).items():
        sections.setdefault(section, {}).update(values)
    return FrameworkConfig(**sections)


def print_config_summary(config: Optional[FrameworkConfig] = None) -> None:
    """Print a summary of the current configuration."""
    config = config or get_framework_config()
    key = config.channel.api_key
    print("=" * 60)
    print("Live Assistant Configuration")
    print("=" * 60)
    print(f"🔑 API key:        {'*' * 10 + key[-4:] if key else 'MISSING'}")
    print(f"🤖 Model:          {config.channel.model} (voice: {config.channel.voice})")
    print(f"🎤 Capture:        {config.audio.capture_sample_rate}Hz, block {config.audio.block_size}, threshold {config.audio.activity_threshold}")
    print(f"🔊 Playback:       {config.audio.playback_sample_rate}Hz")
    print(f"🔧 Tool errors:    {config.tools.error_policy.value}")
    print(f"📅 Booking hook:   {config.tools.booking_webhook_url or 'simulated'}")
    print(f"📝 Log level:      {config.logging.level}")
    print("=" * 60)
