"""
Linear PCM codec: normalized float samples <-> 16-bit little-endian bytes.
"""

import base64
import binascii
from typing import Sequence, Union

import numpy as np

from ...models.data_models import AudioChunk, PcmPayload
from ..error_handling import DecodeError


SAMPLE_WIDTH = 2  # bytes per int16 sample
PCM_SCALE = 32767
_WIRE_DTYPE = np.dtype('<i2')

SampleInput = Union[Sequence[float], np.ndarray]


def encode(samples: SampleInput) -> bytes:
    """
    Quantize float samples in [-1, 1] to int16 little-endian bytes.

    Each sample maps to round(sample * 32767), clamped to the int16 range.
    An empty input encodes to empty bytes.
    """
    array = np.asarray(samples, dtype=np.float64).reshape(-1)
    if array.size == 0:
        return b''
    scaled = np.clip(np.rint(array * PCM_SCALE), -32768, 32767)
    return scaled.astype(_WIRE_DTYPE).tobytes()


def decode(data: bytes, sample_rate: int, channels: int = 1) -> AudioChunk:
    """
    Inverse of `encode`.

    Args:
        data: int16 little-endian PCM, interleaved when channels > 1
        sample_rate: Sample rate of the data
        channels: Channel count

    Raises:
        DecodeError: If the byte length is not a whole number of frames
    """
    if channels < 1:
        raise DecodeError(f"Invalid channel count: {channels}")
    frame_width = SAMPLE_WIDTH * channels
    if len(data) % frame_width != 0:
        raise DecodeError(
            f"PCM payload of {len(data)} bytes is not a multiple of the {frame_width}-byte frame width"
        )

    samples = np.frombuffer(data, dtype=_WIRE_DTYPE).astype(np.float32) / PCM_SCALE
    if channels > 1:
        samples = samples.reshape(-1, channels)
    samples.setflags(write=False)
    return AudioChunk(samples=samples, sample_rate=sample_rate, channels=channels)


def encode_chunk(chunk: AudioChunk) -> PcmPayload:
    """Encode an AudioChunk into a wire payload carrying its rate and channel count."""
    return PcmPayload(
        data=encode(chunk.samples),
        sample_rate=chunk.sample_rate,
        channels=chunk.channels
    )


def decode_base64(data: str, sample_rate: int, channels: int = 1) -> AudioChunk:
    """
    Decode a base64 `inlineData` payload.

    Raises:
        DecodeError: On invalid base64 or a partial frame
    """
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecodeError(f"Invalid base64 audio payload: {e}") from e
    return decode(raw, sample_rate, channels)


def to_base64(payload: PcmPayload) -> str:
    return base64.b64encode(payload.data).decode('ascii')


def parse_rate(mime_type: str, default: int) -> int:
    """Read the `rate=` parameter of an `audio/pcm;rate=N` mime type."""
    for param in (mime_type or '').split(';')[1:]:
        key, _, value = param.strip().partition('=')
        if key.strip().lower() == 'rate':
            try:
                return int(value)
            except ValueError:
                return default
    return default
