"""
Tests for the linear PCM codec.
"""

import base64

import numpy as np
import pytest

from live_assistant.models.data_models import AudioChunk
from live_assistant.utils.audio import codec
from live_assistant.utils.error_handling import DecodeError


class TestEncode:
    """Float -> int16 quantization."""

    def test_full_scale_and_zero(self):
        data = codec.encode([0.0, 1.0, -1.0])
        assert np.frombuffer(data, dtype='<i2').tolist() == [0, 32767, -32767]

    def test_output_is_little_endian(self):
        assert codec.encode([1.0]) == b'\xff\x7f'

    def test_out_of_range_samples_are_clamped(self):
        data = codec.encode([2.0, -2.0])
        assert np.frombuffer(data, dtype='<i2').tolist() == [32767, -32768]

    def test_empty_input_encodes_to_empty_bytes(self):
        assert codec.encode([]) == b''
        assert codec.encode(np.zeros(0, dtype=np.float32)) == b''

    def test_length_is_two_bytes_per_sample(self):
        assert len(codec.encode(np.zeros(4096, dtype=np.float32))) == 8192

    def test_encode_chunk_carries_rate(self):
        chunk = AudioChunk(samples=np.zeros(10, dtype=np.float32), sample_rate=16000)
        payload = codec.encode_chunk(chunk)
        assert payload.mime_type == "audio/pcm;rate=16000"
        assert len(payload.data) == 20


class TestDecode:
    """int16 -> float with frame validation."""

    def test_decode_inverts_encode_within_quantization(self):
        samples = np.linspace(-1.0, 1.0, 101, dtype=np.float32)
        chunk = codec.decode(codec.encode(samples), 24000)
        assert chunk.frames == 101
        assert np.max(np.abs(chunk.samples - samples)) <= 1.0 / 32767

    def test_decoded_samples_stay_in_range(self):
        chunk = codec.decode(np.array([-32768, 32767], dtype='<i2').tobytes(), 24000)
        assert chunk.samples.min() >= -1.0 - 1e-4
        assert chunk.samples.max() <= 1.0

    def test_partial_frame_is_rejected(self):
        with pytest.raises(DecodeError):
            codec.decode(b'\x00\x01\x02', 24000)

    def test_partial_stereo_frame_is_rejected(self):
        with pytest.raises(DecodeError):
            codec.decode(b'\x00' * 6, 24000, channels=2)

    def test_stereo_is_deinterleaved(self):
        data = np.array([32767, 0, 32767, 0], dtype='<i2').tobytes()
        chunk = codec.decode(data, 24000, channels=2)
        assert chunk.samples.shape == (2, 2)
        assert chunk.frames == 2
        assert chunk.samples[:, 0].tolist() == [1.0, 1.0]

    def test_duration_uses_declared_rate(self):
        chunk = codec.decode(b'\x00\x00' * 2400, 24000)
        assert chunk.duration == pytest.approx(0.1)

    def test_decoded_buffer_is_read_only(self):
        chunk = codec.decode(b'\x00\x00' * 4, 24000)
        with pytest.raises(ValueError):
            chunk.samples[0] = 1.0


class TestBase64:
    """Wire payload helpers."""

    def test_decode_base64(self):
        raw = codec.encode([0.5, -0.5])
        chunk = codec.decode_base64(base64.b64encode(raw).decode('ascii'), 24000)
        assert chunk.frames == 2

    def test_invalid_base64_raises_decode_error(self):
        with pytest.raises(DecodeError):
            codec.decode_base64("not base64!!", 24000)

    def test_odd_length_payload_raises_decode_error(self):
        with pytest.raises(DecodeError):
            codec.decode_base64(base64.b64encode(b'\x00\x01\x02').decode('ascii'), 24000)

    @pytest.mark.parametrize("mime_type,expected", [
        ("audio/pcm;rate=24000", 24000),
        ("audio/pcm; rate=16000", 16000),
        ("audio/pcm", 22050),
        ("audio/pcm;rate=abc", 22050),
        ("", 22050),
    ])
    def test_parse_rate(self, mime_type, expected):
        assert codec.parse_rate(mime_type, 22050) == expected
