"""
Tests for gapless playback scheduling and barge-in.
"""

import numpy as np
import pytest

from live_assistant.models.data_models import AudioChunk
from live_assistant.utils.audio.output_sink import SoundDeviceOutputSink, OutputSinkConfig, resample
from live_assistant.utils.audio.playback import PlaybackScheduler
from live_assistant.utils.error_handling import ErrorHandler, DeviceError


def chunk(seconds: float, rate: int = 24000) -> AudioChunk:
    return AudioChunk(samples=np.full(int(seconds * rate), 0.1, dtype=np.float32), sample_rate=rate)


@pytest.fixture
def speaking_events():
    return []


@pytest.fixture
def scheduler(fake_sink, speaking_events):
    scheduler = PlaybackScheduler(fake_sink, on_speaking_change=speaking_events.append)
    scheduler.open()
    return scheduler


class TestGaplessPlayback:

    def test_burst_is_scheduled_back_to_back(self, scheduler, fake_sink):
        fake_sink.now = 10.0
        scheduler.open()  # already open: clock untouched
        handles = [scheduler.enqueue(chunk(0.5)) for _ in range(3)]

        assert [h.start_time for h in handles] == pytest.approx([10.0, 10.5, 11.0])
        for previous, current in zip(fake_sink.scheduled, fake_sink.scheduled[1:]):
            assert current.start_time == pytest.approx(previous.end_time)

    def test_first_chunk_starts_now(self, fake_sink, speaking_events):
        fake_sink.now = 3.0
        scheduler = PlaybackScheduler(fake_sink)
        scheduler.open()
        handle = scheduler.enqueue(chunk(0.5))
        assert handle.start_time == pytest.approx(3.0)
        assert scheduler.next_start_time == pytest.approx(3.5)

    def test_next_start_time_advances_by_duration(self, scheduler):
        scheduler.enqueue(chunk(0.5))
        scheduler.enqueue(chunk(0.25))
        assert scheduler.next_start_time == pytest.approx(0.75)

    def test_drained_queue_restarts_at_current_time(self, scheduler, fake_sink):
        scheduler.enqueue(chunk(0.5))
        fake_sink.advance(2.0)
        handle = scheduler.enqueue(chunk(0.5))
        assert handle.start_time == pytest.approx(2.0)

    def test_next_start_time_never_behind_clock_after_enqueue(self, scheduler, fake_sink):
        fake_sink.now = 1.0
        scheduler.enqueue(chunk(0.1))
        assert scheduler.next_start_time >= fake_sink.current_time

    def test_late_start_moves_the_queue(self, scheduler, fake_sink):
        fake_sink.render_before_schedule = 0.2
        first = scheduler.enqueue(chunk(0.5))
        second = scheduler.enqueue(chunk(0.5))

        assert first.start_time == pytest.approx(0.2)
        assert second.start_time == pytest.approx(first.end_time)
        assert scheduler.next_start_time == pytest.approx(1.2)

    def test_empty_chunk_is_ignored(self, scheduler, fake_sink):
        assert scheduler.enqueue(chunk(0.0)) is None
        assert fake_sink.scheduled == []

    def test_closed_scheduler_drops_audio(self, fake_sink):
        scheduler = PlaybackScheduler(fake_sink)
        assert scheduler.enqueue(chunk(0.5)) is None
        assert fake_sink.scheduled == []


class TestSpeakingFlag:

    def test_speaking_follows_live_set(self, scheduler, fake_sink, speaking_events):
        scheduler.enqueue(chunk(0.5))
        scheduler.enqueue(chunk(0.5))
        assert scheduler.is_speaking
        assert scheduler.live_count == 2

        fake_sink.advance(0.5)
        assert scheduler.live_count == 1
        assert scheduler.is_speaking

        fake_sink.advance(0.5)
        assert scheduler.live_count == 0
        assert not scheduler.is_speaking
        assert speaking_events == [True, False]

    def test_listener_only_sees_changes(self, scheduler, speaking_events):
        for _ in range(5):
            scheduler.enqueue(chunk(0.1))
        assert speaking_events == [True]


class TestBargeIn:

    def test_interrupt_cancels_everything(self, scheduler, fake_sink, speaking_events):
        for _ in range(4):
            scheduler.enqueue(chunk(0.5))
        fake_sink.advance(0.7)

        stopped = scheduler.interrupt()

        assert stopped == 3
        assert scheduler.live_count == 0
        assert not scheduler.is_speaking
        assert len(fake_sink.cancelled) == 3
        assert speaking_events == [True, False]

    def test_interrupt_rebases_clock(self, scheduler, fake_sink):
        for _ in range(4):
            scheduler.enqueue(chunk(0.5))
        fake_sink.advance(0.7)
        scheduler.interrupt()

        assert scheduler.next_start_time == pytest.approx(0.7)
        handle = scheduler.enqueue(chunk(0.5))
        assert handle.start_time == pytest.approx(0.7)

    def test_stopped_handle_completion_is_ignored(self, scheduler, fake_sink, speaking_events):
        first = scheduler.enqueue(chunk(0.5))
        token = first.token
        scheduler.interrupt()
        second = scheduler.enqueue(chunk(0.5))

        token.on_done()  # late completion of a stopped buffer

        assert second in scheduler.live_handles
        assert scheduler.is_speaking
        assert speaking_events == [True, False, True]

    def test_interrupt_when_idle(self, scheduler, speaking_events):
        assert scheduler.interrupt() == 0
        assert speaking_events == []

    def test_shutdown_releases_sink_once(self, scheduler, fake_sink):
        scheduler.enqueue(chunk(0.5))
        scheduler.shutdown()
        scheduler.shutdown()
        assert fake_sink.close_count == 1
        assert not scheduler.is_open
        assert scheduler.live_count == 0


class TestFailureIsolation:

    def test_schedule_failure_leaves_state_untouched(self, fake_sink):
        handler = ErrorHandler()
        scheduler = PlaybackScheduler(fake_sink, error_handler=handler)
        scheduler.open()
        scheduler.enqueue(chunk(0.5))

        fake_sink.fail_next_schedule = True
        assert scheduler.enqueue(chunk(0.5)) is None

        assert scheduler.next_start_time == pytest.approx(0.5)
        assert scheduler.live_count == 1
        assert handler.get_error_summary()['total_errors'] == 1

        handle = scheduler.enqueue(chunk(0.5))
        assert handle.start_time == pytest.approx(0.5)


class TestSoundDeviceOutputSink:
    """Mixer behaviour, driven by calling the stream callback directly."""

    class FakeOutputStream:
        def __init__(self, **kwargs):
            self.kwargs = kwargs
            self.callback = kwargs['callback']

        def start(self):
            pass

        def stop(self):
            pass

        def close(self):
            pass

    @pytest.fixture
    def sink(self):
        sink = SoundDeviceOutputSink(
            OutputSinkConfig(sample_rate=8, block_size=4),
            stream_factory=self.FakeOutputStream
        )
        sink.open()
        return sink

    def render(self, sink, frames):
        out = np.zeros((frames, 1), dtype=np.float32)
        sink._stream.callback(out, frames, None, None)
        return out[:, 0]

    def test_adjacent_voices_play_without_gap(self, sink):
        a = AudioChunk(samples=np.full(3, 0.25, dtype=np.float32), sample_rate=8)
        b = AudioChunk(samples=np.full(3, 0.5, dtype=np.float32), sample_rate=8)
        sink.schedule(a, 0.0, lambda: None)
        sink.schedule(b, a.duration, lambda: None)

        out = np.concatenate([self.render(sink, 4), self.render(sink, 4)])
        assert out.tolist() == [0.25, 0.25, 0.25, 0.5, 0.5, 0.5, 0.0, 0.0]
        assert sink.current_time == pytest.approx(1.0)

    def test_voice_scheduled_behind_the_clock_starts_late(self, sink):
        start = sink.current_time
        self.render(sink, 4)  # audio thread runs between the clock read and schedule

        a = AudioChunk(samples=np.full(3, 0.25, dtype=np.float32), sample_rate=8)
        b = AudioChunk(samples=np.full(3, 0.5, dtype=np.float32), sample_rate=8)
        token_a = sink.schedule(a, start, lambda: None)
        token_b = sink.schedule(b, token_a.start_time + a.duration, lambda: None)

        out = np.concatenate([self.render(sink, 4) for _ in range(3)])

        assert token_a.start_time == pytest.approx(0.5)
        assert token_b.start_time == pytest.approx(0.875)
        assert out.tolist() == [0.25, 0.25, 0.25, 0.5, 0.5, 0.5] + [0.0] * 6

    def test_late_burst_through_scheduler_never_overlaps(self, sink):
        scheduler = PlaybackScheduler(sink)
        scheduler.open()
        original_schedule = sink.schedule
        rendered = []

        def schedule_after_render(chunk, start_time, on_done):
            rendered.append(self.render(sink, 4))
            return original_schedule(chunk, start_time, on_done)

        sink.schedule = schedule_after_render
        for value in (0.25, 0.5):
            scheduler.enqueue(AudioChunk(samples=np.full(3, value, dtype=np.float32), sample_rate=8))

        rendered.extend(self.render(sink, 4) for _ in range(2))
        out = np.concatenate(rendered)
        assert out.max() <= 0.5
        assert out.tolist().count(0.25) == 3
        assert out.tolist().count(0.5) == 3

    def test_cancelled_voice_is_silent(self, sink):
        token = sink.schedule(AudioChunk(samples=np.full(4, 0.5, dtype=np.float32), sample_rate=8), 0.0, lambda: None)
        sink.cancel(token)
        assert self.render(sink, 4).tolist() == [0.0] * 4

    def test_schedule_requires_open(self):
        sink = SoundDeviceOutputSink(stream_factory=self.FakeOutputStream)
        with pytest.raises(DeviceError):
            sink.schedule(AudioChunk(samples=np.zeros(4, dtype=np.float32), sample_rate=24000), 0.0, lambda: None)

    def test_resample_changes_length(self):
        assert resample(np.zeros(160, dtype=np.float32), 16000, 24000).size == 240
        assert resample(np.zeros(10, dtype=np.float32), 24000, 24000).size == 10
