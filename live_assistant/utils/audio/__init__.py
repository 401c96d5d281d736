# Audio utilities package
# PCM codec, microphone capture, activity detection, output sink and playback scheduling

from . import codec
from .activity import AmplitudeActivityDetector, peak_amplitude
from .capture import CaptureProducer, CaptureConfig
from .output_sink import SoundDeviceOutputSink, OutputSinkConfig
from .playback import PlaybackScheduler, PlaybackHandle

__all__ = [
    # codec
    "codec",
    # activity
    "AmplitudeActivityDetector",
    "peak_amplitude",
    # capture
    "CaptureProducer",
    "CaptureConfig",
    # output_sink
    "SoundDeviceOutputSink",
    "OutputSinkConfig",
    # playback
    "PlaybackScheduler",
    "PlaybackHandle",
]
