"""Audio pipeline: source adapter, resampling, fixed-size frames, rolling window."""
from .adapter import AudioSource, AudioStreamAdapter, PushAudioSource
from .frames import AudioFrame, BlockBuffer
from .resample import StreamResampler, float32_to_int16, int16_to_float32
from .rolling_buffer import RollingBuffer

__all__ = [
    "AudioSource",
    "AudioStreamAdapter",
    "PushAudioSource",
    "AudioFrame",
    "BlockBuffer",
    "StreamResampler",
    "float32_to_int16",
    "int16_to_float32",
    "RollingBuffer",
]
