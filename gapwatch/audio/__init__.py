"""Audio capture and buffering module."""

from .buffer import AudioRingBuffer
from .ring_capture import AudioRingCapture
from .audio_pub import AudioPublisher
from .wav import AUDIO_FORMAT, encode_wav

__all__ = [
    'AudioRingBuffer',
    'AudioRingCapture',
    'AudioPublisher',
    'AUDIO_FORMAT',
    'encode_wav'
]
