"""WAV container helpers for handing PCM to external collaborators."""

import io
import wave

AUDIO_FORMAT = "wav"


def encode_wav(pcm: bytes, sample_rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    """Wrap raw little-endian PCM frames in a WAV container.

    Args:
        pcm: Raw PCM bytes
        sample_rate: Sample rate in Hz
        channels: Number of interleaved channels
        sample_width: Bytes per sample

    Returns:
        Complete WAV file contents
    """
    out = io.BytesIO()
    with wave.open(out, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return out.getvalue()
