"""Audio-related data models."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    frames_per_buffer: int
    total_reads: int
    total_chunks: int


@dataclass
class AudioChunk:
    """A sealed segment of PCM audio."""
    chunk_id: str
    sequence_number: int
    data: bytes
    timestamp_ms: int  # Offset from recording start when the chunk began
    duration_ms: int


@dataclass
class SessionArchive:
    """Every chunk captured between start() and stop(), in capture order."""
    sample_rate: int
    channels: int
    sample_width: int
    format: str = "wav"
    chunks: List[AudioChunk] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        return sum(chunk.duration_ms for chunk in self.chunks)

    @property
    def pcm(self) -> bytes:
        return b''.join(chunk.data for chunk in self.chunks)

    @property
    def payload(self) -> bytes:
        """The whole archive as a single WAV blob."""
        from ..audio.wav import encode_wav
        return encode_wav(self.pcm, self.sample_rate, self.channels, self.sample_width)
