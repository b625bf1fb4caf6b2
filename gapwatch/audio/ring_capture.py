"""Audio ring capture: live microphone input plus a chunked ring buffer."""

import time
import logging
from typing import Optional, Callable, Dict, Any

from ..models.audio import AudioStats, SessionArchive
from .audio_pub import AudioPublisher
from .buffer import AudioRingBuffer
from .wav import AUDIO_FORMAT

logger = logging.getLogger(__name__)


class AudioRingCapture:
    """Owns the input device between start() and stop().

    Exposes a bounded recent window for repeated analysis and the full
    session archive for playback.
    """

    def __init__(self,
                 sample_rate: int = 16000,
                 channels: int = 1,
                 frames_per_buffer: int = 1024,
                 chunk_duration_ms: int = 5000,
                 retention_ms: int = 30000,
                 publisher: Optional[AudioPublisher] = None,
                 capture_factory: Optional[Callable[..., Any]] = None):
        """Initialize ring capture.

        Args:
            sample_rate: Audio sample rate
            channels: Number of audio channels
            frames_per_buffer: Frames per device read
            chunk_duration_ms: Target duration of each chunk
            retention_ms: Horizon of the recent pool
            publisher: Optional publisher for sealed chunks
            capture_factory: Builds the device capture; defaults to AudioCapture
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.capture_factory = capture_factory

        self.buffer = AudioRingBuffer(
            sample_rate=sample_rate,
            channels=channels,
            chunk_duration_ms=chunk_duration_ms,
            retention_ms=retention_ms,
            on_chunk=publisher.publish_audio_chunk if publisher else None,
        )

        self.audio_capture = None
        self.start_time: Optional[float] = None
        self.stop_time: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self.audio_capture is not None

    def start(self) -> None:
        """Begin capturing from the default input device.

        Raises:
            DeviceUnavailable: If no input device or permission is available
        """
        if self.is_recording:
            logger.warning("Ring capture already running")
            return

        factory = self.capture_factory
        if factory is None:
            from .capture import AudioCapture
            factory = AudioCapture

        self.buffer.reset()
        capture = factory(
            callback=self.buffer.add_audio,
            sample_rate=self.sample_rate,
            frames_per_buffer=self.frames_per_buffer,
            channels=self.channels,
        )
        capture.start_recording()

        self.audio_capture = capture
        self.start_time = time.monotonic()
        self.stop_time = None
        logger.info("Audio ring capture started")

    def stop(self) -> None:
        """Halt capture, release the device and freeze the archive."""
        if not self.is_recording:
            logger.debug("Ring capture not running")
            return

        self.audio_capture.stop_recording()
        self.audio_capture = None
        self.buffer.freeze()
        self.stop_time = time.monotonic()
        logger.info(f"Audio ring capture stopped after {self.get_elapsed_ms()}ms")

    def get_recent_window(self, duration_ms: int) -> Optional[bytes]:
        """Get the newest audio covering at least ``duration_ms`` as one payload."""
        return self.buffer.get_recent_window(duration_ms)

    def get_full_audio(self) -> Optional[SessionArchive]:
        """Get the session archive (so far, when called mid-session)."""
        return self.buffer.get_full_audio()

    def get_audio_format(self) -> str:
        """Container tag of the payloads this capture produces."""
        return AUDIO_FORMAT

    def get_elapsed_ms(self) -> int:
        if self.start_time is None:
            return 0
        end = self.stop_time if self.stop_time is not None else time.monotonic()
        return int((end - self.start_time) * 1000)

    def get_recording_stats(self) -> Optional[AudioStats]:
        if self.audio_capture is None:
            return None
        return self.audio_capture.get_recording_stats(total_chunks=self.buffer.chunk_counter)

    def get_buffer_stats(self) -> Dict[str, Any]:
        return self.buffer.get_buffer_stats()
