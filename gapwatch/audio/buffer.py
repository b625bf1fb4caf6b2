"""Rolling audio buffer that seals PCM into chunks for repeated analysis."""

import logging
import threading
from collections import deque
from typing import Callable, Dict, Any, List, Optional

from ..errors import InvalidWindowDuration
from ..models.audio import AudioChunk, SessionArchive
from .wav import AUDIO_FORMAT, encode_wav

logger = logging.getLogger(__name__)


class AudioRingBuffer:
    """Chunked audio store with a bounded recent pool and a full session archive.

    Raw PCM is accumulated until a chunk of the target duration is complete.
    Every sealed chunk goes into both the recent pool, which is pruned to the
    retention horizon, and the archive, which is never pruned.
    """

    def __init__(self,
                 sample_rate: int = 16000,
                 channels: int = 1,
                 sample_width: int = 2,
                 chunk_duration_ms: int = 5000,
                 retention_ms: int = 30000,
                 on_chunk: Optional[Callable[[AudioChunk], None]] = None):
        """Initialize the ring buffer.

        Args:
            sample_rate: Audio sample rate
            channels: Number of audio channels
            sample_width: Bytes per sample (2 for 16-bit audio)
            chunk_duration_ms: Target duration of each sealed chunk
            retention_ms: How much audio the recent pool keeps
            on_chunk: Called with each newly sealed chunk
        """
        if chunk_duration_ms <= 0:
            raise ValueError("chunk_duration_ms must be positive")

        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_width = sample_width
        self.chunk_duration_ms = chunk_duration_ms
        self.retention_ms = max(retention_ms, chunk_duration_ms)
        self.on_chunk = on_chunk

        self.frame_bytes = channels * sample_width
        self.bytes_per_second = sample_rate * self.frame_bytes
        chunk_frames = max(1, int(sample_rate * chunk_duration_ms / 1000))
        self.chunk_bytes = chunk_frames * self.frame_bytes

        self.lock = threading.Lock()
        self._reset_state()

        logger.info(f"AudioRingBuffer initialized: {chunk_duration_ms}ms chunks "
                    f"({self.chunk_bytes} bytes), {self.retention_ms}ms retention")

    def _reset_state(self) -> None:
        self.pending = bytearray()
        self.recent: deque = deque()
        self.recent_duration_ms = 0
        self.archive = SessionArchive(
            sample_rate=self.sample_rate,
            channels=self.channels,
            sample_width=self.sample_width,
            format=AUDIO_FORMAT,
        )
        self.captured_ms = 0
        self.chunk_counter = 0
        self.frozen = False

    def reset(self) -> None:
        """Drop all audio and start a fresh archive."""
        with self.lock:
            self._reset_state()
            logger.debug("Audio ring buffer reset")

    def add_audio(self, pcm: bytes) -> None:
        """Append raw PCM, sealing chunks as they fill."""
        if not pcm:
            return

        with self.lock:
            if self.frozen:
                logger.warning(f"Dropping {len(pcm)} bytes: archive is frozen")
                return
            self.pending.extend(pcm)
            sealed = []
            while len(self.pending) >= self.chunk_bytes:
                data = bytes(self.pending[:self.chunk_bytes])
                del self.pending[:self.chunk_bytes]
                sealed.append(self._seal(data))

        # Notify outside the lock so subscribers can read the buffer
        for chunk in sealed:
            self._notify(chunk)

    def flush(self) -> Optional[AudioChunk]:
        """Seal whatever partial chunk is pending.

        Returns:
            The sealed chunk, or None if nothing whole-frame was pending
        """
        with self.lock:
            usable = len(self.pending) - len(self.pending) % self.frame_bytes
            if usable <= 0 or self.frozen:
                self.pending.clear()
                return None
            chunk = self._seal(bytes(self.pending[:usable]))
            self.pending.clear()
        self._notify(chunk)
        return chunk

    def freeze(self) -> None:
        """Seal the trailing audio and reject anything added afterwards."""
        self.flush()
        with self.lock:
            self.frozen = True
            logger.info(f"Audio archive frozen: {len(self.archive.chunks)} chunks, "
                        f"{self.archive.duration_ms}ms")

    def _seal(self, data: bytes) -> AudioChunk:
        duration_ms = int(len(data) * 1000 / self.bytes_per_second)
        chunk = AudioChunk(
            chunk_id=f"chunk_{self.chunk_counter}",
            sequence_number=self.chunk_counter,
            data=data,
            timestamp_ms=self.captured_ms,
            duration_ms=duration_ms,
        )
        self.chunk_counter += 1
        self.captured_ms += duration_ms

        self.archive.chunks.append(chunk)
        self.recent.append(chunk)
        self.recent_duration_ms += duration_ms

        # Prune only while the remaining chunks still cover the horizon
        while len(self.recent) > 1 and self.recent_duration_ms - self.recent[0].duration_ms >= self.retention_ms:
            old_chunk = self.recent.popleft()
            self.recent_duration_ms -= old_chunk.duration_ms

        logger.debug(f"Sealed {chunk.chunk_id}: {len(data)} bytes, {duration_ms}ms; "
                     f"recent pool {len(self.recent)} chunks ({self.recent_duration_ms}ms)")
        return chunk

    def _notify(self, chunk: AudioChunk) -> None:
        if self.on_chunk:
            try:
                self.on_chunk(chunk)
            except Exception as e:
                logger.error(f"Chunk subscriber failed for {chunk.chunk_id}: {e}", exc_info=True)

    def get_recent_window(self, duration_ms: int) -> Optional[bytes]:
        """Get the newest audio covering at least ``duration_ms``.

        Args:
            duration_ms: Minimum duration the window must cover

        Returns:
            WAV payload of the fewest newest chunks covering the duration, or
            None if not enough audio has been captured yet
        """
        if duration_ms <= 0:
            raise InvalidWindowDuration(f"Window duration must be positive, got {duration_ms}")

        with self.lock:
            # Requests beyond the retention horizon can only be served by the archive
            pool = self.recent if duration_ms <= self.retention_ms else self.archive.chunks

            selected: List[AudioChunk] = []
            covered = 0
            for chunk in reversed(pool):
                selected.append(chunk)
                covered += chunk.duration_ms
                if covered >= duration_ms:
                    break

            if covered < duration_ms:
                logger.debug(f"Recent window of {duration_ms}ms unavailable: only {covered}ms captured")
                return None

            selected.reverse()
            pcm = b''.join(chunk.data for chunk in selected)

        logger.debug(f"Extracted recent window: {len(selected)} chunks, {covered}ms, {len(pcm)} bytes")
        return encode_wav(pcm, self.sample_rate, self.channels, self.sample_width)

    def get_full_audio(self) -> Optional[SessionArchive]:
        """Get the session archive.

        Once frozen the archive itself is handed over; before that a snapshot
        of the chunks captured so far is returned.
        """
        with self.lock:
            if not self.archive.chunks:
                return None
            if self.frozen:
                return self.archive
            return SessionArchive(
                sample_rate=self.archive.sample_rate,
                channels=self.archive.channels,
                sample_width=self.archive.sample_width,
                format=self.archive.format,
                chunks=list(self.archive.chunks),
            )

    def get_buffer_stats(self) -> Dict[str, Any]:
        """Get buffer statistics."""
        with self.lock:
            return {
                "recent_chunks": len(self.recent),
                "recent_duration_ms": self.recent_duration_ms,
                "archive_chunks": len(self.archive.chunks),
                "archive_duration_ms": self.captured_ms,
                "pending_bytes": len(self.pending),
                "retention_ms": self.retention_ms,
                "chunk_duration_ms": self.chunk_duration_ms,
                "frozen": self.frozen,
            }
