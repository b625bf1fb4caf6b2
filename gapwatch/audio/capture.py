"""Microphone capture running on a background thread."""

import pyaudio
import logging
from threading import Thread, Event
from typing import Optional, Callable
from datetime import datetime

from ..errors import DeviceUnavailable
from ..models.audio import AudioStats


logger = logging.getLogger(__name__)


class AudioCapture:
    """Continuous microphone capture that hands raw PCM to a callback."""

    def __init__(
        self,
        callback: Callable[[bytes], None],
        sample_rate: int = 16000,
        frames_per_buffer: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            callback: Receives each block of PCM read from the device
            sample_rate: Audio sample rate
            frames_per_buffer: Frames per device read
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
        """
        self.audio_callback = callback
        self.sample_rate = sample_rate
        self.frames_per_buffer = frames_per_buffer
        self.channels = channels
        self.format = format

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_reads = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream: Optional[pyaudio.Stream] = None

    def start_recording(self) -> None:
        """Open the input device and start recording in a background thread.

        Raises:
            DeviceUnavailable: If there is no input device or it cannot be opened
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio recording")
        # Open synchronously so device errors reach the caller
        self.stream = self.__open_audio_stream()

        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_reads = 0

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.recording_thread.start()
        self.is_recording = True

    def stop_recording(self) -> None:
        """Stop recording and release the input device."""
        if not self.is_recording:
            logger.debug("No recording in progress")
            return

        logger.info("Stopping audio recording")
        self.stop_event.set()

        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        self.is_recording = False
        logger.info(f"Recording stopped. Total reads: {self.total_reads}")

    def __open_audio_stream(self) -> pyaudio.Stream:
        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            # Raises when the host has no default input device
            self.pyaudio_instance.get_default_input_device_info()
            stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=None
            )
        except OSError as e:
            self.__release_pyaudio()
            raise DeviceUnavailable(f"Cannot open audio input device: {e}") from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.frames_per_buffer} frames/read")
        return stream

    def __release_pyaudio(self) -> None:
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        stream = self.stream
        try:
            while not self.stop_event.is_set():
                audio_block = stream.read(self.frames_per_buffer, exception_on_overflow=False)
                self.total_reads += 1
                self.audio_callback(audio_block)
        except OSError as e:
            logger.error(f"Audio stream read failed: {e}")
        finally:
            if stream:
                stream.stop_stream()
                stream.close()
            self.stream = None
            self.__release_pyaudio()

    def get_recording_stats(self, total_chunks: int = 0) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            frames_per_buffer=self.frames_per_buffer,
            total_reads=self.total_reads,
            total_chunks=total_chunks,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.stop_recording()
