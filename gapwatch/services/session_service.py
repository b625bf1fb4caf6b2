"""Session lifecycle service wiring capture, headband and orchestrator together."""

import time
import logging
from datetime import datetime
from typing import Callable, Optional

from ..audio.audio_pub import AudioPublisher
from ..audio.ring_capture import AudioRingCapture
from ..biosignal.client import BiosignalStreamClient
from ..biosignal.publisher import BiosignalPublisher
from ..config import GapwatchConfig
from ..errors import DeviceNotFound
from ..models.session import SessionArtifacts
from ..observer.http_backend import HttpJudgmentBackend
from .session_orchestrator import SessionOrchestrator, MIN_WINDOW_BYTES

logger = logging.getLogger(__name__)


class ObservationSessionService:
    """Runs one observation session from start to artifact hand-off."""

    def __init__(self,
                 config: GapwatchConfig,
                 backend=None,
                 audio_capture: Optional[AudioRingCapture] = None,
                 biosignal_client: Optional[BiosignalStreamClient] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the session service.

        Args:
            config: Application configuration
            backend: Judgment collaborator implementing all three contracts;
                an HttpJudgmentBackend built from config if omitted
            audio_capture: Ring capture, built from config if omitted
            biosignal_client: Headband client, built on first connect_headband() if omitted
            clock: Monotonic clock in seconds
        """
        self.config = config
        self.clock = clock

        if backend is None:
            backend = HttpJudgmentBackend(
                config.get_judgment_url(),
                api_key=config.get('observer.api_key'),
                timeout_seconds=config.get('observer.request_timeout_seconds', 30),
            )
        self.backend = backend

        self.audio_capture = audio_capture or AudioRingCapture(
            sample_rate=config.get('audio.sample_rate', 16000),
            channels=config.get('audio.channels', 1),
            frames_per_buffer=config.get('audio.frames_per_buffer', 1024),
            chunk_duration_ms=config.get('audio.chunk_duration_ms', 5000),
            retention_ms=config.get('audio.retention_ms', 30000),
            publisher=AudioPublisher(),
        )
        self.biosignal_client = biosignal_client

        self.orchestrator = SessionOrchestrator(
            self.audio_capture,
            gap_analyzer=backend,
            probe_generator=backend,
            end_checker=backend,
            config=config.get_observer_config(),
            min_window_bytes=config.get('observer.min_window_bytes', MIN_WINDOW_BYTES),
            clock=clock,
        )

        self.is_active = False
        self.problem: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.start_clock: Optional[float] = None
        self.artifacts: Optional[SessionArtifacts] = None

        logger.info("ObservationSessionService ready")

    def start_session(self, problem: str) -> None:
        """Start capturing audio and running observation cycles.

        Raises:
            DeviceUnavailable: No microphone or permission denied
        """
        if self.is_active:
            raise RuntimeError("Session already active")
        if not problem or not problem.strip():
            raise ValueError("Problem statement must not be empty")

        self.audio_capture.start()
        self.problem = problem.strip()
        self.started_at = datetime.now()
        self.start_clock = self.clock()
        self.artifacts = None
        self.orchestrator.start(self.problem)
        self.is_active = True
        logger.info(f"Observation session started: {self.problem}")

    def _create_biosignal_client(self) -> BiosignalStreamClient:
        from ..biosignal.transport import BleakMuseTransport

        transport = BleakMuseTransport(device_name=self.config.get('biosignal.device_name'))
        return BiosignalStreamClient(transport, publisher=BiosignalPublisher())

    def connect_headband(self) -> bool:
        """Pair with the headband and start streaming.

        Returns:
            True once streaming, False if the user cancelled pairing

        Raises:
            DeviceNotFound: Discovery or pairing failed for another reason
            ConnectionLost: The link dropped while starting the stream
        """
        if self.biosignal_client is None:
            self.biosignal_client = self._create_biosignal_client()

        timeout = self.config.get('biosignal.connect_timeout_seconds', 30)
        try:
            self.biosignal_client.connect(timeout=timeout)
        except DeviceNotFound as e:
            if e.user_cancelled:
                logger.info("Headband pairing cancelled by user")
                return False
            raise

        self.biosignal_client.start_streaming()
        logger.info(f"Headband streaming: {self.biosignal_client.device_name}")
        return True

    def stop_session(self, status: str = "completed") -> Optional[SessionArtifacts]:
        """Stop everything and bundle the session artifacts.

        Repeated calls return the artifacts of the first stop.
        """
        if not self.is_active:
            logger.debug("stop_session called with no active session")
            return self.artifacts
        self.is_active = False

        self.orchestrator.stop()
        self.audio_capture.stop()
        duration_ms = int((self.clock() - self.start_clock) * 1000)

        eeg_samples = None
        band_powers = None
        band_power_average = None
        device_name = None
        client = self.biosignal_client
        if client is not None and client.device_name is not None:
            session_data = client.get_session_data()
            eeg_samples = session_data["eeg"]
            band_powers = client.latest_band_powers
            band_power_average = client.get_average_band_powers()
            device_name = client.device_name
            client.disconnect()

        orchestrator = self.orchestrator
        self.artifacts = SessionArtifacts(
            problem=self.problem,
            started_at=self.started_at,
            duration_ms=duration_ms,
            observer_config=orchestrator.config,
            end_status=status,
            audio=self.audio_capture.get_full_audio(),
            audio_format=self.audio_capture.get_audio_format(),
            probes=list(orchestrator.probes),
            gap_scores=[score for _, score in orchestrator.gap_scores],
            transcripts=list(orchestrator.transcripts),
            eeg_samples=eeg_samples,
            band_powers=band_powers,
            band_power_average=band_power_average,
            device_name=device_name,
        )
        logger.info(f"Session stopped ({status}): {duration_ms}ms, {len(orchestrator.probes)} probes")
        return self.artifacts

    def cleanup(self) -> None:
        """Clean up service resources."""
        if self.is_active:
            self.stop_session("aborted")
        if self.biosignal_client is not None:
            self.biosignal_client.disconnect()
        logger.info("ObservationSessionService cleaned up")
