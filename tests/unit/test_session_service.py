"""Unit tests for ObservationSessionService."""

import asyncio
import pytest

from gapwatch.audio.ring_capture import AudioRingCapture
from gapwatch.biosignal.client import BiosignalStreamClient
from gapwatch.config import GapwatchConfig
from gapwatch.errors import DeviceNotFound
from gapwatch.models.biosignal import StreamStatus
from gapwatch.models.observer import CycleOutcome, ObserverMode
from gapwatch.services.session_service import ObservationSessionService


class FakeCapture:
    """Device stand-in; the test pushes PCM through ``callback``."""

    def __init__(self, callback, sample_rate, frames_per_buffer, channels):
        self.callback = callback
        self.stopped = False

    def start_recording(self):
        pass

    def stop_recording(self):
        self.stopped = True


@pytest.fixture
def devices():
    return []


@pytest.fixture
def ring_capture(devices):
    def factory(**kwargs):
        device = FakeCapture(**kwargs)
        devices.append(device)
        return device

    return AudioRingCapture(sample_rate=1000, chunk_duration_ms=1000, retention_ms=30000,
                            capture_factory=factory)


@pytest.fixture
def make_service(config_file, ring_capture, scripted_backend, fake_clock):
    def build(scores=(), biosignal_client=None):
        backend = scripted_backend(scores=scores)
        service = ObservationSessionService(
            GapwatchConfig(config_file),
            backend=backend,
            audio_capture=ring_capture,
            biosignal_client=biosignal_client,
            clock=fake_clock,
        )
        return service, backend
    return build


def speak(device, seconds):
    """Push ``seconds`` of 16-bit PCM at 1 kHz through the fake device."""
    device.callback(b'\x10\x00' * 1000 * seconds)


@pytest.mark.unit
class TestObservationSessionService:
    """Test cases for the session lifecycle."""

    def test_service_uses_config(self, make_service):
        service, _ = make_service()

        assert service.orchestrator.config.mode == ObserverMode.PASSIVE
        assert service.orchestrator.min_window_bytes == 1000
        assert service.is_active is False

    def test_start_session_rejects_empty_problem(self, make_service):
        service, _ = make_service()

        with pytest.raises(ValueError):
            service.start_session("   ")
        assert service.is_active is False

    def test_start_session_twice(self, make_service):
        service, _ = make_service()
        service.start_session("Explain recursion")
        try:
            with pytest.raises(RuntimeError):
                service.start_session("Explain recursion")
        finally:
            service.stop_session()

    def test_stop_session_bundles_artifacts(self, make_service, devices, fake_clock):
        service, backend = make_service(scores=[0.9])
        service.start_session("  Explain recursion  ")
        speak(devices[0], 16)
        fake_clock.advance(16)

        outcome = asyncio.run(service.orchestrator.run_cycle())
        fake_clock.advance(49)
        artifacts = service.stop_session()

        assert outcome == CycleOutcome.PROBE_CREATED
        assert backend.analyze_calls[0][2] == "Explain recursion"
        assert devices[0].stopped is True
        assert artifacts.problem == "Explain recursion"
        assert artifacts.duration_ms == 65000
        assert artifacts.end_status == "completed"
        assert artifacts.audio.duration_ms == 16000
        assert artifacts.audio_format == "wav"
        assert [probe.text for probe in artifacts.probes] == ["Why did you assume that? (1)"]
        assert artifacts.gap_scores == [0.9]
        assert artifacts.transcripts == ["transcript 1"]
        assert artifacts.has_eeg is False

    def test_stop_session_is_idempotent(self, make_service):
        service, _ = make_service()
        service.start_session("Explain recursion")

        first = service.stop_session("stopped")
        second = service.stop_session("completed")

        assert first is second
        assert second.end_status == "stopped"
        assert first.audio is None

    def test_stop_without_session(self, make_service):
        service, _ = make_service()
        assert service.stop_session() is None

    def test_cleanup_aborts_active_session(self, make_service):
        service, _ = make_service()
        service.start_session("Explain recursion")

        service.cleanup()

        assert service.is_active is False
        assert service.artifacts.end_status == "aborted"
        assert service.orchestrator.is_running is False


@pytest.mark.unit
class TestHeadbandConnection:
    """Test cases for the optional biosignal stream."""

    def test_connect_headband(self, make_service, fake_transport_factory):
        transport = fake_transport_factory()
        client = BiosignalStreamClient(transport, band_power_interval=60)
        service, _ = make_service(biosignal_client=client)

        try:
            assert service.connect_headband() is True
            assert client.status == StreamStatus.STREAMING
            assert transport.streaming is True
        finally:
            client.disconnect()

    def test_pairing_cancelled_returns_false(self, make_service, fake_transport_factory,
                                             pairing_cancelled):
        client = BiosignalStreamClient(fake_transport_factory(connect_error=pairing_cancelled),
                                       band_power_interval=60)
        service, _ = make_service(biosignal_client=client)

        assert service.connect_headband() is False
        assert client.status == StreamStatus.DISCONNECTED

    def test_other_connect_failures_raise(self, make_service, fake_transport_factory):
        client = BiosignalStreamClient(
            fake_transport_factory(connect_error=DeviceNotFound("No headband in range")),
            band_power_interval=60)
        service, _ = make_service(biosignal_client=client)

        with pytest.raises(DeviceNotFound) as exc_info:
            service.connect_headband()
        assert exc_info.value.user_cancelled is False

    def test_stop_session_collects_eeg(self, make_service, fake_transport_factory):
        transport = fake_transport_factory()
        client = BiosignalStreamClient(transport, band_power_interval=60)
        service, _ = make_service(biosignal_client=client)
        service.start_session("Explain recursion")
        service.connect_headband()

        client.ingest_batch({"AF7": [1.0] * 300, "AF8": [2.0] * 300, "TP9": [0.5] * 12})
        snapshot = client.update_band_powers()
        artifacts = service.stop_session()

        assert artifacts.has_eeg is True
        assert artifacts.device_name == "Muse-TEST"
        assert len(artifacts.eeg_samples["AF7"]) == 300
        assert artifacts.eeg_samples["TP9"] == [0.5] * 12
        assert artifacts.band_powers == snapshot
        assert artifacts.band_power_average is not None
        assert transport.disconnect_calls >= 1
        assert client.status == StreamStatus.DISCONNECTED
