"""Pytest configuration and fixtures for gapwatch tests."""

import asyncio
import pytest
import tempfile
import logging
from pathlib import Path
from unittest.mock import Mock, patch
import numpy as np
from pubsub import pub

from gapwatch.errors import CollaboratorError, PairingCancelled
from gapwatch.models.observer import GapAnalysis, SessionEndDecision
from gapwatch.observer.base import AbstractGapAnalyzer, AbstractProbeGenerator, AbstractSessionEndChecker
from gapwatch.biosignal.transport import AbstractBiosignalTransport


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: several components wired together")
    config.addinivalue_line("markers", "hardware: needs a real microphone")


@pytest.fixture(autouse=True)
def clear_pubsub():
    """Drop pub/sub listeners registered by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """1024 samples of a 440 Hz sine as 16-bit PCM."""
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t)
    return (wave_data * 32767).astype(np.int16).tobytes()


@pytest.fixture
def audio_test_data():
    """Generate 16-bit mono PCM test patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return (wave_data * 32767).astype(np.int16).tobytes()

    return generate_audio


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {"name": "Test Mic"}

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


class ScriptedBackend(AbstractGapAnalyzer, AbstractProbeGenerator, AbstractSessionEndChecker):
    """Judgment collaborator that replays a fixed gap-score stream."""

    def __init__(self, scores=(), should_end=False):
        self.scores = list(scores)
        self.should_end = should_end
        self.fail_analysis = False
        self.fail_probe = False
        self.fail_end_check = False
        self.analyze_calls = []
        self.probe_calls = []
        self.end_calls = []

    async def analyze_gap(self, audio, audio_format, problem):
        self.analyze_calls.append((audio, audio_format, problem))
        if self.fail_analysis:
            raise CollaboratorError("analyze-gap failed: 500")
        score = self.scores.pop(0) if self.scores else 0.0
        return GapAnalysis(gap_score=score, signals=["hedging"],
                           transcript=f"transcript {len(self.analyze_calls)}")

    async def generate_probe(self, problem, gap_score, signals, previous_probes):
        self.probe_calls.append((problem, gap_score, signals, list(previous_probes)))
        if self.fail_probe:
            raise CollaboratorError("generate-probe failed: 500")
        return f"Why did you assume that? ({len(self.probe_calls)})"

    async def check_session_end(self, problem, probe_count, elapsed_ms, recent_probes):
        self.end_calls.append((problem, probe_count, elapsed_ms, list(recent_probes)))
        if self.fail_end_check:
            raise CollaboratorError("check-session-end failed: 500")
        return SessionEndDecision(should_end=self.should_end, reason="The core idea is covered")


@pytest.fixture
def scripted_backend():
    """Factory for ScriptedBackend instances."""
    return ScriptedBackend


class FakeAudioSource:
    """Stands in for AudioRingCapture in orchestrator tests."""

    def __init__(self, window=b'\x01' * 4096):
        self.window = window
        self.requests = []

    def get_recent_window(self, duration_ms):
        self.requests.append(duration_ms)
        return self.window

    def get_audio_format(self):
        return "wav"


@pytest.fixture
def fake_audio_source():
    return FakeAudioSource()


class FakeTransport(AbstractBiosignalTransport):
    """In-memory headband transport."""

    def __init__(self, name="Muse-TEST", connect_error=None, connect_delay=0.0):
        self.name = name
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.connected = False
        self.streaming = False
        self.on_packet = None
        self.on_disconnect = None
        self.disconnect_calls = 0

    async def connect(self, on_control=None, on_disconnect=None):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.on_disconnect = on_disconnect
        self.connected = True
        if on_control:
            on_control(b'\x10{"fw":"3.4.5","bp":87}')
        return self.name

    async def start_streaming(self, on_packet):
        self.on_packet = on_packet
        self.streaming = True

    async def stop_streaming(self):
        self.streaming = False

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        self.streaming = False

    @property
    def is_connected(self):
        return self.connected


@pytest.fixture
def fake_transport_factory():
    """Factory for FakeTransport instances."""
    return FakeTransport


@pytest.fixture
def pairing_cancelled():
    return PairingCancelled("User dismissed the pairing prompt")


@pytest.fixture
def config_file(temp_data_dir):
    """Write a minimal gapwatch.yaml into the temp dir and return its path."""
    path = Path(temp_data_dir) / "gapwatch.yaml"
    path.write_text(
        "audio:\n"
        "  sample_rate: 16000\n"
        "  channels: 1\n"
        "  frames_per_buffer: 1024\n"
        "  chunk_duration_ms: 1000\n"
        "  retention_ms: 30000\n"
        "observer:\n"
        "  mode: passive\n"
        "  frequency: frequent\n"
        "  judgment_url: http://localhost:3000/api\n"
        "  min_window_bytes: 1000\n"
        "biosignal:\n"
        "  enabled: false\n"
        "storage:\n"
        "  data_directory: data\n"
        "logging:\n"
        "  level: DEBUG\n"
        "  file_path: data/logs/test.log\n"
        "  console_output: false\n",
        encoding='utf-8',
    )
    return str(path)
