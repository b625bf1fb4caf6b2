"""Data models for gapwatch."""

from .audio import AudioStats, AudioChunk, SessionArchive
from .biosignal import StreamStatus, BandPowerSnapshot, DeviceInfo, DecodedPacket, BAND_NAMES
from .observer import (
    ObserverMode,
    Frequency,
    ObserverConfig,
    CycleOutcome,
    Probe,
    GapAnalysis,
    SessionEndDecision,
    EndSuggestion,
    MODE_THRESHOLDS,
    FREQUENCY_INTERVALS_MS,
)
from .session import SessionInfo, SessionArtifacts

__all__ = [
    "AudioStats",
    "AudioChunk",
    "SessionArchive",
    "StreamStatus",
    "BandPowerSnapshot",
    "DeviceInfo",
    "DecodedPacket",
    "BAND_NAMES",
    # Observer models
    "ObserverMode",
    "Frequency",
    "ObserverConfig",
    "CycleOutcome",
    "Probe",
    "GapAnalysis",
    "SessionEndDecision",
    "EndSuggestion",
    "MODE_THRESHOLDS",
    "FREQUENCY_INTERVALS_MS",
    "SessionInfo",
    "SessionArtifacts",
]
