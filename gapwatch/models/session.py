"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .audio import SessionArchive
from .biosignal import BandPowerSnapshot
from .observer import ObserverConfig, Probe


@dataclass
class SessionInfo:
    """Information about a saved observation session."""
    session_id: str
    problem: str
    start_time: datetime
    duration_ms: int
    audio_file: Optional[str]
    audio_format: str
    probe_count: int
    end_status: str
    has_eeg: bool = False
    device_name: Optional[str] = None


@dataclass
class SessionArtifacts:
    """Everything a finished session hands over for storage."""
    problem: str
    started_at: datetime
    duration_ms: int
    observer_config: ObserverConfig
    end_status: str = "completed"
    audio: Optional[SessionArchive] = None
    audio_format: str = "wav"
    probes: List[Probe] = field(default_factory=list)
    gap_scores: List[float] = field(default_factory=list)
    transcripts: List[str] = field(default_factory=list)
    eeg_samples: Optional[Dict[str, List[float]]] = None
    band_powers: Optional[BandPowerSnapshot] = None
    band_power_average: Optional[BandPowerSnapshot] = None
    device_name: Optional[str] = None

    @property
    def has_eeg(self) -> bool:
        return self.eeg_samples is not None
