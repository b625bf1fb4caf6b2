"""Observer configuration, probe and judgment models."""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


class ObserverMode(Enum):
    """How eagerly observation cycles produce probes."""
    OFF = "off"
    PASSIVE = "passive"
    ACTIVE = "active"


class Frequency(Enum):
    """How often observation cycles run."""
    RARE = "rare"
    BALANCED = "balanced"
    FREQUENT = "frequent"


# Gap score a cycle must reach before a probe is requested
MODE_THRESHOLDS = {
    ObserverMode.ACTIVE: 0.5,
    ObserverMode.PASSIVE: 0.7,
}

FREQUENCY_INTERVALS_MS = {
    Frequency.RARE: 15000,
    Frequency.BALANCED: 8000,
    Frequency.FREQUENT: 4000,
}


class CycleOutcome(Enum):
    """How an observation cycle ended."""
    SKIPPED_OFF = "skipped_off"
    SKIPPED_MUTED = "skipped_muted"
    SKIPPED_IN_FLIGHT = "skipped_in_flight"
    SKIPPED_COOLDOWN = "skipped_cooldown"
    SKIPPED_NO_AUDIO = "skipped_no_audio"
    ANALYSIS_FAILED = "analysis_failed"
    BELOW_THRESHOLD = "below_threshold"
    PROBE_FAILED = "probe_failed"
    PROBE_CREATED = "probe_created"
    ABANDONED = "abandoned"  # Finished after its run was stopped


@dataclass(frozen=True)
class ObserverConfig:
    """User-controlled observer settings.

    Instances are immutable; the orchestrator swaps in a new snapshot on every
    change and each cycle reads exactly one snapshot.
    """
    mode: ObserverMode = ObserverMode.ACTIVE
    frequency: Frequency = Frequency.BALANCED
    muted_until: Optional[float] = None  # Clock time in seconds

    @property
    def threshold(self) -> Optional[float]:
        return MODE_THRESHOLDS.get(self.mode)

    @property
    def interval_ms(self) -> int:
        return FREQUENCY_INTERVALS_MS[self.frequency]

    def is_muted(self, now: float) -> bool:
        return self.muted_until is not None and now < self.muted_until

    def evolve(self, **changes) -> "ObserverConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class Probe:
    """A follow-up question surfaced after a gap was detected."""
    id: str
    timestamp_ms: int  # Elapsed session time at creation
    gap_score: float
    signals: Tuple[str, ...]
    text: str


@dataclass
class GapAnalysis:
    """Result of the gap analysis collaborator."""
    gap_score: float
    signals: List[str] = field(default_factory=list)
    transcript: Optional[str] = None

    def __post_init__(self):
        """Clamp the score into [0, 1].

        Raises:
            ValueError: If the score is NaN or infinite
        """
        score = float(self.gap_score or 0.0)
        if not math.isfinite(score):
            raise ValueError(f"gap_score must be finite, got {score}")
        self.gap_score = max(0.0, min(1.0, score))


@dataclass
class SessionEndDecision:
    """Result of the session-end collaborator."""
    should_end: bool
    reason: str = ""


@dataclass(frozen=True)
class EndSuggestion:
    """A user-confirmable recommendation to end the session."""
    reason: str
    probe_count: int
    elapsed_ms: int
