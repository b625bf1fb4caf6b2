"""Biosignal-related data models."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional


class StreamStatus(Enum):
    """Connection state of the biosignal stream client."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STREAMING = "streaming"


BAND_NAMES = ("delta", "theta", "alpha", "beta", "gamma")


@dataclass(frozen=True)
class BandPowerSnapshot:
    """Relative power in the five EEG bands.

    Fractions are non-negative and sum to 1, or are all zero when the input
    epoch carried no energy.
    """
    delta: float = 0.0
    theta: float = 0.0
    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0
    timestamp_ms: int = 0

    @property
    def total(self) -> float:
        return self.delta + self.theta + self.alpha + self.beta + self.gamma

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in BAND_NAMES}

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class DeviceInfo:
    """Details reported by the headband over its control channel."""
    name: Optional[str] = None
    firmware: Optional[str] = None
    battery: Optional[float] = None


@dataclass
class DecodedPacket:
    """Output of a packet decoder for one sensor notification."""
    eeg: Dict[str, List[float]] = field(default_factory=dict)
    ppg: List[float] = field(default_factory=list)
