"""Abstract contracts for the external judgment collaborators."""

from abc import ABC, abstractmethod
from typing import List

from ..models.observer import GapAnalysis, SessionEndDecision


class AbstractGapAnalyzer(ABC):
    """Scores how much the latest audio shows a gap in the speaker's reasoning."""

    @abstractmethod
    async def analyze_gap(self, audio: bytes, audio_format: str, problem: str) -> GapAnalysis:
        """Score an audio window.

        Args:
            audio: Encoded audio payload
            audio_format: Container tag of the payload (e.g. "wav")
            problem: The problem statement the user is working on

        Returns:
            GapAnalysis with a score in [0, 1]

        Raises:
            Exception: Any failure; the caller skips the cycle
        """
        pass


class AbstractProbeGenerator(ABC):
    """Writes a follow-up question for a detected gap."""

    @abstractmethod
    async def generate_probe(self, problem: str, gap_score: float, signals: List[str],
                             previous_probes: List[str]) -> str:
        """Generate probe text, avoiding repetition of ``previous_probes``."""
        pass


class AbstractSessionEndChecker(ABC):
    """Judges whether the session has run its course."""

    @abstractmethod
    async def check_session_end(self, problem: str, probe_count: int, elapsed_ms: int,
                                recent_probes: List[str]) -> SessionEndDecision:
        pass
