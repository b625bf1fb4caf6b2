"""External judgment collaborators and observer events."""

from .base import AbstractGapAnalyzer, AbstractProbeGenerator, AbstractSessionEndChecker
from .http_backend import HttpJudgmentBackend
from .publisher import ObserverPublisher

__all__ = [
    "AbstractGapAnalyzer",
    "AbstractProbeGenerator",
    "AbstractSessionEndChecker",
    "HttpJudgmentBackend",
    "ObserverPublisher",
]
