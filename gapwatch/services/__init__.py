"""Service layer for gapwatch."""

from .session_orchestrator import SessionOrchestrator
from .session_service import ObservationSessionService

__all__ = ['SessionOrchestrator', 'ObservationSessionService']
