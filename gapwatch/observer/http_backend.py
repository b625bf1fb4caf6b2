"""HTTP judgment backend for gap analysis, probe generation and end checks."""

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import CollaboratorError
from ..models.observer import GapAnalysis, SessionEndDecision
from .base import AbstractGapAnalyzer, AbstractProbeGenerator, AbstractSessionEndChecker

logger = logging.getLogger(__name__)


def format_elapsed(elapsed_ms: int) -> str:
    """Render milliseconds as M:SS."""
    seconds = max(0, elapsed_ms) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


class HttpJudgmentBackend(AbstractGapAnalyzer, AbstractProbeGenerator, AbstractSessionEndChecker):
    """Client for a JSON judgment service exposing the three collaborator endpoints."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout_seconds: float = 30.0):
        """Initialize the backend.

        Args:
            base_url: Service root, e.g. http://localhost:3000/api
            api_key: Optional bearer token
            timeout_seconds: Total timeout per request
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"HttpJudgmentBackend initialized for {self.base_url}")

    async def _post(self, endpoint: str, data: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}/{endpoint}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, headers=headers, json=data) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise CollaboratorError(f"{endpoint} failed: {response.status} - {error_text}")
                    return await response.json()
        except aiohttp.ClientError as e:
            raise CollaboratorError(f"{endpoint} request error: {e}") from e
        except asyncio.TimeoutError as e:
            raise CollaboratorError(f"{endpoint} timed out") from e

    async def analyze_gap(self, audio: bytes, audio_format: str, problem: str) -> GapAnalysis:
        result = await self._post("analyze-gap", {
            "audioBase64": base64.b64encode(audio).decode('ascii'),
            "audioFormat": audio_format,
            "problem": problem,
        })
        if "gap_score" not in result:
            raise CollaboratorError("analyze-gap response missing gap_score")

        try:
            return GapAnalysis(
                gap_score=result["gap_score"],
                signals=list(result.get("signals") or []),
                transcript=result.get("transcript") or None,
            )
        except (TypeError, ValueError) as e:
            raise CollaboratorError(f"analyze-gap returned an invalid gap_score: {e}") from e

    async def generate_probe(self, problem: str, gap_score: float, signals: List[str],
                             previous_probes: List[str]) -> str:
        result = await self._post("generate-probe", {
            "problem": problem,
            "gapScore": gap_score,
            "signals": signals,
            "previousProbes": previous_probes,
        })
        probe = (result.get("probe") or "").strip()
        if not probe:
            raise CollaboratorError("generate-probe returned no probe text")
        return probe

    async def check_session_end(self, problem: str, probe_count: int, elapsed_ms: int,
                                recent_probes: List[str]) -> SessionEndDecision:
        result = await self._post("check-session-end", {
            "problem": problem,
            "probeCount": probe_count,
            "elapsed": format_elapsed(elapsed_ms),
            "recentProbes": recent_probes,
        })
        return SessionEndDecision(
            should_end=bool(result.get("should_end", False)),
            reason=result.get("reason") or "",
        )
