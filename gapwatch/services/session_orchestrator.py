"""Observation cycle scheduling: decides when to analyze audio and surface probes."""

import asyncio
import logging
import threading
import time
import uuid
from typing import Callable, List, Optional, Tuple

from ..models.observer import (
    CycleOutcome,
    EndSuggestion,
    Frequency,
    ObserverConfig,
    ObserverMode,
    Probe,
)
from ..observer.base import AbstractGapAnalyzer, AbstractProbeGenerator, AbstractSessionEndChecker
from ..observer.publisher import ObserverPublisher

logger = logging.getLogger(__name__)

COOLDOWN_MS = 15000
RECENT_WINDOW_MS = 15000
MIN_WINDOW_BYTES = 1000
END_CHECK_MIN_PROBES = 3


class SessionOrchestrator:
    """Runs observation cycles against an audio source and three judgment collaborators.

    User controls (mode, frequency, mute) live in an immutable ObserverConfig
    that is swapped as a whole under a lock. Each cycle reads one snapshot at
    its start, so a change lands at the next cycle boundary.

    The driver thread owns its own asyncio loop and runs cycles back to back,
    waiting the current interval between them. A slow cycle delays the next
    tick instead of overlapping it. Each run gets its own stop event and
    generation; a cycle still in flight when its run is stopped drops its
    results instead of writing them into the next session.
    """

    def __init__(self,
                 audio_source,
                 gap_analyzer: AbstractGapAnalyzer,
                 probe_generator: AbstractProbeGenerator,
                 end_checker: AbstractSessionEndChecker,
                 config: Optional[ObserverConfig] = None,
                 publisher: Optional[ObserverPublisher] = None,
                 problem: str = "",
                 min_window_bytes: int = MIN_WINDOW_BYTES,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the orchestrator.

        Args:
            audio_source: Object exposing get_recent_window() and get_audio_format()
            gap_analyzer: Scores audio windows
            probe_generator: Writes probe text
            end_checker: Suggests when to wrap up
            config: Initial observer settings
            publisher: Event publisher, a default ObserverPublisher if omitted
            problem: Problem statement, usually supplied through start()
            min_window_bytes: Smaller recent windows are treated as silence
            clock: Monotonic clock in seconds
        """
        self.audio_source = audio_source
        self.gap_analyzer = gap_analyzer
        self.probe_generator = probe_generator
        self.end_checker = end_checker
        self.publisher = publisher or ObserverPublisher()
        self.min_window_bytes = min_window_bytes
        self.clock = clock

        self.lock = threading.Lock()
        self._config = config or ObserverConfig()
        self._in_flight = False
        # Bumped by start() and stop(); a cycle from an older run drops its results
        self._generation = 0

        # Driver state
        self.stop_event = threading.Event()
        self.driver_thread: Optional[threading.Thread] = None
        self.end_confirmed = threading.Event()

        self._reset_session(problem)

        logger.info(f"SessionOrchestrator initialized: mode={self._config.mode.value}, "
                    f"frequency={self._config.frequency.value}")

    def _reset_session(self, problem: str) -> None:
        self.problem = problem
        self.session_start = self.clock()
        self.probes: List[Probe] = []
        self.gap_scores: List[Tuple[int, float]] = []
        self.transcripts: List[str] = []
        self.last_probe_time: Optional[float] = None
        self.active_probe: Optional[Probe] = None
        self.end_suggestion: Optional[EndSuggestion] = None
        self.end_confirmed.clear()

    # Config snapshot

    @property
    def config(self) -> ObserverConfig:
        with self.lock:
            return self._config

    def _swap_config(self, **changes) -> ObserverConfig:
        with self.lock:
            self._config = self._config.evolve(**changes)
            return self._config

    def set_mode(self, mode: ObserverMode) -> None:
        config = self._swap_config(mode=ObserverMode(mode))
        logger.info(f"Observer mode set to {config.mode.value}")

    def set_frequency(self, frequency: Frequency) -> None:
        config = self._swap_config(frequency=Frequency(frequency))
        logger.info(f"Observer frequency set to {config.frequency.value} ({config.interval_ms}ms)")

    def mute(self, duration_ms: int) -> None:
        """Suppress probes for ``duration_ms`` from now."""
        if duration_ms <= 0:
            raise ValueError("Mute duration must be positive")
        self._swap_config(muted_until=self.clock() + duration_ms / 1000)
        logger.info(f"Observer muted for {duration_ms}ms")

    def unmute(self) -> None:
        self._swap_config(muted_until=None)
        logger.info("Observer unmuted")

    def mute_remaining_ms(self, now: Optional[float] = None) -> int:
        """Milliseconds left on the current mute, 0 when not muted."""
        now = self.clock() if now is None else now
        muted_until = self.config.muted_until
        if muted_until is None:
            return 0
        return max(0, int(round((muted_until - now) * 1000)))

    # Observation cycle

    def elapsed_ms(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        return max(0, int((now - self.session_start) * 1000))

    def _is_current(self, generation: int) -> bool:
        with self.lock:
            return generation == self._generation

    def _begin_cycle(self, now: float) -> Tuple[ObserverConfig, Optional[CycleOutcome], bool, int]:
        """Read the snapshot, expire a lapsed mute and claim the in-flight slot."""
        mute_expired = False
        with self.lock:
            generation = self._generation
            if self._config.muted_until is not None and now >= self._config.muted_until:
                self._config = self._config.evolve(muted_until=None)
                mute_expired = True
            config = self._config

            if config.mode == ObserverMode.OFF:
                return config, CycleOutcome.SKIPPED_OFF, mute_expired, generation
            if config.is_muted(now):
                return config, CycleOutcome.SKIPPED_MUTED, mute_expired, generation
            if self._in_flight:
                return config, CycleOutcome.SKIPPED_IN_FLIGHT, mute_expired, generation
            if self.last_probe_time is not None and (now - self.last_probe_time) * 1000 < COOLDOWN_MS:
                return config, CycleOutcome.SKIPPED_COOLDOWN, mute_expired, generation

            self._in_flight = True
            return config, None, mute_expired, generation

    async def run_cycle(self, now: Optional[float] = None) -> CycleOutcome:
        """Run one observation cycle.

        Args:
            now: Clock reading to evaluate the cycle at, the current clock if omitted

        Returns:
            Why the cycle ended
        """
        now = self.clock() if now is None else now
        config, skipped, mute_expired, generation = self._begin_cycle(now)

        if mute_expired:
            logger.info("Observer mute expired")
            self.publisher.publish_mute_expired()

        if skipped is not None:
            logger.debug(f"Cycle skipped: {skipped.value}")
            self.publisher.publish_cycle(skipped)
            return skipped

        try:
            outcome = await self._observe(config, now, generation)
        finally:
            with self.lock:
                if generation == self._generation:
                    self._in_flight = False

        if outcome == CycleOutcome.ABANDONED:
            logger.info("Dropped results of a cycle from a stopped run")
            return outcome

        self.publisher.publish_cycle(outcome)
        return outcome

    async def _observe(self, config: ObserverConfig, now: float, generation: int) -> CycleOutcome:
        window = self.audio_source.get_recent_window(RECENT_WINDOW_MS)
        if window is None or len(window) < self.min_window_bytes:
            logger.debug("Not enough recent audio to analyze")
            return CycleOutcome.SKIPPED_NO_AUDIO

        elapsed_ms = self.elapsed_ms(now)

        try:
            analysis = await self.gap_analyzer.analyze_gap(
                window, self.audio_source.get_audio_format(), self.problem)
        except Exception as e:
            logger.warning(f"Gap analysis failed, skipping cycle: {e}")
            return CycleOutcome.ANALYSIS_FAILED

        if not self._is_current(generation):
            return CycleOutcome.ABANDONED

        self.gap_scores.append((elapsed_ms, analysis.gap_score))
        if analysis.transcript:
            self.transcripts.append(analysis.transcript)
        logger.info(f"Gap score {analysis.gap_score:.2f} (threshold {config.threshold}) "
                    f"signals={analysis.signals}")

        if analysis.gap_score < config.threshold:
            outcome = CycleOutcome.BELOW_THRESHOLD
        else:
            outcome = await self._create_probe(analysis, elapsed_ms, now, generation)

        if outcome != CycleOutcome.ABANDONED:
            await self._check_session_end(elapsed_ms, generation)
        return outcome

    async def _create_probe(self, analysis, elapsed_ms: int, now: float, generation: int) -> CycleOutcome:
        previous = [probe.text for probe in self.probes]
        try:
            text = await self.probe_generator.generate_probe(
                self.problem, analysis.gap_score, list(analysis.signals), previous)
        except Exception as e:
            logger.warning(f"Probe generation failed: {e}")
            return CycleOutcome.PROBE_FAILED

        probe = Probe(
            id=str(uuid.uuid4()),
            timestamp_ms=elapsed_ms,
            gap_score=analysis.gap_score,
            signals=tuple(analysis.signals),
            text=text,
        )
        with self.lock:
            if generation != self._generation:
                return CycleOutcome.ABANDONED
            self.probes.append(probe)
            self.last_probe_time = now
            self.active_probe = probe

        logger.info(f"Probe {len(self.probes)} at {elapsed_ms}ms: {text}")
        self.publisher.publish_probe(probe)
        return CycleOutcome.PROBE_CREATED

    async def _check_session_end(self, elapsed_ms: int, generation: int) -> None:
        if len(self.probes) <= END_CHECK_MIN_PROBES or self.end_suggestion is not None:
            return

        recent = [probe.text for probe in self.probes[-5:]]
        try:
            decision = await self.end_checker.check_session_end(
                self.problem, len(self.probes), elapsed_ms, recent)
        except Exception as e:
            logger.warning(f"Session end check failed: {e}")
            return

        if not decision.should_end or not self._is_current(generation):
            return

        suggestion = EndSuggestion(reason=decision.reason, probe_count=len(self.probes),
                                   elapsed_ms=elapsed_ms)
        self.end_suggestion = suggestion
        logger.info(f"Suggesting session end: {decision.reason}")
        self.publisher.publish_end_suggestion(suggestion)

    # User responses

    def dismiss_probe(self) -> None:
        """Clear the front-and-center probe; it stays in the probe list."""
        with self.lock:
            self.active_probe = None

    def confirm_end(self) -> Optional[EndSuggestion]:
        """Accept the pending end suggestion and signal the session to finish."""
        suggestion = self.end_suggestion
        self.end_suggestion = None
        self.end_confirmed.set()
        logger.info("Session end confirmed")
        return suggestion

    def dismiss_end_suggestion(self) -> None:
        self.end_suggestion = None
        logger.info("Session end suggestion dismissed")

    # Driver

    @property
    def is_running(self) -> bool:
        return self.driver_thread is not None and self.driver_thread.is_alive()

    def start(self, problem: str) -> None:
        """Start running observation cycles for ``problem`` in the background."""
        if self.is_running:
            logger.warning("Orchestrator already running")
            return

        with self.lock:
            self._generation += 1
            self._in_flight = False
        self._reset_session(problem)
        # A thread abandoned by stop() keeps its own event, so it cannot be revived
        self.stop_event = threading.Event()
        self.driver_thread = threading.Thread(target=self._drive, args=(self.stop_event,),
                                              name="ObserverCycleThread")
        self.driver_thread.daemon = True
        self.driver_thread.start()
        logger.info(f"Orchestrator started for problem: {problem}")

    def tick_seconds(self) -> float:
        """Wait before the next cycle, taken from the current snapshot."""
        return self.config.interval_ms / 1000

    def _drive(self, stop_event: threading.Event) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            while not stop_event.wait(self.tick_seconds()):
                try:
                    loop.run_until_complete(self.run_cycle())
                except Exception as e:
                    logger.error(f"Observation cycle crashed: {e}", exc_info=True)
        finally:
            loop.close()
            logger.debug("Observer cycle loop closed")

    def stop(self, join_timeout: float = 2.0) -> None:
        """Stop scheduling cycles. Does not wait long for a cycle in flight."""
        self.stop_event.set()
        with self.lock:
            self._generation += 1
            self._in_flight = False
        if self.driver_thread and self.driver_thread.is_alive():
            self.driver_thread.join(timeout=join_timeout)
            if self.driver_thread.is_alive():
                logger.warning("Observation cycle still in flight after stop")
        self.driver_thread = None
        logger.info("Orchestrator stopped")
