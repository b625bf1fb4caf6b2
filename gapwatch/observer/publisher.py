"""Observer publisher module for pub/sub event publishing."""

import logging
from pubsub import pub
from ..models.observer import Probe, EndSuggestion, CycleOutcome

logger = logging.getLogger(__name__)


class ObserverPublisher:
    """Publishes orchestrator events using pubsub.pub."""

    def __init__(self, prefix: str = "observer"):
        """Initialize observer publisher.

        Args:
            prefix: Parent topic for all observer events
        """
        self.probe_topic = f"{prefix}.probe"
        self.end_topic = f"{prefix}.end_suggested"
        self.mute_topic = f"{prefix}.mute_expired"
        self.cycle_topic = f"{prefix}.cycle"
        logger.info(f"ObserverPublisher initialized with prefix: {prefix}")

    def publish_probe(self, probe: Probe) -> None:
        pub.sendMessage(self.probe_topic, event=probe)
        logger.debug(f"Published probe: {probe.id}")

    def publish_end_suggestion(self, suggestion: EndSuggestion) -> None:
        pub.sendMessage(self.end_topic, event=suggestion)

    def publish_mute_expired(self) -> None:
        pub.sendMessage(self.mute_topic, event=None)

    def publish_cycle(self, outcome: CycleOutcome) -> None:
        pub.sendMessage(self.cycle_topic, event=outcome)
