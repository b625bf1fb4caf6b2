"""Biosignal publisher module for pub/sub event publishing."""

import logging
from pubsub import pub
from ..models.biosignal import StreamStatus, BandPowerSnapshot

logger = logging.getLogger(__name__)


class BiosignalPublisher:
    """Publishes stream status changes and band power snapshots using pubsub.pub."""

    def __init__(self, status_topic: str = "biosignal.status", band_power_topic: str = "biosignal.band_powers"):
        """Initialize biosignal publisher.

        Args:
            status_topic: Topic for connection status changes
            band_power_topic: Topic for band power snapshots
        """
        self.status_topic = status_topic
        self.band_power_topic = band_power_topic
        logger.info(f"BiosignalPublisher initialized with topics: {status_topic}, {band_power_topic}")

    def publish_status(self, status: StreamStatus) -> None:
        pub.sendMessage(self.status_topic, event=status)
        logger.debug(f"Published stream status: {status.value}")

    def publish_band_powers(self, snapshot: BandPowerSnapshot) -> None:
        pub.sendMessage(self.band_power_topic, event=snapshot)
