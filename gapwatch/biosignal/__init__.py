"""Biosignal streaming and band power estimation."""

from .band_power import compute_band_powers, average_snapshots
from .buffers import ChannelSampleBuffer
from .client import BiosignalStreamClient
from .decoder import AbstractPacketDecoder, MusePacketDecoder
from .publisher import BiosignalPublisher
from .transport import AbstractBiosignalTransport

__all__ = [
    "compute_band_powers",
    "average_snapshots",
    "ChannelSampleBuffer",
    "BiosignalStreamClient",
    "AbstractPacketDecoder",
    "MusePacketDecoder",
    "BiosignalPublisher",
    "AbstractBiosignalTransport",
]
