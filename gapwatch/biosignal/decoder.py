"""Packet decoders turning raw headband notifications into channel samples."""

import json
import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Any

from ..models.biosignal import DecodedPacket

logger = logging.getLogger(__name__)


class AbstractPacketDecoder(ABC):
    """Decodes vendor-specific notifications for the stream client."""

    @abstractmethod
    def decode_sensor(self, data: bytes) -> DecodedPacket:
        """Decode a sensor notification into per-channel samples."""
        pass

    def decode_control(self, data: bytes) -> Dict[str, Any]:
        """Decode a control notification into device info fields."""
        return {}


MUSE_EEG_CHANNELS = ("TP9", "AF7", "AF8", "TP10", "FPz", "AUX_R", "AUX_L")

# 12-bit ADC counts to microvolts
EEG_SCALE = 1000.0 / 2048.0

HEADER_BYTES = 4
EEG_SEGMENT_BYTES = 18  # 12 samples packed as 12-bit pairs
PPG_SEGMENT_BYTES = 20

EEG_PACKET_TYPES = {0xDF, 0xDB, 0xD9}


class MusePacketDecoder(AbstractPacketDecoder):
    """Decoder for Muse S / Athena combined sensor packets."""

    def decode_sensor(self, data: bytes) -> DecodedPacket:
        packet = DecodedPacket()
        if not data or data[0] not in EEG_PACKET_TYPES:
            return packet

        offset = HEADER_BYTES
        channel_idx = 0
        while offset + EEG_SEGMENT_BYTES <= len(data) and channel_idx < len(MUSE_EEG_CHANNELS):
            if self._looks_like_eeg(data, offset):
                packet.eeg[MUSE_EEG_CHANNELS[channel_idx]] = self._decode_eeg_segment(data, offset)
                channel_idx += 1
                offset += EEG_SEGMENT_BYTES
            elif offset + PPG_SEGMENT_BYTES <= len(data):
                if data[0] == 0xDF:
                    packet.ppg.extend(self._decode_ppg_segment(data, offset))
                offset += PPG_SEGMENT_BYTES
            else:
                break

        return packet

    def decode_control(self, data: bytes) -> Dict[str, Any]:
        text = data.decode('utf-8', errors='ignore')
        start = text.find('{')
        end = text.rfind('}')
        if start < 0 or end <= start:
            return {}

        try:
            payload = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON control notification: {text!r}")
            return {}

        info = {}
        if payload.get('fw'):
            info['firmware'] = payload['fw']
        if payload.get('bp') is not None:
            info['battery'] = payload['bp']
        return info

    @staticmethod
    def _looks_like_eeg(data: bytes, offset: int) -> bool:
        # Resting EEG sits near the ADC midpoint
        sample = (data[offset] << 4) | (data[offset + 1] >> 4)
        return 1000 < sample < 3000

    @staticmethod
    def _decode_eeg_segment(data: bytes, offset: int) -> List[float]:
        samples = []
        for i in range(EEG_SEGMENT_BYTES // 3):
            b0, b1, b2 = data[offset + i * 3: offset + i * 3 + 3]
            first = (b0 << 4) | (b1 >> 4)
            second = ((b1 & 0x0F) << 8) | b2
            samples.append((first - 2048) * EEG_SCALE)
            samples.append((second - 2048) * EEG_SCALE)
        return samples

    @staticmethod
    def _decode_ppg_segment(data: bytes, offset: int) -> List[float]:
        values = []
        for i in range(0, EEG_SEGMENT_BYTES, 3):
            value = (data[offset + i] << 8) | data[offset + i + 1]
            if value > 10000:
                values.append(float(value))
        return values
