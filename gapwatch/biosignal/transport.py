"""Wireless transports for biosignal headbands."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ..errors import DeviceNotFound, ConnectionLost

logger = logging.getLogger(__name__)

PacketHandler = Callable[[bytes], None]


class AbstractBiosignalTransport(ABC):
    """Async transport the stream client drives from its own event loop.

    Implementations should raise ``PairingCancelled`` when the platform tells
    them the user dismissed the pairing prompt.
    """

    @abstractmethod
    async def connect(self,
                      on_control: Optional[PacketHandler] = None,
                      on_disconnect: Optional[Callable[[], None]] = None) -> str:
        """Discover and pair with a device.

        Returns:
            Display name of the resolved device
        """
        pass

    @abstractmethod
    async def start_streaming(self, on_packet: PacketHandler) -> None:
        """Start delivering sensor notifications to ``on_packet``."""
        pass

    @abstractmethod
    async def stop_streaming(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass


MUSE_SERVICE_UUID = "0000fe8d-0000-1000-8000-00805f9b34fb"
CONTROL_CHAR = "273e0001-4c4d-454d-96be-f03bac821358"
SENSOR_CHAR = "273e0013-4c4d-454d-96be-f03bac821358"
EEG_TP9_CHAR = "273e0003-4c4d-454d-96be-f03bac821358"

COMMANDS = {
    "halt": bytes([0x02, 0x68, 0x0a]),
    "version": bytes([0x03, 0x76, 0x36, 0x0a]),
    "status": bytes([0x02, 0x73, 0x0a]),
    "p21": bytes([0x04, 0x70, 0x32, 0x31, 0x0a]),
    "p1035": bytes([0x06, 0x70, 0x31, 0x30, 0x33, 0x35, 0x0a]),
    "dc001": bytes([0x06, 0x64, 0x63, 0x30, 0x30, 0x31, 0x0a]),
    "L1": bytes([0x03, 0x4c, 0x31, 0x0a]),
}


class BleakMuseTransport(AbstractBiosignalTransport):
    """BLE transport for Muse S / Athena headbands built on bleak."""

    def __init__(self, device_name: Optional[str] = None, scan_timeout: float = 10.0, preset: str = "p1035"):
        """Initialize the transport.

        Args:
            device_name: Only pair with a device advertising this name
            scan_timeout: Seconds to scan before giving up
            preset: Streaming preset command name
        """
        self.device_name = device_name
        self.scan_timeout = scan_timeout
        self.preset = preset
        self.client: Optional[BleakClient] = None
        self.sensor_char = SENSOR_CHAR

    @property
    def is_connected(self) -> bool:
        return self.client is not None and self.client.is_connected

    def _matches(self, device, adv) -> bool:
        if self.device_name:
            return device.name == self.device_name or adv.local_name == self.device_name
        return MUSE_SERVICE_UUID in (adv.service_uuids or []) or bool(device.name and "Muse" in device.name)

    async def connect(self, on_control=None, on_disconnect=None) -> str:
        logger.info(f"Scanning for {self.device_name or 'Muse devices'}...")
        device = await BleakScanner.find_device_by_filter(self._matches, timeout=self.scan_timeout)
        if device is None:
            raise DeviceNotFound("No Muse headband found in range")

        name = device.name or "Muse Device"
        logger.info(f"Found {name} ({device.address}), connecting")

        def _disconnected(_client):
            logger.warning(f"BLE link to {name} dropped")
            if on_disconnect:
                on_disconnect()

        self.client = BleakClient(device, disconnected_callback=_disconnected)
        await self.client.connect()

        if on_control:
            await self.client.start_notify(CONTROL_CHAR, lambda _char, data: on_control(bytes(data)))

        if self.client.services.get_characteristic(SENSOR_CHAR) is None:
            logger.warning("Combined sensor characteristic not found, falling back to TP9")
            self.sensor_char = EEG_TP9_CHAR

        for command in ("version", "status", "halt"):
            await self._write(command)
            await asyncio.sleep(0.1)

        return name

    async def start_streaming(self, on_packet: PacketHandler) -> None:
        if not self.is_connected:
            raise ConnectionLost("Headband is not connected")

        await self._write(self.preset)
        await asyncio.sleep(0.1)
        await self.client.start_notify(self.sensor_char, lambda _char, data: on_packet(bytes(data)))

        # The device only starts streaming after dc001 is sent twice
        await self._write("dc001")
        await asyncio.sleep(0.05)
        await self._write("dc001")
        await asyncio.sleep(0.1)
        await self._write("L1")

    async def stop_streaming(self) -> None:
        if not self.is_connected:
            return
        try:
            await self._write("halt")
            await self.client.stop_notify(self.sensor_char)
        except BleakError as e:
            logger.warning(f"Error halting stream: {e}")

    async def disconnect(self) -> None:
        if self.client is None:
            return
        try:
            if self.client.is_connected:
                await self.client.disconnect()
        finally:
            self.client = None
            self.sensor_char = SENSOR_CHAR

    async def _write(self, command: str) -> None:
        try:
            await self.client.write_gatt_char(CONTROL_CHAR, COMMANDS[command], response=False)
        except BleakError as e:
            raise ConnectionLost(f"Failed to send {command} command: {e}") from e
