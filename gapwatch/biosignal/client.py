"""Biosignal stream client: headband connection, sample buffers and band power."""

import asyncio
import concurrent.futures
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence, Any

from ..errors import DeviceNotFound, ConnectionLost, PairingCancelled
from ..models.biosignal import StreamStatus, BandPowerSnapshot, DeviceInfo
from .band_power import compute_band_powers, average_snapshots, SAMPLE_RATE, EPOCH_LENGTH
from .buffers import ChannelSampleBuffer, DEFAULT_CAPACITY
from .decoder import AbstractPacketDecoder, MusePacketDecoder
from .publisher import BiosignalPublisher
from .transport import AbstractBiosignalTransport

logger = logging.getLogger(__name__)

SampleBatch = Dict[str, List[float]]

# Forehead channels used for the band power estimate
ANALYSIS_CHANNELS = ("AF7", "AF8")

_CANCELLED_ERRORS = (PairingCancelled, asyncio.CancelledError, concurrent.futures.CancelledError)


def _unsubscriber(listeners: list, callback: Callable) -> Callable[[], None]:
    def unsubscribe() -> None:
        if callback in listeners:
            listeners.remove(callback)
    return unsubscribe


class BiosignalStreamClient:
    """Owns the headband transport between connect() and disconnect().

    The transport runs on a dedicated thread with its own asyncio loop.
    Decoded sample batches fill bounded per-channel buffers and are handed to
    registered listeners; band power is recomputed on a separate timer thread.
    """

    def __init__(self,
                 transport: AbstractBiosignalTransport,
                 decoder: Optional[AbstractPacketDecoder] = None,
                 publisher: Optional[BiosignalPublisher] = None,
                 sample_rate: int = SAMPLE_RATE,
                 buffer_capacity: int = DEFAULT_CAPACITY,
                 band_power_interval: float = 1.0,
                 analysis_channels: Sequence[str] = ANALYSIS_CHANNELS):
        """Initialize the stream client.

        Args:
            transport: Wireless transport to the headband
            decoder: Turns sensor notifications into channel samples
            publisher: Optional pub/sub publisher for status and band powers
            sample_rate: Per-channel sample rate in Hz
            buffer_capacity: Samples kept per channel buffer
            band_power_interval: Seconds between band power estimates
            analysis_channels: The two channels averaged for band power
        """
        if len(analysis_channels) != 2:
            raise ValueError("Band power needs exactly two analysis channels")

        self.transport = transport
        self.decoder = decoder or MusePacketDecoder()
        self.publisher = publisher
        self.sample_rate = sample_rate
        self.buffer_capacity = buffer_capacity
        self.band_power_interval = band_power_interval
        self.analysis_channels = tuple(analysis_channels)

        self._status = StreamStatus.DISCONNECTED
        self._status_lock = threading.RLock()

        self.buffers: Dict[str, ChannelSampleBuffer] = {}
        self.session_samples: Dict[str, List[float]] = {}
        self.band_power_history: List[BandPowerSnapshot] = []
        self.latest_band_powers: Optional[BandPowerSnapshot] = None
        self.device_name: Optional[str] = None
        self.device_info = DeviceInfo()
        self.streaming_started_at: Optional[float] = None

        self._batch_listeners: List[Callable[[SampleBatch], None]] = []
        self._status_listeners: List[Callable[[StreamStatus], None]] = []
        self._band_power_listeners: List[Callable[[BandPowerSnapshot], None]] = []
        self._ppg_listeners: List[Callable[[List[float]], None]] = []
        self._data_lock = threading.Lock()

        # Transport event loop
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.loop_thread: Optional[threading.Thread] = None
        self._connect_future: Optional[concurrent.futures.Future] = None
        self._cancel_requested = False

        # Band power timer
        self.band_power_thread: Optional[threading.Thread] = None
        self.band_power_stop = threading.Event()

    # ---- Status ----

    @property
    def status(self) -> StreamStatus:
        return self._status

    def _set_status(self, status: StreamStatus) -> None:
        with self._status_lock:
            if status == self._status:
                return
            previous = self._status
            self._status = status

        logger.info(f"Biosignal status: {previous.value} -> {status.value}")
        if self.publisher:
            self.publisher.publish_status(status)
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}", exc_info=True)

    # ---- Listener registration ----

    def on_samples(self, callback: Callable[[SampleBatch], None]) -> Callable[[], None]:
        """Register a per-batch callback. Returns a function that unregisters it."""
        self._batch_listeners.append(callback)
        return _unsubscriber(self._batch_listeners, callback)

    def on_status_change(self, callback: Callable[[StreamStatus], None]) -> Callable[[], None]:
        self._status_listeners.append(callback)
        return _unsubscriber(self._status_listeners, callback)

    def on_band_powers(self, callback: Callable[[BandPowerSnapshot], None]) -> Callable[[], None]:
        self._band_power_listeners.append(callback)
        return _unsubscriber(self._band_power_listeners, callback)

    def on_ppg(self, callback: Callable[[List[float]], None]) -> Callable[[], None]:
        """Register a callback for raw optical pulse samples."""
        self._ppg_listeners.append(callback)
        return _unsubscriber(self._ppg_listeners, callback)

    # ---- Event loop ----

    def _ensure_loop(self) -> None:
        if self.loop_thread and self.loop_thread.is_alive():
            return

        loop = asyncio.new_event_loop()
        self.loop = loop
        ready = threading.Event()

        def _run_loop():
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            try:
                loop.run_forever()
            finally:
                loop.close()
                logger.debug("Biosignal transport loop closed")

        self.loop_thread = threading.Thread(target=_run_loop, daemon=True)
        self.loop_thread.name = "BiosignalTransportLoop"
        self.loop_thread.start()
        ready.wait(timeout=2.0)

    def _stop_loop(self) -> None:
        if not self.loop_thread:
            return
        if self.loop and self.loop.is_running():
            self.loop.call_soon_threadsafe(self.loop.stop)
        self.loop_thread.join(timeout=2.0)
        if self.loop_thread.is_alive():
            logger.warning("Biosignal transport loop did not stop cleanly")
        self.loop_thread = None
        self.loop = None

    def _run(self, coro, timeout: Optional[float]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    # ---- Connection ----

    def connect(self, timeout: float = 30.0) -> None:
        """Discover and pair with the headband.

        Raises:
            DeviceNotFound: No device, or the user cancelled pairing
                (``user_cancelled`` is set in that case)
            ConnectionLost: The link dropped while it was being set up
        """
        if self._status in (StreamStatus.CONNECTED, StreamStatus.STREAMING):
            logger.warning("Biosignal client already connected")
            return

        self._cancel_requested = False
        self._set_status(StreamStatus.CONNECTING)
        self._ensure_loop()

        future = asyncio.run_coroutine_threadsafe(
            self.transport.connect(on_control=self._on_control, on_disconnect=self._on_transport_lost),
            self.loop)
        self._connect_future = future

        try:
            name = future.result(timeout)
        except (Exception, asyncio.CancelledError) as e:
            if isinstance(e, concurrent.futures.TimeoutError):
                future.cancel()
            error = self._classify_connect_error(e)
            self._teardown()
            if isinstance(error, DeviceNotFound) and error.user_cancelled:
                logger.info("Headband pairing cancelled by user")
            else:
                logger.error(f"Headband connection failed: {error}")
            raise error from e
        finally:
            self._connect_future = None

        self.device_name = name or "Biosignal Device"
        self.device_info.name = self.device_name
        self._set_status(StreamStatus.CONNECTED)
        logger.info(f"Connected to {self.device_name}")

    def cancel_connect(self) -> None:
        """Abort an in-flight connect() on behalf of the user."""
        self._cancel_requested = True
        future = self._connect_future
        if future is not None:
            future.cancel()

    def _classify_connect_error(self, error: BaseException) -> Exception:
        if self._cancel_requested or isinstance(error, _CANCELLED_ERRORS):
            return DeviceNotFound("Pairing cancelled by user", user_cancelled=True)
        if isinstance(error, (DeviceNotFound, ConnectionLost)):
            return error
        if isinstance(error, concurrent.futures.TimeoutError):
            return DeviceNotFound("Timed out waiting for the headband")

        # Last resort for transports that only report cancellation in the message
        if "cancel" in str(error).lower():
            logger.debug(f"Treating {type(error).__name__} as a user cancellation: {error}")
            return DeviceNotFound("Pairing cancelled by user", user_cancelled=True)

        return DeviceNotFound(f"Could not connect to headband: {error}")

    # ---- Streaming ----

    def start_streaming(self, timeout: float = 10.0) -> None:
        """Start sample delivery; transitions connected -> streaming.

        Raises:
            RuntimeError: If the client is not connected
            ConnectionLost: If the transport fails while starting
        """
        if self._status != StreamStatus.CONNECTED:
            raise RuntimeError(f"Cannot start streaming while {self._status.value}")

        with self._data_lock:
            self.buffers.clear()
            self.session_samples.clear()
            self.band_power_history.clear()
            self.latest_band_powers = None

        try:
            self._run(self.transport.start_streaming(self._on_packet), timeout)
        except Exception as e:
            self._teardown()
            raise ConnectionLost(f"Failed to start streaming: {e}") from e

        self.streaming_started_at = time.monotonic()
        self._start_band_power_timer()
        self._set_status(StreamStatus.STREAMING)

    def stop_streaming(self, timeout: float = 5.0) -> None:
        """Stop sample delivery; transitions streaming -> connected."""
        if self._status != StreamStatus.STREAMING:
            return

        self._stop_band_power_timer()
        try:
            self._run(self.transport.stop_streaming(), timeout)
        except Exception as e:
            logger.warning(f"Error stopping stream: {e}")
        self._set_status(StreamStatus.CONNECTED)

    def disconnect(self) -> None:
        """Release the transport and clear buffers. Safe from any state."""
        self._teardown()
        with self._data_lock:
            self.buffers.clear()
        logger.info("Biosignal client disconnected")

    def _teardown(self) -> None:
        self._stop_band_power_timer()
        if self.loop and self.loop.is_running():
            try:
                self._run(self.transport.disconnect(), 5.0)
            except Exception as e:
                logger.warning(f"Error releasing transport: {e}")
        self._stop_loop()
        self._set_status(StreamStatus.DISCONNECTED)

    def _on_transport_lost(self) -> None:
        """Called from the transport loop when the link drops."""
        if self._status == StreamStatus.DISCONNECTED:
            return
        logger.warning("Biosignal transport lost")
        self._stop_band_power_timer()
        self._set_status(StreamStatus.DISCONNECTED)

    # ---- Incoming data ----

    def _on_control(self, data: bytes) -> None:
        info = self.decoder.decode_control(data)
        if 'firmware' in info:
            self.device_info.firmware = info['firmware']
        if 'battery' in info:
            self.device_info.battery = info['battery']

    def _on_packet(self, data: bytes) -> None:
        packet = self.decoder.decode_sensor(data)
        if packet.eeg:
            self.ingest_batch(packet.eeg)
        if packet.ppg:
            for listener in list(self._ppg_listeners):
                try:
                    listener(packet.ppg)
                except Exception as e:
                    logger.error(f"PPG listener failed: {e}", exc_info=True)

    def ingest_batch(self, batch: SampleBatch) -> None:
        """Buffer a batch of decoded samples and hand it to listeners."""
        with self._data_lock:
            for channel, samples in batch.items():
                buffer = self.buffers.get(channel)
                if buffer is None:
                    buffer = self.buffers[channel] = ChannelSampleBuffer(channel, self.buffer_capacity)
                buffer.extend(samples)
                self.session_samples.setdefault(channel, []).extend(samples)

        for listener in list(self._batch_listeners):
            try:
                listener(batch)
            except Exception as e:
                logger.error(f"Sample listener failed: {e}", exc_info=True)

    # ---- Band power ----

    def _start_band_power_timer(self) -> None:
        self.band_power_stop.clear()
        self.band_power_thread = threading.Thread(target=self._band_power_loop, daemon=True)
        self.band_power_thread.name = "BandPowerTimer"
        self.band_power_thread.start()

    def _stop_band_power_timer(self) -> None:
        self.band_power_stop.set()
        thread = self.band_power_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self.band_power_thread = None

    def _band_power_loop(self) -> None:
        while not self.band_power_stop.wait(self.band_power_interval):
            try:
                self.update_band_powers()
            except Exception as e:
                logger.error(f"Band power update failed: {e}", exc_info=True)

    def update_band_powers(self) -> Optional[BandPowerSnapshot]:
        """Estimate band power from the newest epoch of the analysis channels.

        Returns:
            The new snapshot, or None until both channels hold a full epoch
        """
        with self._data_lock:
            epochs = []
            for channel in self.analysis_channels:
                buffer = self.buffers.get(channel)
                if buffer is None or len(buffer) < EPOCH_LENGTH:
                    return None
                epochs.append(buffer.latest(EPOCH_LENGTH))

        elapsed_ms = 0
        if self.streaming_started_at is not None:
            elapsed_ms = int((time.monotonic() - self.streaming_started_at) * 1000)

        snapshot = compute_band_powers(epochs[0], epochs[1], sample_rate=self.sample_rate,
                                       timestamp_ms=elapsed_ms)
        with self._data_lock:
            self.latest_band_powers = snapshot
            self.band_power_history.append(snapshot)

        if self.publisher:
            self.publisher.publish_band_powers(snapshot)
        for listener in list(self._band_power_listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Band power listener failed: {e}", exc_info=True)
        return snapshot

    def get_average_band_powers(self) -> Optional[BandPowerSnapshot]:
        with self._data_lock:
            return average_snapshots(list(self.band_power_history))

    def get_session_data(self) -> Dict[str, Any]:
        """Everything streamed this session: raw samples and band power history."""
        with self._data_lock:
            return {
                "eeg": {channel: list(samples) for channel, samples in self.session_samples.items()},
                "bands": list(self.band_power_history),
            }
