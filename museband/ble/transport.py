"""BLE transport capability and its bleak-backed implementation."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[bytearray], None]
DisconnectCallback = Callable[[], None]


class TransportError(RuntimeError):
    """Raised for any failed BLE operation (selection, connect, GATT I/O)."""


class Transport(ABC):
    """The narrow slice of a BLE stack that a DeviceSession drives.

    Every method raises :class:`TransportError` on failure.
    """

    @abstractmethod
    async def request_device(self, service_uuid: str) -> Any:
        """Find a device advertising ``service_uuid`` and return its handle."""
        ...

    @abstractmethod
    async def connect(self, device: Any) -> None:
        """Open a GATT connection to ``device``."""
        ...

    @abstractmethod
    async def get_primary_service(self, service_uuid: str) -> Any:
        ...

    @abstractmethod
    async def start_notify(
        self, service: Any, char_uuid: str, callback: NotifyCallback
    ) -> Any:
        """Subscribe to a characteristic and return its handle for writes."""
        ...

    @abstractmethod
    async def write(self, characteristic: Any, data: bytes) -> None:
        ...

    @abstractmethod
    def on_disconnect(self, callback: DisconnectCallback) -> None:
        """Register ``callback`` for link loss initiated by the device or stack."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...


class BleakTransport(Transport):
    """Transport built on bleak's scanner and client.

    Usage::

        transport = BleakTransport(scan_timeout=10.0)
        session = DeviceSession(transport)
        await session.connect()
    """

    def __init__(self, *, scan_timeout: float = 10.0, connect_timeout: float = 30.0):
        self.scan_timeout = scan_timeout
        self.connect_timeout = connect_timeout
        self._client: BleakClient | None = None
        self._disconnect_callback: DisconnectCallback | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def _require_client(self) -> BleakClient:
        if self._client is None:
            raise TransportError("Not connected")
        return self._client

    def _handle_disconnect(self, _client: BleakClient) -> None:
        if self._disconnect_callback is not None:
            self._disconnect_callback()

    async def request_device(self, service_uuid: str) -> Any:
        logger.info("Scanning for devices advertising %s...", service_uuid)
        try:
            device = await BleakScanner.find_device_by_filter(
                lambda _device, adv: service_uuid in adv.service_uuids,
                timeout=self.scan_timeout,
            )
        except (BleakError, OSError) as e:
            raise TransportError(f"Scan failed: {e}") from e
        if device is None:
            raise TransportError(
                f"No device advertising {service_uuid} found. Is it in pairing mode?"
            )
        logger.info("Found: %s (%s)", device.name, device.address)
        return device

    async def connect(self, device: Any) -> None:
        self._client = BleakClient(
            device,
            disconnected_callback=self._handle_disconnect,
            timeout=self.connect_timeout,
        )
        try:
            await self._client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self._client = None
            raise TransportError(f"GATT connect failed: {e}") from e

    async def get_primary_service(self, service_uuid: str) -> Any:
        service = self._require_client().services.get_service(service_uuid)
        if service is None:
            raise TransportError(f"Service {service_uuid} not found")
        return service

    async def start_notify(
        self, service: Any, char_uuid: str, callback: NotifyCallback
    ) -> Any:
        client = self._require_client()
        characteristic = service.get_characteristic(char_uuid)
        if characteristic is None:
            raise TransportError(f"Characteristic {char_uuid} not found")
        try:
            await client.start_notify(
                characteristic, lambda _sender, data: callback(data)
            )
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"Subscribe to {char_uuid} failed: {e}") from e
        return characteristic

    async def write(self, characteristic: Any, data: bytes) -> None:
        try:
            await self._require_client().write_gatt_char(characteristic, data)
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"Write failed: {e}") from e

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        self._disconnect_callback = callback

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"Disconnect failed: {e}") from e
