"""DeviceSession — connection state machine for a Muse headband."""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable
from enum import IntEnum
from typing import Any

from ..config import MuseConfig
from .listeners import BufferedListener, SessionListener
from .protocol import (
    ACCELEROMETER_UUID,
    BATTERY_UUID,
    CMD_HALT,
    CONTROL_UUID,
    EEG_UUIDS,
    GYROSCOPE_UUID,
    PPG_UUIDS,
    SERVICE_UUID,
    ControlReassembler,
    decode_accelerometer,
    decode_battery,
    decode_control,
    decode_eeg,
    decode_gyroscope,
    decode_ppg,
    encode_command,
)
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)


class SessionState(IntEnum):
    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2


class DeviceSession:
    """Connect to a headband, subscribe to all sensors, route decoded data.

    A single ``connect()`` call makes exactly one attempt; any failure leaves
    the session DISCONNECTED without raising.

    Usage::

        session = DeviceSession(BleakTransport())
        if await session.connect():
            value = session.listener.eeg[0].read()
        await session.disconnect()
    """

    def __init__(
        self,
        transport: Transport,
        listener: SessionListener | None = None,
        config: MuseConfig | None = None,
    ):
        self.transport = transport
        self.config = config or MuseConfig()
        self.listener = listener or BufferedListener(self.config.buffer_size)
        self.reassembler = ControlReassembler()

        self._state = SessionState.DISCONNECTED
        self._device: Any = None
        self._control: Any = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    # -- notification routing ------------------------------------------

    def _guard(self, kind: str, handler: Callable[[bytearray], None]):
        def callback(data: bytearray) -> None:
            try:
                handler(data)
            except (struct.error, IndexError) as e:
                logger.debug("Dropping malformed %s packet (%d bytes): %s", kind, len(data), e)
        return callback

    def _on_control(self, data: bytearray) -> None:
        info = self.reassembler.feed(decode_control(data))
        if info:
            self.listener.on_control(info)

    def _on_battery(self, data: bytearray) -> None:
        self.listener.on_battery(decode_battery(data))

    def _on_gyroscope(self, data: bytearray) -> None:
        self.listener.on_gyroscope(decode_gyroscope(data))

    def _on_accelerometer(self, data: bytearray) -> None:
        self.listener.on_accelerometer(decode_accelerometer(data))

    def _make_ppg_handler(self, index: int) -> Callable[[bytearray], None]:
        return lambda data: self.listener.on_ppg(index, decode_ppg(data))

    def _make_eeg_handler(self, index: int) -> Callable[[bytearray], None]:
        return lambda data: self.listener.on_eeg(index, decode_eeg(data))

    def _routes(self) -> list[tuple[str, str, Callable[[bytearray], None]]]:
        routes = [
            ("control", CONTROL_UUID, self._on_control),
            ("battery", BATTERY_UUID, self._on_battery),
            ("gyroscope", GYROSCOPE_UUID, self._on_gyroscope),
            ("accelerometer", ACCELEROMETER_UUID, self._on_accelerometer),
        ]
        for i, uuid in enumerate(PPG_UUIDS):
            routes.append((f"ppg{i}", uuid, self._make_ppg_handler(i)))
        for i, (name, uuid) in enumerate(EEG_UUIDS.items()):
            routes.append((name, uuid, self._make_eeg_handler(i)))
        return routes

    def _handle_transport_disconnect(self) -> None:
        if self._state is SessionState.DISCONNECTED:
            return
        logger.warning("Device disconnected")
        self._reset()
        self.listener.on_disconnected()

    # -- commands ------------------------------------------------------

    async def send_command(self, cmd: str) -> None:
        """Write a framed command to the control characteristic."""
        if self._control is None:
            raise TransportError("Control characteristic not available")
        await self.transport.write(self._control, encode_command(cmd))

    async def pause(self) -> None:
        await self.send_command("h")

    async def resume(self) -> None:
        await self.send_command("d")

    async def _start_streaming(self) -> None:
        await self.pause()
        await self.send_command(f"p{self.config.priority}")
        await self.send_command("s")
        await self.resume()
        await self.send_command("v1")

    # -- lifecycle -----------------------------------------------------

    def _reset(self) -> None:
        self._state = SessionState.DISCONNECTED
        self._device = None
        self._control = None

    async def _abort(self, reason: str) -> bool:
        logger.warning("Connection aborted: %s", reason)
        self._reset()
        try:
            await self.transport.disconnect()
        except TransportError as e:
            logger.debug("Teardown after failed connect: %s", e)
        return False

    async def connect(self) -> bool:
        """Make one connection attempt. Returns True once streaming has started."""
        if self._state is not SessionState.DISCONNECTED:
            return False
        self._state = SessionState.CONNECTING
        self.reassembler.reset()

        try:
            device = await self.transport.request_device(SERVICE_UUID)
        except TransportError as e:
            logger.warning("Device selection failed: %s", e)
            self._reset()
            return False
        if self._state is not SessionState.CONNECTING:
            return False
        self._device = device

        try:
            await self.transport.connect(device)
        except TransportError as e:
            logger.warning("Connection failed: %s", e)
            self._reset()
            return False
        if self._state is not SessionState.CONNECTING:
            return await self._abort("disconnect requested while connecting")

        try:
            service = await self.transport.get_primary_service(SERVICE_UUID)
            self.transport.on_disconnect(self._handle_transport_disconnect)
            for kind, uuid, handler in self._routes():
                handle = await self.transport.start_notify(
                    service, uuid, self._guard(kind, handler)
                )
                if self._state is not SessionState.CONNECTING:
                    return await self._abort("link lost while subscribing")
                if uuid == CONTROL_UUID:
                    self._control = handle
            await self._start_streaming()
        except TransportError as e:
            return await self._abort(str(e))

        if self._state is not SessionState.CONNECTING:
            return await self._abort("link lost during startup")
        self._state = SessionState.CONNECTED
        logger.info("Connected and streaming")
        return True

    async def disconnect(self) -> None:
        """Halt streaming and drop the link. Safe to call in any state."""
        was = self._state
        had_device = self._device is not None
        control = self._control
        self._reset()

        if had_device:
            if was is SessionState.CONNECTED and control is not None:
                try:
                    await self.transport.write(control, CMD_HALT)
                except TransportError as e:
                    logger.debug("Halt before disconnect failed: %s", e)
            try:
                await self.transport.disconnect()
            except TransportError as e:
                logger.warning("Disconnect failed: %s", e)

        if was is not SessionState.DISCONNECTED:
            self.listener.on_disconnected()
