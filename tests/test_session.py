"""Unit tests for the device session state machine against a fake transport."""

import asyncio
import struct

import pytest

from museband.ble.listeners import BufferedListener, SessionListener
from museband.ble.protocol import (
    ACCELEROMETER_SCALE,
    ACCELEROMETER_UUID,
    BATTERY_UUID,
    CMD_HALT,
    CONTROL_UUID,
    EEG_UUIDS,
    GYROSCOPE_SCALE,
    GYROSCOPE_UUID,
    PPG_UUIDS,
    SERVICE_UUID,
    encode_command,
)
from museband.ble.session import DeviceSession, SessionState
from museband.ble.transport import Transport, TransportError
from museband.config import MuseConfig

STARTUP = [encode_command(c) for c in ("h", "p50", "s", "d", "v1")]
CONTROL_HANDLE = f"char:{CONTROL_UUID}"


class FakeTransport(Transport):
    def __init__(self, *, fail_request=False, fail_connect=False, fail_subscribe=None):
        self.fail_request = fail_request
        self.fail_connect = fail_connect
        self.fail_subscribe = fail_subscribe
        self.requested = None
        self.link_up = False
        self.subscriptions = {}
        self.writes = []
        self.disconnects = 0
        self.disconnect_callback = None
        self.on_write = None

    async def request_device(self, service_uuid):
        self.requested = service_uuid
        if self.fail_request:
            raise TransportError("user cancelled the chooser")
        return "device"

    async def connect(self, device):
        if self.fail_connect:
            raise TransportError("GATT connect failed")
        self.link_up = True

    async def get_primary_service(self, service_uuid):
        return "service"

    async def start_notify(self, service, char_uuid, callback):
        if char_uuid == self.fail_subscribe:
            raise TransportError("subscribe failed")
        self.subscriptions[char_uuid] = callback
        return f"char:{char_uuid}"

    async def write(self, characteristic, data):
        self.writes.append((characteristic, bytes(data)))
        if self.on_write is not None:
            self.on_write(bytes(data))

    def on_disconnect(self, callback):
        self.disconnect_callback = callback

    async def disconnect(self):
        self.disconnects += 1
        self.link_up = False

    def notify(self, uuid, data):
        self.subscriptions[uuid](bytearray(data))

    def drop_link(self):
        self.link_up = False
        self.disconnect_callback()


class CountingListener(BufferedListener):
    def __init__(self):
        super().__init__()
        self.disconnected = 0

    def on_disconnected(self):
        self.disconnected += 1


def connected_session(**kwargs):
    transport = FakeTransport(**kwargs)
    listener = CountingListener()
    session = DeviceSession(transport, listener)
    ok = asyncio.run(session.connect())
    return session, transport, listener, ok


class TestConnect:
    def test_success(self):
        session, transport, _, ok = connected_session()
        assert ok
        assert session.state is SessionState.CONNECTED
        assert transport.requested == SERVICE_UUID
        assert len(transport.subscriptions) == 12

    def test_startup_command_sequence(self):
        _, transport, _, _ = connected_session()
        assert transport.writes == [(CONTROL_HANDLE, frame) for frame in STARTUP]

    def test_priority_from_config(self):
        transport = FakeTransport()
        session = DeviceSession(transport, config=MuseConfig(priority=21))
        asyncio.run(session.connect())
        assert transport.writes[1] == (CONTROL_HANDLE, encode_command("p21"))

    def test_noop_when_not_disconnected(self):
        session, transport, _, _ = connected_session()
        assert asyncio.run(session.connect()) is False
        assert len(transport.writes) == len(STARTUP)

    def test_selection_failure(self):
        session, transport, _, ok = connected_session(fail_request=True)
        assert not ok
        assert session.state is SessionState.DISCONNECTED
        assert not transport.link_up

    def test_connect_failure(self):
        session, transport, _, ok = connected_session(fail_connect=True)
        assert not ok
        assert session.state is SessionState.DISCONNECTED
        assert transport.subscriptions == {}

    def test_subscribe_failure_tears_down(self):
        session, transport, listener, ok = connected_session(fail_subscribe=PPG_UUIDS[1])
        assert not ok
        assert session.state is SessionState.DISCONNECTED
        assert transport.disconnects == 1
        assert transport.writes == []
        assert listener.disconnected == 0

    def test_can_retry_after_failure(self):
        transport = FakeTransport(fail_connect=True)
        session = DeviceSession(transport)
        assert not asyncio.run(session.connect())
        transport.fail_connect = False
        assert asyncio.run(session.connect())

    def test_link_lost_during_startup(self):
        transport = FakeTransport()
        listener = CountingListener()
        session = DeviceSession(transport, listener)

        def drop_on_start(frame):
            if frame == encode_command("s"):
                transport.drop_link()

        transport.on_write = drop_on_start
        assert asyncio.run(session.connect()) is False
        assert session.state is SessionState.DISCONNECTED
        assert listener.disconnected == 1


class TestDisconnect:
    def test_halts_and_disconnects(self):
        session, transport, listener, _ = connected_session()
        asyncio.run(session.disconnect())
        assert session.state is SessionState.DISCONNECTED
        assert transport.writes[-1] == (CONTROL_HANDLE, CMD_HALT)
        assert transport.disconnects == 1
        assert listener.disconnected == 1

    def test_idempotent(self):
        session, transport, listener, _ = connected_session()
        asyncio.run(session.disconnect())
        asyncio.run(session.disconnect())
        assert transport.disconnects == 1
        assert listener.disconnected == 1

    def test_disconnect_when_never_connected(self):
        transport = FakeTransport()
        session = DeviceSession(transport)
        asyncio.run(session.disconnect())
        assert session.state is SessionState.DISCONNECTED
        assert transport.disconnects == 0

    def test_transport_initiated(self):
        session, transport, listener, _ = connected_session()
        transport.drop_link()
        assert session.state is SessionState.DISCONNECTED
        assert listener.disconnected == 1
        # A late callback after the reset is ignored
        transport.drop_link()
        assert listener.disconnected == 1


class TestRouting:
    def test_eeg_to_buffers(self):
        session, transport, listener, _ = connected_session()
        packet = bytearray([0x00, 0x01]) + bytearray([0x80, 0x08, 0x00] * 6)
        transport.notify(EEG_UUIDS["AF7"], packet)
        assert listener.eeg[1].drain() == [0.0] * 12
        assert len(listener.eeg[0]) == 0

    def test_ppg_to_buffers(self):
        _, transport, listener, _ = connected_session()
        transport.notify(PPG_UUIDS[2], bytearray([0, 0]) + bytearray([0, 1, 0] * 6))
        assert listener.ppg[2].drain() == [256.0] * 6

    def test_motion_axes(self):
        _, transport, listener, _ = connected_session()
        packet = struct.pack(">H", 0) + struct.pack(">hhh", 100, 200, 300) * 3
        transport.notify(ACCELEROMETER_UUID, packet)
        transport.notify(GYROSCOPE_UUID, packet)
        assert listener.accelerometer[0].drain() == pytest.approx([100 * ACCELEROMETER_SCALE] * 3)
        assert listener.gyroscope[2].drain() == pytest.approx([300 * GYROSCOPE_SCALE] * 3)

    def test_battery(self):
        _, transport, listener, _ = connected_session()
        transport.notify(BATTERY_UUID, bytearray([0, 0, 0x64, 0x00] + [0] * 16))
        assert listener.battery_level == 50.0

    def test_control_info(self):
        _, transport, listener, _ = connected_session()
        for text in ('{"rc":0,"fw"', ':"1.3.4"}'):
            body = text.encode()
            transport.notify(CONTROL_UUID, bytearray([len(body)]) + body)
        assert listener.info == {"rc": 0, "fw": "1.3.4"}

    def test_malformed_packet_dropped(self):
        session, transport, listener, _ = connected_session()
        transport.notify(BATTERY_UUID, bytearray([0x00]))
        transport.notify(GYROSCOPE_UUID, bytearray(4))
        assert listener.battery_level is None
        assert session.state is SessionState.CONNECTED

    def test_new_session_starts_with_empty_info(self):
        _, transport, listener, _ = connected_session()
        body = b'{"a":1}'
        transport.notify(CONTROL_UUID, bytearray([len(body)]) + body)
        session = DeviceSession(transport)
        assert session.listener.info == {}

    def test_base_listener_ignores_everything(self):
        transport = FakeTransport()
        session = DeviceSession(transport, SessionListener())
        asyncio.run(session.connect())
        transport.notify(EEG_UUIDS["TP9"], bytearray(20))
        transport.drop_link()
        assert session.state is SessionState.DISCONNECTED
