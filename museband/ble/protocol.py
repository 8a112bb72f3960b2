"""Muse BLE protocol — UUIDs, commands, packet decoding."""

from __future__ import annotations

import json
import logging
import struct
from enum import Enum, auto
from typing import Any

logger = logging.getLogger(__name__)

# Advertised primary service
SERVICE_UUID16 = 0xFE8D
SERVICE_UUID = f"0000{SERVICE_UUID16:04x}-0000-1000-8000-00805f9b34fb"

# GATT characteristic UUIDs
CONTROL_UUID = "273e0001-4c4d-454d-96be-f03bac821358"
BATTERY_UUID = "273e000b-4c4d-454d-96be-f03bac821358"
GYROSCOPE_UUID = "273e0009-4c4d-454d-96be-f03bac821358"
ACCELEROMETER_UUID = "273e000a-4c4d-454d-96be-f03bac821358"

PPG_UUIDS = [
    "273e000f-4c4d-454d-96be-f03bac821358",
    "273e0010-4c4d-454d-96be-f03bac821358",
    "273e0011-4c4d-454d-96be-f03bac821358",
]

EEG_UUIDS = {
    "TP9":  "273e0003-4c4d-454d-96be-f03bac821358",
    "AF7":  "273e0004-4c4d-454d-96be-f03bac821358",
    "AF8":  "273e0005-4c4d-454d-96be-f03bac821358",
    "TP10": "273e0006-4c4d-454d-96be-f03bac821358",
    "AUX":  "273e0007-4c4d-454d-96be-f03bac821358",
}

CHANNEL_NAMES = list(EEG_UUIDS.keys())

# Muse EEG parameters
SAMPLE_RATE = 256
SAMPLES_PER_PACKET = 12
SCALE_FACTOR = 0.48828125  # 2000 / 4096
EEG_OFFSET = 0x800

ACCELEROMETER_SCALE = 0.0000610352  # 1 / 2^14
GYROSCOPE_SCALE = 0.0074768
BATTERY_DIVISOR = 512

MOTION_OFFSETS = (2, 8, 14)
HEADER_SIZE = 2


def encode_command(cmd: str) -> bytes:
    """Frame a control command as ``[length][ascii command]['\\n']``.

    The length byte counts the command bytes plus the trailing newline.
    """
    body = f"{cmd}\n".encode("ascii")
    return bytes([len(body)]) + body


# Control commands
CMD_HALT = encode_command("h")        # pause streaming
CMD_RESUME = encode_command("d")      # resume streaming


def unpack_12bit(data: bytes | bytearray) -> list[int]:
    """Unpack big-endian 12-bit values; three bytes carry two samples."""
    n = len(data)
    padded = bytes(data) + b"\x00"
    values = []
    i = 0
    while i < n:
        if i % 3 == 0:
            values.append((padded[i] << 4) | (padded[i + 1] >> 4))
        else:
            values.append(((padded[i] & 0xF) << 8) | padded[i + 1])
            i += 1
        i += 1
    return values


def unpack_24bit(data: bytes | bytearray) -> list[int]:
    """Unpack big-endian 24-bit unsigned values from byte triples."""
    padded = bytes(data) + b"\x00\x00"
    return [
        (padded[i] << 16) | (padded[i + 1] << 8) | padded[i + 2]
        for i in range(0, len(data), 3)
    ]


def decode_eeg(packet: bytearray) -> list[float]:
    """Decode a 20-byte Muse EEG packet into 12 µV samples.

    The packet has a 2-byte header followed by 18 bytes of 12-bit samples
    packed MSB-first. Samples are centred on 0x800, giving [-1000, 1000).
    """
    return [SCALE_FACTOR * (raw - EEG_OFFSET) for raw in unpack_12bit(packet[HEADER_SIZE:])]


def decode_ppg(packet: bytearray) -> list[int]:
    """Decode a PPG packet into raw 24-bit counts."""
    return unpack_24bit(packet[HEADER_SIZE:])


def decode_motion(
    packet: bytearray, scale: float
) -> tuple[list[float], list[float], list[float]]:
    """Decode three (x, y, z) int16 triples into per-axis sample lists."""
    axes: tuple[list[float], list[float], list[float]] = ([], [], [])
    for offset in MOTION_OFFSETS:
        values = struct.unpack_from(">hhh", packet, offset)
        for axis, value in zip(axes, values):
            axis.append(scale * value)
    return axes


def decode_accelerometer(packet: bytearray) -> tuple[list[float], list[float], list[float]]:
    return decode_motion(packet, ACCELEROMETER_SCALE)


def decode_gyroscope(packet: bytearray) -> tuple[list[float], list[float], list[float]]:
    return decode_motion(packet, GYROSCOPE_SCALE)


def decode_battery(packet: bytearray) -> float:
    """Battery level as a percentage. Not clamped; treat outliers as noise."""
    return struct.unpack_from(">H", packet, 2)[0] / BATTERY_DIVISOR


def decode_control(packet: bytearray) -> str:
    """Return the UTF-8 text fragment of a length-prefixed control packet."""
    if not packet:
        return ""
    return bytes(packet[1:1 + packet[0]]).decode("utf-8", errors="replace")


class ReassemblyState(Enum):
    IDLE = auto()
    ACCUMULATING = auto()
    CORRUPTED = auto()


class ControlReassembler:
    """Rebuild JSON objects from control fragments split across notifications.

    Characters accumulate until a ``}`` arrives, at which point the fragment
    is parsed as one JSON object and flushed. A fragment that fails to parse
    (or outgrows ``max_fragment``) is discarded and the reassembler reports
    CORRUPTED until the next object parses cleanly, so a lost closing brace
    costs at most the object that follows it. Nested objects are not
    supported; the headband only sends flat ones.

    Usage::

        reassembler = ControlReassembler()
        reassembler.feed('{"fw":')    # {}
        reassembler.feed('"1.2.13"}') # {"fw": "1.2.13"}
    """

    def __init__(self, max_fragment: int = 4096):
        self.max_fragment = max_fragment
        self.state = ReassemblyState.IDLE
        self._fragment: list[str] = []

    @property
    def fragment(self) -> str:
        return "".join(self._fragment)

    def _discard(self, reason: str) -> None:
        logger.debug("Discarding control fragment (%s): %r", reason, self.fragment)
        self._fragment = []
        self.state = ReassemblyState.CORRUPTED

    def _flush(self) -> dict[str, Any]:
        text = self.fragment
        try:
            parsed = json.loads(text)
        except ValueError:
            self._discard("invalid JSON")
            return {}
        if not isinstance(parsed, dict):
            self._discard("not an object")
            return {}
        self._fragment = []
        self.state = ReassemblyState.IDLE
        return parsed

    def feed(self, text: str) -> dict[str, Any]:
        """Consume a text fragment and return keys from any completed objects."""
        info: dict[str, Any] = {}
        for char in text:
            self._fragment.append(char)
            if self.state is not ReassemblyState.CORRUPTED:
                self.state = ReassemblyState.ACCUMULATING
            if char == "}":
                info.update(self._flush())
                continue
            if len(self._fragment) > self.max_fragment:
                self._discard("fragment too long")
        return info

    def reset(self) -> None:
        self._fragment = []
        self.state = ReassemblyState.IDLE
