"""Session listeners — per-event hooks for decoded headband data."""

from __future__ import annotations

from typing import Any

from ..eeg.buffer import SampleBuffer
from .protocol import CHANNEL_NAMES

MotionSamples = tuple[list[float], list[float], list[float]]


class SessionListener:
    """Receives decoded data from a DeviceSession.

    Every hook is a no-op; subclass and override only the events you need.
    Hooks run on the event loop thread inside BLE notification callbacks,
    so they must not block.
    """

    def on_battery(self, level: float) -> None:
        pass

    def on_accelerometer(self, samples: MotionSamples) -> None:
        pass

    def on_gyroscope(self, samples: MotionSamples) -> None:
        pass

    def on_control(self, info: dict[str, Any]) -> None:
        pass

    def on_eeg(self, index: int, samples: list[float]) -> None:
        pass

    def on_ppg(self, index: int, samples: list[int]) -> None:
        pass

    def on_disconnected(self) -> None:
        pass


class BufferedListener(SessionListener):
    """Writes every channel into its own SampleBuffer.

    EEG samples are in µV ([-1000, 1000)), PPG samples are raw counts,
    motion samples are in g (accelerometer) and deg/s (gyroscope).
    """

    def __init__(self, buffer_size: int = 256):
        self.buffer_size = buffer_size
        self.battery_level: float | None = None
        self.info: dict[str, Any] = {}
        self.eeg = [SampleBuffer(buffer_size) for _ in CHANNEL_NAMES]
        self.ppg = [SampleBuffer(buffer_size) for _ in range(3)]
        self.accelerometer = [SampleBuffer(buffer_size) for _ in range(3)]
        self.gyroscope = [SampleBuffer(buffer_size) for _ in range(3)]

    @staticmethod
    def _write_axes(buffers: list[SampleBuffer], samples: MotionSamples) -> None:
        for buffer, axis in zip(buffers, samples):
            for value in axis:
                buffer.write(value)

    def on_battery(self, level: float) -> None:
        self.battery_level = level

    def on_accelerometer(self, samples: MotionSamples) -> None:
        self._write_axes(self.accelerometer, samples)

    def on_gyroscope(self, samples: MotionSamples) -> None:
        self._write_axes(self.gyroscope, samples)

    def on_control(self, info: dict[str, Any]) -> None:
        self.info.update(info)

    def on_eeg(self, index: int, samples: list[float]) -> None:
        buffer = self.eeg[index]
        for value in samples:
            buffer.write(value)

    def on_ppg(self, index: int, samples: list[int]) -> None:
        buffer = self.ppg[index]
        for value in samples:
            buffer.write(value)
