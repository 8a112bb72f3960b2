"""Museband configuration — dataclass-based config with sensible defaults."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class MuseConfig:
    # BLE (used by BleakTransport; the session itself never times out)
    scan_timeout: float = 10.0
    connect_timeout: float = 30.0
    priority: int = 50                  # value sent with the 'p' command

    # Buffers
    buffer_size: int = 256              # samples per channel buffer

    # Sampling
    sample_rate: int = 256
    channels: int = 4                   # EEG channels polled per tick

    # Recording
    window_seconds: float = 3.0         # spectral window and minimum duration

    @property
    def window_size(self) -> int:
        """Ticks in one recording window (768 at 256 Hz)."""
        return int(self.window_seconds * self.sample_rate)

    @property
    def tick_interval(self) -> float:
        """Seconds between sampling ticks."""
        return 1.0 / self.sample_rate
