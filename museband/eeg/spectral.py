"""Spectral analysis of a finished recording window."""

from __future__ import annotations

import logging
import math
import numbers
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from ..ble.protocol import SAMPLE_RATE
from .bands import ALPHA, band_powers, periodogram

logger = logging.getLogger(__name__)


def is_valid_sample(value: Any) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


def sanitize(values: Sequence[Any]) -> np.ndarray:
    """Forward-fill gaps (None, NaN, non-numeric) with the last valid sample.

    Gaps before the first valid sample take that first valid value; a
    channel without any valid sample becomes all zeros.
    """
    first = next((v for v in values if is_valid_sample(v)), None)
    if first is None:
        return np.zeros(len(values), dtype=np.float64)

    out = np.empty(len(values), dtype=np.float64)
    last = float(first)
    for i, value in enumerate(values):
        if is_valid_sample(value):
            last = float(value)
        out[i] = last
    return out


def transpose(ticks: Sequence[Sequence[Any]], channels: int) -> list[list[Any]]:
    """Regroup per-tick tuples into one sample list per channel."""
    return [
        [tick[ch] if ch < len(tick) else None for tick in ticks]
        for ch in range(channels)
    ]


@dataclass(frozen=True, eq=False)
class SpectralResult:
    """Per-channel analysis of one recording window."""
    sanitized: np.ndarray          # (channels, window)
    spectra: np.ndarray            # (channels, window // 2)
    powers: tuple[dict[str, float], ...]
    alpha: tuple[float, ...]
    raw_eeg: tuple[float, ...]     # latest sanitized sample per channel

    def to_dict(self) -> dict[str, Any]:
        """Plain-JSON form: rawEEG, spectraData, powerData, alphaData."""
        return {
            "rawEEG": list(self.raw_eeg),
            "spectraData": self.spectra.tolist(),
            "powerData": [dict(p) for p in self.powers],
            "alphaData": list(self.alpha),
        }


def analyze_window(
    ticks: Sequence[Sequence[Any]],
    channels: int = 4,
    sample_rate: int = SAMPLE_RATE,
) -> SpectralResult | None:
    """Sanitize, compute periodograms and band powers for each channel.

    Returns None if the window is empty or cannot be analysed.
    """
    if not ticks:
        return None
    window_size = len(ticks)

    try:
        sanitized = np.array(
            [sanitize(channel) for channel in transpose(ticks, channels)]
        )
        spectra = np.array([periodogram(channel) for channel in sanitized])
        powers = tuple(
            band_powers(spectrum, sample_rate, window_size) for spectrum in spectra
        )
    except (TypeError, ValueError) as e:
        logger.error("Error processing EEG window of %d ticks: %s", window_size, e)
        return None

    sanitized.flags.writeable = False
    spectra.flags.writeable = False
    return SpectralResult(
        sanitized=sanitized,
        spectra=spectra,
        powers=powers,
        alpha=tuple(p[ALPHA.name] for p in powers),
        raw_eeg=tuple(float(channel[-1]) for channel in sanitized),
    )
