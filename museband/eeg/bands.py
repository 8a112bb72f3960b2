"""EEG frequency band definitions, periodogram and band power computation."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from ..ble.protocol import SAMPLE_RATE


@dataclass(frozen=True)
class FrequencyBand:
    name: str
    low: float
    high: float


# Standard EEG frequency bands
DELTA = FrequencyBand("delta", 0.5, 4.0)
THETA = FrequencyBand("theta", 4.0, 8.0)
ALPHA = FrequencyBand("alpha", 8.0, 13.0)
BETA = FrequencyBand("beta", 13.0, 30.0)
GAMMA = FrequencyBand("gamma", 30.0, 100.0)

ALL_BANDS = [DELTA, THETA, ALPHA, BETA, GAMMA]


def periodogram(data: np.ndarray | list[float]) -> np.ndarray:
    """Power spectrum of ``data`` from a direct (non-fast) DFT.

    Returns ``n // 2`` bins where bin k is ``(re² + im²) / n`` with
    ``re = Σ x[t]·cos(2πtk/n)`` and ``im = -Σ x[t]·sin(2πtk/n)``.
    """
    x = np.asarray(data, dtype=np.float64)
    n = len(x)
    if n == 0:
        return np.zeros(0, dtype=np.float64)
    t = np.arange(n)
    k = np.arange(n // 2)[:, np.newaxis]
    angle = 2 * np.pi * t * k / n
    real = np.cos(angle) @ x
    imag = -(np.sin(angle) @ x)
    return (real * real + imag * imag) / n


def band_indices(
    band: FrequencyBand,
    n_bins: int,
    sample_rate: int = SAMPLE_RATE,
    window_size: int | None = None,
) -> tuple[int, int]:
    """Half-open bin range ``[lo, hi)`` covered by ``band``.

    ``lo`` never drops below 1 (the DC bin is excluded) and ``hi`` never
    exceeds ``n_bins - 1``.
    """
    if window_size is None:
        window_size = 2 * n_bins
    resolution = sample_rate / window_size
    lo = max(1, math.floor(band.low / resolution))
    hi = min(n_bins - 1, math.ceil(band.high / resolution))
    return lo, hi


def band_powers(
    spectrum: np.ndarray | list[float],
    sample_rate: int = SAMPLE_RATE,
    window_size: int | None = None,
    bands: list[FrequencyBand] | None = None,
) -> dict[str, float]:
    """Sum periodogram bins inside each frequency band.

    Args:
        spectrum: Output of :func:`periodogram`.
        sample_rate: Sampling rate in Hz.
        window_size: Samples in the analysed window. Defaults to twice the
            number of bins.
        bands: Frequency bands to compute. Defaults to ALL_BANDS.

    Returns:
        Dict mapping band name to summed power. Empty ranges give 0.0.
    """
    if bands is None:
        bands = ALL_BANDS

    spectrum = np.asarray(spectrum, dtype=np.float64)
    powers = {}
    for band in bands:
        lo, hi = band_indices(band, len(spectrum), sample_rate, window_size)
        powers[band.name] = float(spectrum[lo:hi].sum()) if hi > lo else 0.0
    return powers


def relative_band_powers(powers: dict[str, float]) -> dict[str, float]:
    """Each band's share of the summed power across all bands (0.0 if silent)."""
    total = math.fsum(powers.values())
    return {name: value / total if total else 0.0 for name, value in powers.items()}
