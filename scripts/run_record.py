#!/usr/bin/env python3
"""Record a 3-second EEG window, print band powers and plot the spectra."""

import argparse
import asyncio
import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from museband.ble.protocol import CHANNEL_NAMES
from museband.ble.session import DeviceSession
from museband.ble.transport import BleakTransport
from museband.config import MuseConfig
from museband.eeg.bands import ALL_BANDS, relative_band_powers
from museband.eeg.spectral import SpectralResult
from museband.logging_setup import setup_logging
from museband.pipeline import SamplingPipeline

CHANNEL_COLORS = ["#1f77b4", "#ff7f0e", "#2ca02c", "#d62728"]
BAND_COLORS = ["#9467bd", "#8c564b", "#e377c2", "#17becf", "#bcbd22"]


async def record(config: MuseConfig, seconds: float) -> SpectralResult | None:
    transport = BleakTransport(
        scan_timeout=config.scan_timeout,
        connect_timeout=config.connect_timeout,
    )
    session = DeviceSession(transport, config=config)
    if not await session.connect():
        print("Could not connect. Is the headband on and in pairing mode?")
        return None

    pipeline = SamplingPipeline(session.listener.eeg, config)
    pipeline.start()
    try:
        pipeline.start_recording()
        print(f"\nRecording {seconds:.0f}s of EEG... sit still and relax.\n")
        remaining = seconds
        while remaining > 0:
            print(f"  {remaining:4.1f}s remaining...", end="\r")
            await asyncio.sleep(min(1.0, remaining))
            remaining -= 1.0
        print("  Done!              ")
        return pipeline.stop_recording()
    finally:
        pipeline.stop()
        await session.disconnect()


def plot(result: SpectralResult, sample_rate: int) -> None:
    os.makedirs("output", exist_ok=True)
    n_bins = result.spectra.shape[1]
    freqs = np.arange(n_bins) * sample_rate / (2 * n_bins)

    fig, axes = plt.subplots(len(result.powers), 2, figsize=(14, 10))
    fig.suptitle("Muse EEG — Power spectrum and band powers", fontsize=16, fontweight="bold")

    for i, color in enumerate(CHANNEL_COLORS[:len(result.powers)]):
        ax_spec, ax_bands = axes[i]
        ax_spec.semilogy(freqs[1:], result.spectra[i, 1:] + 1e-12, color=color, linewidth=0.7)
        ax_spec.set_xlim(0, 60)
        ax_spec.set_ylabel(f"{CHANNEL_NAMES[i]}\npower", fontsize=10)
        ax_spec.grid(True, alpha=0.3)

        names = [b.name for b in ALL_BANDS]
        ax_bands.bar(names, [result.powers[i][n] for n in names], color=BAND_COLORS)
        ax_bands.grid(True, axis="y", alpha=0.3)

    axes[-1][0].set_xlabel("Frequency (Hz)", fontsize=12)
    plt.tight_layout()
    plt.savefig("output/eeg_spectra.png", dpi=150)
    print("Saved output/eeg_spectra.png")
    plt.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seconds", type=float, default=3.5, help="recording length")
    args = parser.parse_args()

    setup_logging()
    config = MuseConfig()
    result = asyncio.run(record(config, args.seconds))
    if result is None:
        print("Not enough data recorded. Try again.")
        return

    for name, powers in zip(CHANNEL_NAMES, result.powers):
        shares = relative_band_powers(powers)
        summary = "  ".join(
            f"{band}={value:10.1f} ({shares[band]:4.0%})" for band, value in powers.items()
        )
        print(f"  {name:>4}: {summary}")
    plot(result, config.sample_rate)


if __name__ == "__main__":
    main()
