#!/usr/bin/env python3
"""Connect to the headband and print the live EEG tick, battery and motion."""

import asyncio
import signal

from museband.ble.listeners import BufferedListener
from museband.ble.session import DeviceSession
from museband.ble.transport import BleakTransport
from museband.config import MuseConfig
from museband.logging_setup import setup_logging
from museband.pipeline import SamplingPipeline


class PrintingListener(BufferedListener):
    def on_disconnected(self) -> None:
        print("\nHeadband disconnected.")


async def main():
    config = MuseConfig()
    listener = PrintingListener(config.buffer_size)
    session = DeviceSession(
        BleakTransport(scan_timeout=config.scan_timeout, connect_timeout=config.connect_timeout),
        listener,
        config,
    )
    if not await session.connect():
        print("Could not connect.")
        return

    pipeline = SamplingPipeline(listener.eeg, config)
    pipeline.start()
    print("\nStreaming... Press Ctrl+C to stop.\n")

    running = True

    def stop():
        nonlocal running
        running = False

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, stop)

    try:
        while running and session.connected:
            tick = pipeline.latest or ()
            eeg = " ".join("   ----" if v is None else f"{v:7.1f}" for v in tick)
            accel = [buf.drain() for buf in listener.accelerometer]
            xyz = " ".join(f"{axis[-1]:+.2f}" if axis else "  -- " for axis in accel)
            battery = listener.battery_level
            battery_text = "--" if battery is None else f"{battery:.0f}%"
            print(f"  EEG [{eeg}]  accel [{xyz}]  battery {battery_text}", end="\r")
            for buffers in (listener.ppg, listener.gyroscope, listener.eeg[config.channels:]):
                for buf in buffers:
                    buf.drain()
            await asyncio.sleep(0.25)
    finally:
        pipeline.stop()
        await session.disconnect()
        print("\nStopped.")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
