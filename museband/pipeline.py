"""SamplingPipeline — polls EEG buffers at the sample rate and records windows."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Sequence

from .config import MuseConfig
from .eeg.buffer import SampleBuffer
from .eeg.spectral import SpectralResult, analyze_window

logger = logging.getLogger(__name__)

Tick = tuple[float | None, ...]
SampleCallback = Callable[[Tick], None]


class RecordingWindow:
    """Ticks captured between start_recording() and stop_recording().

    Only the most recent ``size`` ticks are kept.
    """

    def __init__(self, size: int, started_at: float):
        self.size = size
        self.started_at = started_at
        self._ticks: deque[Tick] = deque(maxlen=size)

    def __len__(self) -> int:
        return len(self._ticks)

    def append(self, tick: Tick) -> None:
        self._ticks.append(tick)

    def pad(self) -> None:
        """Repeat the last tick up to ``size`` if more than half is captured."""
        n = len(self._ticks)
        if self.size / 2 < n < self.size:
            last = self._ticks[-1]
            self._ticks.extend([last] * (self.size - n))

    def ticks(self) -> list[Tick]:
        return list(self._ticks)


class SamplingPipeline:
    """Read one sample per EEG channel every 1/sample_rate seconds.

    Each tick is exposed as ``latest`` and passed to ``on_sample``; while a
    recording is active it is also appended to the recording window.

    Usage::

        pipeline = SamplingPipeline(session.listener.eeg, on_sample=print)
        pipeline.start()
        pipeline.start_recording()
        await asyncio.sleep(3.5)
        result = pipeline.stop_recording()  # SpectralResult or None
        pipeline.stop()
    """

    def __init__(
        self,
        buffers: Sequence[SampleBuffer],
        config: MuseConfig | None = None,
        *,
        on_sample: SampleCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or MuseConfig()
        if len(buffers) < self.config.channels:
            raise ValueError(
                f"Need {self.config.channels} buffers, got {len(buffers)}"
            )
        self.buffers = list(buffers[:self.config.channels])
        self.on_sample = on_sample
        self.clock = clock

        self.latest: Tick | None = None
        self._window: RecordingWindow | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def recording(self) -> bool:
        return self._window is not None

    def tick(self) -> Tick:
        """Poll every buffer once and publish the resulting tuple."""
        sample = tuple(buffer.read() for buffer in self.buffers)
        self.latest = sample
        if self.on_sample is not None:
            try:
                self.on_sample(sample)
            except Exception:
                logger.exception("on_sample callback failed; continuing to poll")
        if self._window is not None:
            self._window.append(sample)
        return sample

    async def run(self) -> None:
        """Tick forever at the configured interval."""
        interval = self.config.tick_interval
        while True:
            self.tick()
            await asyncio.sleep(interval)

    def start(self) -> asyncio.Task:
        """Schedule the polling loop on the running event loop."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def stop(self) -> None:
        """Cancel the polling loop. Takes effect before the next tick."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def start_recording(self) -> None:
        logger.info("Starting recording")
        self._window = RecordingWindow(self.config.window_size, self.clock())

    def stop_recording(self) -> SpectralResult | None:
        """Finish the recording and analyse it.

        Returns None when the recording lasted less than the window duration
        or captured too few ticks even after padding.
        """
        window, self._window = self._window, None
        if window is None:
            return None

        duration = self.clock() - window.started_at
        window.pad()
        if duration < self.config.window_seconds or len(window) < window.size:
            logger.info(
                "Not enough data recorded (%.2fs, %d/%d ticks). "
                "Please record for at least %.0f seconds.",
                duration, len(window), window.size, self.config.window_seconds,
            )
            return None

        return analyze_window(
            window.ticks(),
            channels=self.config.channels,
            sample_rate=self.config.sample_rate,
        )
