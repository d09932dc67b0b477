"""Streaming tracker session: ring buffer -> onset extractor -> particle filter."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator

import numpy as np

from beatmarker.analysis.models import BeatEvent, TrackerState
from beatmarker.analysis.onset import OnsetExtractor
from beatmarker.analysis.particle_filter import ParticleFilterTracker
from beatmarker.audio.preprocessing import downmix
from beatmarker.audio.stream import RingBuffer
from beatmarker.config import TrackerConfig

logger = logging.getLogger(__name__)

BeatSink = Callable[[BeatEvent], None]


class TrackerSession:
    """All state for tracking one audio source.

    The session owns its ring buffer, onset extractor and particle filter;
    sessions share nothing, so several can run side by side. Events are
    handed to ``sink`` (if given) the moment they are detected and are also
    yielded/returned by the processing methods.

    ``feed`` and ``drain`` may run on different threads (producer and
    consumer); everything else must be called from one thread at a time.
    """

    def __init__(self, config: TrackerConfig | None = None, sink: BeatSink | None = None) -> None:
        self.config = (config or TrackerConfig.from_settings()).validate()
        self.sink = sink
        self.buffer = RingBuffer(self.config.buffer_capacity)
        self.extractor = OnsetExtractor(
            band_weights=self.config.band_weights,
            adaptive_scale=self.config.onset_adaptive_scale,
            mode=self.config.onset_mode,
            auto_gain=self.config.onset_auto_gain,
            gain_decay=self.config.onset_gain_decay,
            gain_floor=self.config.onset_gain_floor,
        )
        self.tracker = ParticleFilterTracker(self.config)
        self._stopped = False
        self.frames_processed = 0
        self.events_emitted = 0
        self.tracker.initialize()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackerState:
        return self.tracker.state

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def dropped_samples(self) -> int:
        return self.buffer.dropped_samples

    @property
    def samples_consumed(self) -> int:
        """Sample counter: absolute index of the next unread sample."""
        return self.buffer.read_position

    def stop(self) -> None:
        """Stop tracking; the hop in progress finishes, no new hop starts."""
        if not self._stopped:
            logger.info(f"Tracking stopped after {self.frames_processed} frames, "
                        f"{self.events_emitted} events")
        self._stopped = True

    def reset(self) -> None:
        """Start over: reseed particles, zero the buffer, counters and caches."""
        self.tracker.reset()
        self.buffer.clear()
        self.extractor.reset()
        self.frames_processed = 0
        self.events_emitted = 0
        self._stopped = False
        self.tracker.initialize()

    # ------------------------------------------------------------------
    # Producer / consumer
    # ------------------------------------------------------------------

    def feed(self, block: np.ndarray, channels: int = 1) -> int:
        """Write an audio block into the ring buffer.

        Returns the number of unread samples the write had to drop.
        """
        if self._stopped:
            return 0
        return self.buffer.write(downmix(block, channels))

    def drain(self) -> Iterator[BeatEvent]:
        """Process every ready frame, yielding events as they are detected."""
        cfg = self.config
        while not self._stopped:
            frame = self.buffer.read_frame(cfg.frame_size, cfg.hop_size)
            if frame is None:
                return
            # Time at which the frame's newest sample arrived.
            timestamp = (self.buffer.last_frame_start + cfg.frame_size) / cfg.sample_rate
            features = self.extractor.process(frame)
            event = self.tracker.update(timestamp, features.strength, features.downbeat_strength)
            self.frames_processed += 1
            if event is None:
                continue
            self.events_emitted += 1
            if self.sink is not None:
                self.sink(event)
            yield event

    def process(self, block: np.ndarray, channels: int = 1) -> list[BeatEvent]:
        """Feed a block and drain it, returning the events it produced.

        Large blocks are written a hop at a time so a synchronous caller
        never overflows the buffer.
        """
        mono = downmix(block, channels)
        events: list[BeatEvent] = []
        step = self.config.hop_size
        for start in range(0, len(mono), step):
            if self._stopped:
                break
            self.feed(mono[start:start + step])
            events.extend(self.drain())
        return events

    def track(self, blocks: Iterable[np.ndarray], channels: int = 1) -> Iterator[BeatEvent]:
        """Lazily track an iterable of audio blocks."""
        for block in blocks:
            if self._stopped:
                return
            yield from self.process(block, channels)

    def replay(self, audio: np.ndarray, block_size: int | None = None) -> Iterator[BeatEvent]:
        """One-shot mode: run a whole in-memory mono buffer through the session."""
        audio = np.asarray(audio, dtype=np.float32).ravel()
        block_size = block_size or self.config.hop_size
        blocks = (audio[i:i + block_size] for i in range(0, len(audio), block_size))
        yield from self.track(blocks)

    def current_tempo(self) -> float:
        """The filter's current weighted tempo estimate in BPM."""
        return self.tracker.estimate()[1]
