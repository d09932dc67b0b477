"""Core data models for beat tracking."""

import enum
import math
from dataclasses import dataclass


class TrackerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"


@dataclass(frozen=True)
class BeatEvent:
    """A single detected beat, handed to the sink as soon as it is found."""
    timestamp: float  # seconds since the start of the tracked audio
    is_beat: bool
    is_downbeat: bool
    tempo_estimate: float  # BPM
    confidence: float  # 0.0-1.0
    beat_index: int = 0  # position on the filter's beat clock

    def __post_init__(self):
        if not math.isfinite(self.timestamp) or self.timestamp < 0:
            raise ValueError(f"timestamp must be a non-negative number, got {self.timestamp}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if not math.isfinite(self.tempo_estimate) or self.tempo_estimate <= 0:
            raise ValueError(f"tempo_estimate must be positive, got {self.tempo_estimate}")
        if self.is_downbeat and not self.is_beat:
            raise ValueError("a down-beat event must also be a beat")


@dataclass
class Particle:
    """One hypothesis about where we are in the beat cycle."""
    phase: float  # [0, 1)
    tempo: float  # BPM
    measure_slot: int  # beat number within the bar, 0 is the down-beat
    weight: float


@dataclass
class OnsetFeatures:
    """Per-hop output of the onset extractor."""
    strength: float  # 0.0-1.0
    downbeat_strength: float  # 0.0-1.0, low-band flux
    band_flux: tuple[float, float, float] = (0.0, 0.0, 0.0)  # weighted low/mid/high


@dataclass
class TrackingResult:
    """Summary of a replayed (batch) tracking session."""
    events: list[BeatEvent]
    bpm: float
    tempo_confidence: float
    beats_per_bar: int = 4
    duration: float = 0.0
    dropped_samples: int = 0
    frames_processed: int = 0

    @property
    def meter(self) -> str:
        return f"{self.beats_per_bar}/4"

    @property
    def downbeats(self) -> list[BeatEvent]:
        return [e for e in self.events if e.is_downbeat]
