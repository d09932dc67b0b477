"""Turn tracked beats into labelled timeline markers."""

import math
from dataclasses import dataclass

from beatmarker.analysis.models import TrackingResult

# Final Cut Pro colours markers by the first character of their name.
RED_PREFIX = "!"  # down-beats
GREEN_PREFIX = "?"  # weak (even) beats


@dataclass(frozen=True)
class MarkerData:
    start: float  # seconds
    value: str
    is_downbeat: bool
    beat_index: int


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def format_marker_value(beat_number: int, is_downbeat: bool, bpm: float, meter: str) -> str:
    if is_downbeat:
        prefix = RED_PREFIX
    elif beat_number % 2 == 0:
        prefix = GREEN_PREFIX
    else:
        prefix = ""
    suffix = " [Down-beat]" if is_downbeat else ""
    return f"{prefix}Beat {beat_number} - {_round_half_up(bpm)} BPM {meter}{suffix}"


def generate_markers(result: TrackingResult, downbeats_only: bool = False) -> list[MarkerData]:
    """One marker per emitted beat (or per down-beat), numbered from 1."""
    events = result.downbeats if downbeats_only else result.events
    return [
        MarkerData(
            start=event.timestamp,
            value=format_marker_value(i + 1, event.is_downbeat, result.bpm, result.meter),
            is_downbeat=event.is_downbeat,
            beat_index=i,
        )
        for i, event in enumerate(events)
    ]
