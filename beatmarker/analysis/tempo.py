"""Tempo summaries computed from emitted beat events."""

import numpy as np

from beatmarker.analysis.models import BeatEvent


def estimate_from_ibi(
    events: list[BeatEvent],
    min_bpm: float = 60,
    max_bpm: float = 200,
) -> tuple[float, float] | None:
    """Estimate ``(bpm, confidence)`` from inter-beat intervals.

    Returns ``None`` when there are too few plausible intervals.
    """
    if len(events) < 3:
        return None

    times = np.array([e.timestamp for e in events])
    ibis = np.diff(times)

    # Filter out outlier intervals
    valid = ibis[(ibis >= 60.0 / max_bpm) & (ibis <= 60.0 / min_bpm)]
    if len(valid) < 2:
        return None

    median_ibi = float(np.median(valid))
    bpm = 60.0 / median_ibi

    # Confidence based on consistency of IBIs
    std = float(np.std(valid))
    cv = std / median_ibi if median_ibi > 0 else 1.0
    confidence = max(0.0, min(1.0, 1.0 - cv * 2))

    return round(bpm, 1), round(confidence, 2)


def mean_tempo_estimate(events: list[BeatEvent]) -> float | None:
    """Confidence-weighted mean of the filter's tempo estimates."""
    if not events:
        return None
    weights = np.array([max(e.confidence, 1e-6) for e in events])
    tempos = np.array([e.tempo_estimate for e in events])
    return round(float(np.average(tempos, weights=weights)), 1)
