"""Particle-filter beat and down-beat tracker.

Each particle is a hypothesis ``(phase, tempo, measure_slot)``: where we are
inside the current beat, how fast beats go, and which beat of the bar is
playing. Every hop the population is advanced, re-weighted against the
observed onset/down-beat strength, normalized and, when the weights have
degenerated, resampled. The weighted estimate decides whether the hop is a
beat.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from beatmarker.analysis.models import BeatEvent, Particle, TrackerState
from beatmarker.config import TrackerConfig, validate_particle_setup, validate_tempo_step
from beatmarker.errors import DegenerateWeights, TrackerNotInitialized

logger = logging.getLogger(__name__)

# Expected onset strength when a particle sits on / off a beat.
ON_BEAT_PROB = 0.8
OFF_BEAT_PROB = 0.2
# Blend between beat and down-beat evidence in the likelihood.
BEAT_LIKELIHOOD_WEIGHT = 0.7
DOWNBEAT_LIKELIHOOD_WEIGHT = 0.3

QUARTER_GRID = np.array([0.0, 0.25, 0.5, 0.75])


def circular_distance(a, b):
    """Distance between phases on the unit circle, in [0, 0.5]."""
    d = np.abs(np.asarray(a) - np.asarray(b)) % 1.0
    return np.minimum(d, 1.0 - d)


def grid_distance(phase: float) -> float:
    """Distance from ``phase`` to the nearest quarter-beat position."""
    return float(circular_distance(phase, QUARTER_GRID).min())


def normalized(weights: np.ndarray) -> np.ndarray:
    """Return ``weights`` scaled to sum to one.

    Raises
    ------
    DegenerateWeights
        If the sum is not a positive finite number.
    """
    total = float(weights.sum())
    if not math.isfinite(total) or total <= 0.0:
        raise DegenerateWeights(f"weight sum is {total}")
    return weights / total


class ParticleFilterTracker:
    """Sequential Monte Carlo tracker over beat phase, tempo and bar position.

    Parameters
    ----------
    config:
        Tracker options; see :class:`~beatmarker.config.TrackerConfig`.
        ``hop_duration`` sets how far particles move per :meth:`update`.
    """

    def __init__(self, config: TrackerConfig | None = None) -> None:
        self.config = (config or TrackerConfig.from_settings()).validate()
        self.state = TrackerState.UNINITIALIZED
        self._particle_count = self.config.particle_count
        self._tempo_range = tuple(self.config.tempo_range)
        self._rng = np.random.default_rng(self.config.seed)
        self._clear_population()

    def _clear_population(self) -> None:
        self._phase = np.zeros(0)
        self._tempo = np.zeros(0)
        self._slot = np.zeros(0, dtype=np.int64)
        self._weights = np.zeros(0)
        self._last_timestamp: float | None = None
        self._last_phase: float | None = None
        self._beat_clock = 0.0
        self._last_beat_index: int | None = None
        self.updates = 0
        self.resample_count = 0
        self.degenerate_recoveries = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        particle_count: int | None = None,
        tempo_range: tuple[float, float] | None = None,
    ) -> None:
        """Seed the population and start tracking.

        Phases and tempos are drawn uniformly, weights start at ``1/N``. The
        random generator restarts from the configured seed, so a seeded
        tracker replays identically after every initialization.
        """
        particle_count = self.config.particle_count if particle_count is None else particle_count
        tempo_range = self.config.tempo_range if tempo_range is None else tempo_range
        validate_particle_setup(particle_count, tempo_range)
        validate_tempo_step(self.config.hop_duration, tempo_range[1])

        self._clear_population()
        self._particle_count = int(particle_count)
        self._tempo_range = (float(tempo_range[0]), float(tempo_range[1]))
        self._rng = np.random.default_rng(self.config.seed)

        n = self._particle_count
        low, high = self._tempo_range
        self._phase = self._rng.uniform(0.0, 1.0, n)
        self._tempo = self._rng.uniform(low, high, n)
        self._slot = self._rng.integers(0, self.config.beats_per_bar, n)
        self._weights = np.full(n, 1.0 / n)
        self.state = TrackerState.TRACKING
        logger.debug(f"Particle filter seeded: {n} particles, {low:.0f}-{high:.0f} BPM")

    def reset(self) -> None:
        """Drop the population; :meth:`initialize` must be called again."""
        self._clear_population()
        self.state = TrackerState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Per-hop step
    # ------------------------------------------------------------------

    def update(
        self,
        timestamp: float,
        onset_strength: float,
        downbeat_strength: float = 0.0,
    ) -> BeatEvent | None:
        """Advance one hop and return a :class:`BeatEvent` if this hop is a beat.

        Calls must arrive in temporal order; ``timestamp`` is in seconds from
        the start of the tracked audio.
        """
        if self.state is not TrackerState.TRACKING:
            raise TrackerNotInitialized("initialize() must be called before update()")
        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            raise ValueError(
                f"timestamp {timestamp:.4f}s is earlier than the previous update "
                f"({self._last_timestamp:.4f}s)"
            )
        onset_strength = _unit_interval(onset_strength, "onset_strength")
        downbeat_strength = _unit_interval(downbeat_strength, "downbeat_strength")
        self._last_timestamp = timestamp
        self.updates += 1

        self.predict()
        self._reweight(onset_strength, downbeat_strength)
        self.normalize()
        phase, tempo = self.estimate()
        event = self._detect(timestamp, phase, tempo, onset_strength, downbeat_strength)

        if self.effective_sample_size() < self.config.resample_threshold * self._particle_count:
            self.resample()
        return event

    def predict(self) -> None:
        """Move every particle forward by one hop."""
        hop = self.config.hop_duration
        self._phase = self._phase + hop * self._tempo / 60.0
        wraps = np.floor(self._phase).astype(np.int64)
        self._phase -= wraps
        self._slot = (self._slot + wraps) % self.config.beats_per_bar

        if self.config.tempo_jitter > 0:
            noise = self._rng.normal(0.0, self.config.tempo_jitter * math.sqrt(hop), self._particle_count)
            self._tempo = self._tempo + noise
        self._tempo = np.clip(self._tempo, *self._tempo_range)

    def _reweight(self, onset_strength: float, downbeat_strength: float) -> None:
        tol = self.config.phase_tolerance
        near_beat = (self._phase < tol) | (self._phase > 1.0 - tol)
        expected_beat = np.where(near_beat, ON_BEAT_PROB, OFF_BEAT_PROB)
        expected_downbeat = np.where(self._slot == 0, expected_beat, 0.0)
        likelihood = (
            BEAT_LIKELIHOOD_WEIGHT * (1.0 - np.abs(onset_strength - expected_beat))
            + DOWNBEAT_LIKELIHOOD_WEIGHT * (1.0 - np.abs(downbeat_strength - expected_downbeat))
        )
        self._weights = self._weights * likelihood

    def normalize(self) -> None:
        """Scale weights to sum to one, falling back to uniform if they collapsed."""
        try:
            self._weights = normalized(self._weights)
        except DegenerateWeights as e:
            self.degenerate_recoveries += 1
            logger.debug(f"Degenerate particle weights ({e}); resetting to uniform")
            self._weights = np.full(self._particle_count, 1.0 / self._particle_count)

    def estimate(self) -> tuple[float, float]:
        """Weighted ``(phase, tempo)`` estimate of the population.

        Phase uses a circular mean so that particles either side of the beat
        (0.95 and 0.05) average to the beat, not to the half-beat.
        """
        tempo = float(np.dot(self._weights, self._tempo))
        angles = 2.0 * np.pi * self._phase
        s = float(np.dot(self._weights, np.sin(angles)))
        c = float(np.dot(self._weights, np.cos(angles)))
        if math.hypot(s, c) < 1e-12:
            # Perfectly spread population, no preferred direction.
            phase = float(np.dot(self._weights, self._phase))
        else:
            phase = (math.atan2(s, c) / (2.0 * np.pi)) % 1.0
        if phase >= 1.0:
            phase = 0.0
        return phase, tempo

    def _detect(self, timestamp, phase, tempo, onset_strength, downbeat_strength) -> BeatEvent | None:
        # Unwrapped beat clock, advanced by the signed step between estimates.
        if self._last_phase is None:
            self._beat_clock = phase
        else:
            self._beat_clock += ((phase - self._last_phase + 0.5) % 1.0) - 0.5
        self._last_phase = phase

        tol = self.config.phase_tolerance
        is_beat = onset_strength > self.config.beat_threshold and grid_distance(phase) < tol
        if not is_beat:
            return None

        beat_index = math.floor(self._beat_clock + tol)
        if self._last_beat_index is not None and beat_index <= self._last_beat_index:
            return None
        self._last_beat_index = beat_index

        is_downbeat = downbeat_strength > self.config.downbeat_threshold
        return BeatEvent(
            timestamp=timestamp,
            is_beat=True,
            is_downbeat=is_downbeat,
            tempo_estimate=tempo,
            confidence=max(onset_strength, downbeat_strength),
            beat_index=beat_index,
        )

    # ------------------------------------------------------------------
    # Resampling
    # ------------------------------------------------------------------

    def effective_sample_size(self) -> float:
        denom = float(np.dot(self._weights, self._weights))
        if denom <= 0.0:
            return 0.0
        return 1.0 / denom

    def resample(self) -> None:
        """Stratified resampling: draw N particles proportionally to weight."""
        n = self._particle_count
        cumulative = np.cumsum(self._weights)
        cumulative[-1] = 1.0
        positions = (self._rng.random(n) + np.arange(n)) / n
        idx = np.minimum(np.searchsorted(cumulative, positions, side="right"), n - 1)
        self._phase = self._phase[idx]
        self._tempo = self._tempo[idx]
        self._slot = self._slot[idx]
        self._weights = np.full(n, 1.0 / n)
        self.resample_count += 1

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def particle_count(self) -> int:
        return len(self._weights)

    @property
    def weights(self) -> np.ndarray:
        return self._weights.copy()

    def particles(self) -> list[Particle]:
        return [
            Particle(phase=float(p), tempo=float(t), measure_slot=int(s), weight=float(w))
            for p, t, s, w in zip(self._phase, self._tempo, self._slot, self._weights)
        ]


def _unit_interval(value: float, name: str) -> float:
    value = float(value)
    if math.isnan(value):
        raise ValueError(f"{name} is NaN")
    return min(1.0, max(0.0, value))
