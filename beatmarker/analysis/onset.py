"""Multi-band spectral-flux onset strength for streaming frames."""

from __future__ import annotations

import numpy as np

from beatmarker.analysis.models import OnsetFeatures

# Band edges as a fraction of the available bins: low [0, .1), mid [.1, .4), high [.4, 1)
BAND_EDGES = (0.0, 0.1, 0.4, 1.0)
DEFAULT_BAND_WEIGHTS = (1.2, 1.5, 0.8)
DEFAULT_ADAPTIVE_SCALE = 8.0

MagnitudeCache = np.ndarray | None


def _band_slices(bins: int) -> list[slice]:
    bounds = [int(np.floor(bins * edge)) for edge in BAND_EDGES]
    bounds[-1] = bins
    return [slice(bounds[i], bounds[i + 1]) for i in range(len(bounds) - 1)]


def bin_magnitudes(frame: np.ndarray, mode: str = "rms") -> np.ndarray:
    """Per-bin magnitudes of a frame, ``len(frame) // 2`` values.

    ``rms`` splits the frame's samples evenly over the bins and takes the RMS
    of each slice, a cheap time-domain stand-in for a spectrum. ``stft``
    takes a Hann-windowed FFT magnitude instead.
    """
    frame = np.asarray(frame, dtype=np.float64)
    n = len(frame)
    bins = n // 2
    if bins == 0:
        return np.zeros(0)

    if mode == "stft":
        window = np.hanning(n)
        spectrum = np.abs(np.fft.rfft(frame * window))[:bins]
        # Scale so a full-scale sinusoid peaks near its amplitude.
        return spectrum / (window.sum() / 2.0)
    if mode != "rms":
        raise ValueError(f"Unknown onset mode: {mode!r}")

    edges = (np.arange(bins + 1) * n) // bins
    widths = np.diff(edges)
    energy = np.add.reduceat(frame * frame, edges[:-1])
    return np.sqrt(energy / widths)


def band_flux(
    current: np.ndarray,
    previous: np.ndarray,
    band_weights: tuple[float, float, float] = DEFAULT_BAND_WEIGHTS,
) -> tuple[float, float, float]:
    """Weighted half-wave rectified flux per band.

    Each band's value is the mean weighted increase over the bins that
    increased; a band with no increasing bin scores 0.
    """
    diff = current - previous
    result = []
    for band, weight in zip(_band_slices(len(current)), band_weights):
        rising = diff[band][diff[band] > 0]
        result.append(float(rising.mean() * weight) if len(rising) else 0.0)
    return tuple(result)


def compute_onset_strength(
    frame: np.ndarray,
    previous_magnitudes: MagnitudeCache = None,
    *,
    band_weights: tuple[float, float, float] = DEFAULT_BAND_WEIGHTS,
    adaptive_scale: float = DEFAULT_ADAPTIVE_SCALE,
    mode: str = "rms",
) -> tuple[float, np.ndarray]:
    """Return ``(strength, magnitudes)`` for one analysis frame.

    ``previous_magnitudes`` is the cache returned by the previous call; pass
    ``None`` for the first frame of a session, which is compared against
    silence. Strength is in [0, 1].
    """
    strength, _, magnitudes = _flux_features(
        frame, previous_magnitudes, band_weights, adaptive_scale, mode,
    )
    return _unit(strength), magnitudes


def _flux_features(frame, previous, band_weights, adaptive_scale, mode):
    """Unclamped ``(strength, band_fluxes, magnitudes)`` for one frame."""
    current = bin_magnitudes(frame, mode)
    if previous is None or len(previous) != len(current):
        previous = np.zeros_like(current)

    fluxes = band_flux(current, previous, band_weights)
    contributing = [f for f in fluxes if f > 0]
    mean_flux = sum(contributing) / len(contributing) if contributing else 0.0
    return mean_flux / adaptive_scale, fluxes, current


def _unit(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


class OnsetExtractor:
    """Stateful onset front end: keeps the previous frame's magnitudes.

    With ``auto_gain`` the scaled flux is further divided by a reference
    level that follows recent peaks. The level starts at 1.0 and decays by
    ``gain_decay`` after each frame, never below ``gain_floor``, so the first
    frame scores exactly as :func:`compute_onset_strength` would and the
    loudest recent onset maps to 1.0 once the level has adapted.
    """

    def __init__(
        self,
        band_weights: tuple[float, float, float] = DEFAULT_BAND_WEIGHTS,
        adaptive_scale: float = DEFAULT_ADAPTIVE_SCALE,
        mode: str = "rms",
        auto_gain: bool = False,
        gain_decay: float = 0.99,
        gain_floor: float = 0.01,
    ) -> None:
        self.band_weights = tuple(band_weights)
        self.adaptive_scale = adaptive_scale
        self.mode = mode
        self.auto_gain = auto_gain
        self.gain_decay = gain_decay
        self.gain_floor = gain_floor
        self.last_frame_magnitudes: MagnitudeCache = None
        self.level = 1.0

    def process(self, frame: np.ndarray) -> OnsetFeatures:
        strength, fluxes, self.last_frame_magnitudes = _flux_features(
            frame,
            self.last_frame_magnitudes,
            self.band_weights,
            self.adaptive_scale,
            self.mode,
        )
        # Rising bass energy is the down-beat evidence.
        downbeat = fluxes[0] / self.adaptive_scale
        if self.auto_gain:
            level = max(strength, self.level, self.gain_floor)
            strength /= level
            downbeat /= level
            self.level = max(level * self.gain_decay, self.gain_floor)
        return OnsetFeatures(strength=_unit(strength), downbeat_strength=_unit(downbeat), band_flux=fluxes)

    def reset(self) -> None:
        self.last_frame_magnitudes = None
        self.level = 1.0
