"""Application configuration."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace

from pydantic_settings import BaseSettings

from beatmarker.errors import InvalidConfiguration


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Audio
    sample_rate: int = 44100
    highpass_cutoff: float | None = None  # Hz, None disables the filter

    # Streaming front end
    frame_size: int = 2048
    hop_size: int = 512
    buffer_capacity: int = 4096

    # Onset extraction
    onset_mode: str = "rms"  # "rms" | "stft"
    onset_adaptive_scale: float = 8.0
    band_weight_low: float = 1.2
    band_weight_mid: float = 1.5
    band_weight_high: float = 0.8
    onset_auto_gain: bool = True
    onset_gain_half_life: float = 1.0  # seconds
    onset_gain_floor: float = 0.01

    # Particle filter
    particle_count: int = 100
    min_bpm: float = 60.0
    max_bpm: float = 200.0
    beat_threshold: float = 0.2
    downbeat_threshold: float = 0.15
    phase_tolerance: float = 0.1
    beats_per_bar: int = 4
    tempo_jitter: float = 2.0  # BPM per sqrt(second)
    resample_threshold: float = 0.5
    seed: int | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50
    log_level: str = "INFO"

    model_config = {"env_prefix": "BEATMARKER_"}


settings = Settings()


@dataclass(frozen=True)
class TrackerConfig:
    """Per-session tracker configuration.

    Built from :data:`settings` by default so env overrides apply, but every
    field can be overridden per session. Call :meth:`validate` before use;
    :class:`~beatmarker.analysis.session.TrackerSession` does it for you.
    """

    sample_rate: int = 44100
    frame_size: int = 2048
    hop_size: int = 512
    buffer_capacity: int = 4096
    highpass_cutoff: float | None = None
    onset_mode: str = "rms"
    onset_adaptive_scale: float = 8.0
    band_weights: tuple[float, float, float] = (1.2, 1.5, 0.8)
    onset_auto_gain: bool = True
    onset_gain_half_life: float = 1.0
    onset_gain_floor: float = 0.01
    particle_count: int = 100
    tempo_range: tuple[float, float] = (60.0, 200.0)
    beat_threshold: float = 0.2
    downbeat_threshold: float = 0.15
    phase_tolerance: float = 0.1
    beats_per_bar: int = 4
    tempo_jitter: float = 2.0
    resample_threshold: float = 0.5
    seed: int | None = None

    @classmethod
    def from_settings(cls, source: Settings | None = None, **overrides) -> "TrackerConfig":
        source = source or settings
        config = cls(
            sample_rate=source.sample_rate,
            frame_size=source.frame_size,
            hop_size=source.hop_size,
            buffer_capacity=source.buffer_capacity,
            highpass_cutoff=source.highpass_cutoff,
            onset_mode=source.onset_mode,
            onset_adaptive_scale=source.onset_adaptive_scale,
            band_weights=(
                source.band_weight_low,
                source.band_weight_mid,
                source.band_weight_high,
            ),
            onset_auto_gain=source.onset_auto_gain,
            onset_gain_half_life=source.onset_gain_half_life,
            onset_gain_floor=source.onset_gain_floor,
            particle_count=source.particle_count,
            tempo_range=(source.min_bpm, source.max_bpm),
            beat_threshold=source.beat_threshold,
            downbeat_threshold=source.downbeat_threshold,
            phase_tolerance=source.phase_tolerance,
            beats_per_bar=source.beats_per_bar,
            tempo_jitter=source.tempo_jitter,
            resample_threshold=source.resample_threshold,
            seed=source.seed,
        )
        return config.with_overrides(**overrides)

    def with_overrides(self, **overrides) -> "TrackerConfig":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise InvalidConfiguration(f"Unknown tracker options: {', '.join(sorted(unknown))}")
        if not overrides:
            return self
        return replace(self, **overrides)

    @property
    def hop_duration(self) -> float:
        """Seconds between successive analysis frames."""
        return self.hop_size / self.sample_rate

    @property
    def onset_gain_decay(self) -> float:
        """Per-hop decay of the onset gain reference level."""
        return 0.5 ** (self.hop_duration / self.onset_gain_half_life)

    @property
    def hop_size_ms(self) -> float:
        return self.hop_duration * 1000.0

    def validate(self) -> "TrackerConfig":
        """Raise :class:`InvalidConfiguration` if any option is unusable."""
        if self.sample_rate <= 0:
            raise InvalidConfiguration(f"sample_rate must be positive, got {self.sample_rate}")
        if self.frame_size <= 1:
            raise InvalidConfiguration(f"frame_size must be at least 2, got {self.frame_size}")
        if self.hop_size <= 0:
            raise InvalidConfiguration(f"hop_size must be positive, got {self.hop_size}")
        if self.hop_size > self.frame_size:
            raise InvalidConfiguration(
                f"hop_size ({self.hop_size}) must not exceed frame_size ({self.frame_size})"
            )
        if self.buffer_capacity < self.frame_size:
            raise InvalidConfiguration(
                f"buffer_capacity ({self.buffer_capacity}) must hold at least one frame ({self.frame_size})"
            )
        if self.highpass_cutoff is not None and not 0 < self.highpass_cutoff < self.sample_rate / 2:
            raise InvalidConfiguration(
                f"highpass_cutoff must be between 0 and Nyquist ({self.sample_rate / 2:.0f} Hz), "
                f"got {self.highpass_cutoff}"
            )
        if self.onset_mode not in ("rms", "stft"):
            raise InvalidConfiguration(f"onset_mode must be 'rms' or 'stft', got {self.onset_mode!r}")
        if self.onset_adaptive_scale <= 0:
            raise InvalidConfiguration("onset_adaptive_scale must be positive")
        if len(self.band_weights) != 3 or any(w < 0 for w in self.band_weights):
            raise InvalidConfiguration(f"band_weights must be three non-negative values, got {self.band_weights}")
        if self.onset_gain_half_life <= 0 or self.onset_gain_floor <= 0:
            raise InvalidConfiguration("onset_gain_half_life and onset_gain_floor must be positive")
        validate_particle_setup(self.particle_count, self.tempo_range)
        for name in ("beat_threshold", "downbeat_threshold", "resample_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidConfiguration(f"{name} must be within [0, 1], got {value}")
        if not 0.0 < self.phase_tolerance <= 0.125:
            # Wider windows would overlap on the quarter-beat grid.
            raise InvalidConfiguration(f"phase_tolerance must be within (0, 0.125], got {self.phase_tolerance}")
        if self.beats_per_bar < 1:
            raise InvalidConfiguration(f"beats_per_bar must be at least 1, got {self.beats_per_bar}")
        if self.tempo_jitter < 0:
            raise InvalidConfiguration("tempo_jitter must not be negative")
        validate_tempo_step(self.hop_duration, self.tempo_range[1])
        return self


def validate_particle_setup(particle_count: int, tempo_range: tuple[float, float]) -> None:
    """Check the arguments accepted by the particle filter's ``initialize``."""
    if particle_count < 1:
        raise InvalidConfiguration(f"particle_count must be at least 1, got {particle_count}")
    try:
        low, high = tempo_range
    except (TypeError, ValueError):
        raise InvalidConfiguration(f"tempo_range must be a (min, max) pair, got {tempo_range!r}") from None
    if not low > 0 or not high > low:
        raise InvalidConfiguration(f"tempo_range must satisfy 0 < min < max, got {tempo_range!r}")


def validate_tempo_step(hop_duration: float, max_bpm: float) -> None:
    """The fastest tempo must move the phase by less than half a beat per hop."""
    max_step = hop_duration * max_bpm / 60.0
    if max_step >= 0.5:
        raise InvalidConfiguration(
            f"hop of {hop_duration * 1000.0:.1f} ms is too long for {max_bpm:.0f} BPM "
            f"(phase advances {max_step:.2f} beats per hop)"
        )
