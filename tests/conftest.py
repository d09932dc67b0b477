"""Shared test fixtures for beat tracker tests."""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from beatmarker.config import TrackerConfig
from beatmarker.main import app


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def generate_click_track(
    bpm: float,
    beats_per_bar: int,
    duration_seconds: float = 10.0,
    sr: int = 44100,
    accent_ratio: float = 2.0,
) -> np.ndarray:
    """Generate a synthetic click track with accented downbeats.

    Returns mono audio at the given sample rate.
    """
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float32)

    beat_interval = 60.0 / bpm  # seconds per beat
    click_duration = 0.02  # 20ms click
    click_samples = int(click_duration * sr)

    # Create click sound (short sine burst with envelope)
    t_click = np.arange(click_samples) / sr
    click = np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)

    beat = 0
    time = 0.0
    while time < duration_seconds:
        sample_pos = int(time * sr)
        is_downbeat = (beat % beats_per_bar) == 0
        amplitude = accent_ratio if is_downbeat else 1.0

        end = min(sample_pos + click_samples, n_samples)
        length = end - sample_pos
        if length > 0:
            audio[sample_pos:end] += click[:length] * amplitude

        time += beat_interval
        beat += 1

    # Normalize
    peak = np.max(np.abs(audio))
    if peak > 0:
        audio = audio / peak

    return audio


def hop_config(**overrides) -> TrackerConfig:
    """Tracker config with 46 ms hops, driven directly with onset values."""
    options = dict(
        sample_rate=1000,
        frame_size=92,
        hop_size=46,
        buffer_capacity=184,
        particle_count=200,
        seed=7,
    )
    options.update(overrides)
    return TrackerConfig(**options).validate()


def spike_train(bpm: float, beats_per_bar: int, duration_seconds: float, hop: float):
    """``(timestamp, onset, downbeat)`` per hop: a full-strength onset on the
    first hop at or after each beat, down-beat evidence on every bar start."""
    beat_interval = 60.0 / bpm
    n_hops = int(duration_seconds / hop)
    next_beat = 0
    for k in range(1, n_hops + 1):
        t = k * hop
        onset = downbeat = 0.0
        if t >= next_beat * beat_interval:
            onset = 1.0
            if next_beat % beats_per_bar == 0:
                downbeat = 1.0
            next_beat += 1
        yield t, onset, downbeat


def pulsing_energy_onsets(frames: int = 217, hop: float = 0.046, seed: int = 0):
    """Onset values summarised from a 272-value feature vector per hop whose
    energy pulses twice a second, with a little noise."""
    rng = np.random.default_rng(seed)
    values = []
    for frame in range(frames):
        t = frame * hop
        rhythm = (t * 2.0) % 1.0
        base = 0.5 + 0.3 * np.sin(2.0 * np.pi * rhythm)
        i = np.arange(272)
        features = base * (1.0 + 0.2 * np.sin(0.1 * i)) + rng.uniform(-0.05, 0.05, 272)
        energy = float(np.clip(np.mean(np.abs(features)) * 2.0, 0.0, 1.0))
        variance = float(np.clip(np.var(features) * 5.0, 0.0, 1.0))
        beat = max(energy, 0.7 * variance)
        values.append((t, beat, 0.3 * beat))
    return values


@pytest.fixture
def click_4_4():
    """Click track in 4/4 at 120 BPM."""
    return generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=10)


@pytest.fixture
def click_3_4():
    """Click track in 3/4 at 100 BPM."""
    return generate_click_track(bpm=100, beats_per_bar=3, duration_seconds=10)
