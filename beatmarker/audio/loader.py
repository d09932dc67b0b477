"""Decode audio files for batch tracking."""

from __future__ import annotations

from pathlib import Path

import librosa
import numpy as np


def load_audio(source: str | Path, sr: int) -> tuple[np.ndarray, int]:
    """Decode ``source`` to mono float32 PCM resampled to the tracker's rate."""
    audio, sample_rate = librosa.load(source, sr=sr, mono=True)
    return audio.astype(np.float32, copy=False), int(sample_rate)
