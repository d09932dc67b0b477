"""Audio preprocessing utilities."""

from __future__ import annotations

import numpy as np
from scipy.signal import butter, sosfilt


def downmix(block: np.ndarray, channels: int = 1) -> np.ndarray:
    """Average interleaved channels into a mono float32 block.

    ``block`` may be flat interleaved samples (``L R L R ...``) or a
    ``(frames, channels)`` array. A trailing partial frame is discarded.
    """
    if channels < 1:
        raise ValueError(f"channels must be at least 1, got {channels}")
    block = np.asarray(block, dtype=np.float32)
    if block.ndim == 2:
        return block.mean(axis=1, dtype=np.float32)
    block = block.ravel()
    if channels == 1:
        return block
    n_frames = len(block) // channels
    return block[:n_frames * channels].reshape(n_frames, channels).mean(axis=1, dtype=np.float32)


def normalize(audio: np.ndarray) -> np.ndarray:
    """Scale so the loudest sample sits at 1.0; silence passes through."""
    peak = float(np.max(np.abs(audio))) if len(audio) else 0.0
    if peak == 0.0:
        return audio
    return audio / peak


def high_pass_filter(audio: np.ndarray, sr: int, cutoff: float) -> np.ndarray:
    # Rumble below the cutoff would otherwise dominate the low-band flux.
    if not 0.0 < cutoff < sr / 2.0:
        raise ValueError(f"cutoff must be between 0 and {sr / 2.0:.0f} Hz, got {cutoff}")
    sos = butter(N=4, Wn=cutoff, btype="high", fs=sr, output="sos")
    return sosfilt(sos, audio)


def preprocess(audio: np.ndarray, sr: int, highpass_cutoff: float | None = None) -> np.ndarray:
    """Normalize, then high-pass filter when a cutoff is given."""
    audio = normalize(audio)
    if highpass_cutoff:
        audio = high_pass_filter(audio, sr, cutoff=highpass_cutoff)
    return np.asarray(audio, dtype=np.float32)
