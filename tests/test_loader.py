"""Tests for decoding audio files."""

import numpy as np
import pytest
import soundfile as sf

from beatmarker.audio.loader import load_audio
from tests.conftest import generate_click_track


def test_load_audio_downmixes_and_resamples(tmp_path):
    clicks = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=2)
    wav_path = tmp_path / "stereo.wav"
    sf.write(str(wav_path), np.stack([clicks, clicks], axis=1), 44100)

    audio, sr = load_audio(wav_path, sr=22050)

    assert sr == 22050
    assert audio.dtype == np.float32
    assert audio.ndim == 1
    assert len(audio) == pytest.approx(2 * 22050, abs=2)
