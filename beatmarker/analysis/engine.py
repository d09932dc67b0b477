"""Batch analysis: replay a whole buffer or file through a fresh session."""

import logging

import numpy as np

from beatmarker.analysis.models import TrackingResult
from beatmarker.analysis.session import TrackerSession
from beatmarker.analysis.tempo import estimate_from_ibi, mean_tempo_estimate
from beatmarker.audio.loader import load_audio
from beatmarker.audio.preprocessing import preprocess
from beatmarker.config import TrackerConfig

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """Runs the streaming tracker in one-shot mode and summarizes the result."""

    def __init__(self, config: TrackerConfig | None = None):
        self.config = (config or TrackerConfig.from_settings()).validate()

    def analyze_file(self, file_path: str) -> TrackingResult:
        """Analyze an audio file."""
        audio, sr = load_audio(file_path, sr=self.config.sample_rate)
        audio = preprocess(audio, sr, highpass_cutoff=self.config.highpass_cutoff)
        return self.analyze_audio(audio, sr)

    def analyze_audio(self, audio: np.ndarray, sr: int | None = None) -> TrackingResult:
        """Analyze pre-loaded mono audio."""
        config = self.config
        if sr is not None and sr != config.sample_rate:
            config = config.with_overrides(sample_rate=sr).validate()
        duration = len(audio) / config.sample_rate
        logger.info(f"Tracking {duration:.1f}s of audio at {config.sample_rate}Hz")

        session = TrackerSession(config)
        events = list(session.replay(audio))
        downbeats = sum(1 for e in events if e.is_downbeat)
        logger.info(f"  {len(events)} beats, {downbeats} downbeats "
                    f"over {session.frames_processed} frames")
        if session.dropped_samples:
            logger.warning(f"  {session.dropped_samples} samples dropped during replay")

        low, high = config.tempo_range
        ibi = estimate_from_ibi(events, min_bpm=low, max_bpm=high)
        if ibi is not None:
            bpm, confidence = ibi
        else:
            # Too few beats for intervals; fall back to the filter itself.
            bpm = mean_tempo_estimate(events) or round(session.current_tempo(), 1)
            confidence = 0.0

        return TrackingResult(
            events=events,
            bpm=bpm,
            tempo_confidence=confidence,
            beats_per_bar=config.beats_per_bar,
            duration=duration,
            dropped_samples=session.dropped_samples,
            frames_processed=session.frames_processed,
        )
