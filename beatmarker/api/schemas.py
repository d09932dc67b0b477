"""Pydantic response models for API."""

from pydantic import BaseModel


class BeatEventResponse(BaseModel):
    timestamp: float
    is_beat: bool
    is_downbeat: bool
    tempo_estimate: float
    confidence: float
    beat_index: int


class MarkerResponse(BaseModel):
    start: float
    value: str
    is_downbeat: bool
    beat_index: int


class AnalysisResponse(BaseModel):
    bpm: float
    tempo_confidence: float
    meter: str
    duration: float
    beats: list[BeatEventResponse]
    markers: list[MarkerResponse] = []
    total_beats: int = 0
    total_downbeats: int = 0
    dropped_samples: int = 0


# WebSocket message types

class BeatMessage(BaseModel):
    type: str = "beat"
    data: BeatEventResponse


class StatusMessage(BaseModel):
    type: str = "status"
    seconds: float
    frames: int
    tempo: float
    dropped_samples: int = 0
