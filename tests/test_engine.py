"""Integration tests for the analysis engine and the API."""

import json
import xml.etree.ElementTree as ET

import numpy as np
import pytest
import soundfile as sf
from fastapi import WebSocketDisconnect

from beatmarker.analysis.engine import AnalysisEngine
from beatmarker.analysis.models import TrackingResult
from beatmarker.config import TrackerConfig
from tests.conftest import generate_click_track


def _engine(**overrides) -> AnalysisEngine:
    return AnalysisEngine(TrackerConfig(seed=5, **overrides))


def test_analyze_audio_returns_result():
    """Engine should return a valid TrackingResult for a simple click track."""
    audio = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=8)
    result = _engine().analyze_audio(audio, sr=44100)

    assert isinstance(result, TrackingResult)
    assert len(result.events) > 0
    assert 60 <= result.bpm <= 200
    assert 0.0 <= result.tempo_confidence <= 1.0
    assert result.duration == pytest.approx(8.0)
    assert result.meter == "4/4"
    assert result.dropped_samples == 0
    assert result.frames_processed == (len(audio) - 2048) // 512 + 1


def test_beats_are_sorted():
    """Beats should be in chronological order."""
    audio = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=8)
    result = _engine().analyze_audio(audio, sr=44100)

    times = [e.timestamp for e in result.events]
    assert times == sorted(times)


def test_analyze_audio_at_other_sample_rate():
    audio = generate_click_track(bpm=100, beats_per_bar=3, duration_seconds=6, sr=22050)
    result = _engine(beats_per_bar=3).analyze_audio(audio, sr=22050)

    assert result.duration == pytest.approx(6.0)
    assert result.meter == "3/4"
    assert all(e.timestamp <= 6.0 for e in result.events)


def test_analyze_silence():
    result = _engine().analyze_audio(np.zeros(44100 * 2, dtype=np.float32), sr=44100)

    assert result.events == []
    assert result.tempo_confidence == 0.0
    assert 60 <= result.bpm <= 200


def test_analyze_file(tmp_path):
    """Engine should be able to analyze a WAV file from disk."""
    audio = generate_click_track(bpm=100, beats_per_bar=3, duration_seconds=8)
    wav_path = tmp_path / "test.wav"
    sf.write(str(wav_path), audio, 44100)

    result = _engine(beats_per_bar=3).analyze_file(str(wav_path))

    assert isinstance(result, TrackingResult)
    assert result.duration == pytest.approx(8.0, abs=0.01)
    assert len(result.events) > 0


def test_analyze_file_uses_engine_highpass_cutoff(tmp_path, monkeypatch):
    import beatmarker.analysis.engine as engine_module

    cutoffs = []

    def _record(audio, sr, highpass_cutoff=None):
        cutoffs.append(highpass_cutoff)
        return audio

    monkeypatch.setattr(engine_module, "preprocess", _record)
    wav_path = tmp_path / "test.wav"
    sf.write(str(wav_path), generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=2), 44100)

    _engine(highpass_cutoff=80.0).analyze_file(str(wav_path))
    _engine().analyze_file(str(wav_path))

    assert cutoffs == [80.0, None]


def test_api_analyze_endpoint(client, tmp_path):
    """POST /api/analyze should return valid JSON."""
    audio = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=5)
    wav_path = tmp_path / "test.wav"
    sf.write(str(wav_path), audio, 44100)

    with open(wav_path, "rb") as f:
        response = client.post("/api/analyze", files={"file": ("test.wav", f, "audio/wav")})

    assert response.status_code == 200
    data = response.json()
    assert data["bpm"] > 0
    assert data["meter"] == "4/4"
    assert data["total_beats"] == len(data["beats"])
    assert len(data["markers"]) == len(data["beats"])
    assert data["total_downbeats"] == sum(b["is_downbeat"] for b in data["beats"])


def test_api_export_fcpxml(client, tmp_path):
    """POST /api/export/fcpxml should return a marker document to save beside the audio."""
    audio = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=5)
    wav_path = tmp_path / "groove.wav"
    sf.write(str(wav_path), audio, 44100)

    with open(wav_path, "rb") as f:
        response = client.post("/api/export/fcpxml", files={"file": ("groove.wav", f, "audio/wav")})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert 'filename="groove_beatmarkers.fcpxml"' in response.headers["content-disposition"]
    root = ET.fromstring(response.content)
    assert root.get("version") == "1.10"
    assert root.find("resources/asset").get("name") == "groove.wav"


def test_health_endpoint(client):
    """GET /api/health should return ok."""
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_analyze_rejects_oversized_file(client, monkeypatch):
    """Upload endpoint should reject files larger than configured limit."""
    from beatmarker.config import settings

    monkeypatch.setattr(settings, "max_upload_mb", 1)
    payload = b"x" * (1024 * 1024 + 1)

    response = client.post(
        "/api/analyze",
        files={"file": ("big.wav", payload, "audio/wav")},
    )

    assert response.status_code == 400
    assert "File too large" in response.json()["detail"]


def test_api_analyze_rejects_unsupported_format(client):
    response = client.post(
        "/api/analyze",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )

    assert response.status_code == 400
    assert "Unsupported format" in response.json()["detail"]


def test_api_analyze_tempfile_failure_returns_generic_error(client, monkeypatch):
    """Upload endpoint should not leak internal exception details."""
    import beatmarker.api.upload as upload_module

    def _raise_tempfile_error(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(upload_module.tempfile, "NamedTemporaryFile", _raise_tempfile_error)

    response = client.post(
        "/api/analyze",
        files={"file": ("test.wav", b"audio", "audio/wav")},
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Analysis failed"


def _collect(ws) -> list[dict]:
    messages = []
    while True:
        try:
            messages.append(ws.receive_json())
        except WebSocketDisconnect:
            return messages


def test_websocket_live_tracking(client):
    """Streaming float32 PCM should produce beat and status messages."""
    audio = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=6)

    with client.websocket_connect("/api/ws/live?sample_rate=44100") as ws:
        for start in range(0, len(audio), 4096):
            ws.send_bytes(audio[start:start + 4096].astype(np.float32).tobytes())
        ws.send_text(json.dumps({"type": "stop"}))
        messages = _collect(ws)

    beats = [m for m in messages if m["type"] == "beat"]
    statuses = [m for m in messages if m["type"] == "status"]
    assert beats
    assert len(statuses) >= 4
    times = [m["data"]["timestamp"] for m in beats]
    assert times == sorted(times)
    assert all(m["data"]["is_beat"] for m in beats)
    assert statuses[-1]["frames"] > 0


def test_websocket_rejects_invalid_configuration(client):
    with client.websocket_connect("/api/ws/live?beats_per_bar=0") as ws:
        message = ws.receive_json()
        assert message["type"] == "error"
        assert "beats_per_bar" in message["message"]
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()


def test_websocket_survives_malformed_commands(client):
    """Bad text frames get an error reply and tracking carries on."""
    audio = generate_click_track(bpm=120, beats_per_bar=4, duration_seconds=4)

    with client.websocket_connect("/api/ws/live?sample_rate=44100") as ws:
        for text in ("not json", "[1, 2]", json.dumps({"type": "rewind"})):
            ws.send_text(text)
            reply = ws.receive_json()
            assert reply["type"] == "error"

        for start in range(0, len(audio), 4096):
            ws.send_bytes(audio[start:start + 4096].astype(np.float32).tobytes())
        ws.send_text(json.dumps({"type": "stop"}))
        messages = _collect(ws)

    assert any(m["type"] == "status" for m in messages)
    assert all(m["type"] != "error" for m in messages)


def test_websocket_closes_after_processing_failure(client, monkeypatch):
    from beatmarker.analysis.session import TrackerSession

    def _explode(self, block, channels=1):
        raise RuntimeError("forced failure")

    monkeypatch.setattr(TrackerSession, "process", _explode)

    with client.websocket_connect("/api/ws/live") as ws:
        ws.send_bytes(np.zeros(1024, dtype=np.float32).tobytes())
        message = ws.receive_json()
        assert message == {"type": "error", "message": "forced failure"}
        with pytest.raises(WebSocketDisconnect) as excinfo:
            ws.receive_json()
        assert excinfo.value.code == 1011
