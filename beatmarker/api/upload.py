"""File upload endpoints for beat analysis and marker export."""

import logging
import os
import tempfile

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import Response

from beatmarker.analysis.engine import AnalysisEngine
from beatmarker.analysis.models import BeatEvent, TrackingResult
from beatmarker.api.schemas import AnalysisResponse, BeatEventResponse, MarkerResponse
from beatmarker.config import settings
from beatmarker.errors import InvalidConfiguration
from beatmarker.export.fcpxml import fcpxml_file_name, generate_fcpxml
from beatmarker.export.markers import generate_markers

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aac"}


def event_to_response(event: BeatEvent) -> BeatEventResponse:
    return BeatEventResponse(
        timestamp=event.timestamp,
        is_beat=event.is_beat,
        is_downbeat=event.is_downbeat,
        tempo_estimate=round(event.tempo_estimate, 2),
        confidence=round(event.confidence, 4),
        beat_index=event.beat_index,
    )


def result_to_response(result: TrackingResult, downbeats_only: bool = False) -> AnalysisResponse:
    markers = generate_markers(result, downbeats_only=downbeats_only)
    return AnalysisResponse(
        bpm=result.bpm,
        tempo_confidence=result.tempo_confidence,
        meter=result.meter,
        duration=result.duration,
        beats=[event_to_response(e) for e in result.events],
        markers=[
            MarkerResponse(start=m.start, value=m.value, is_downbeat=m.is_downbeat, beat_index=m.beat_index)
            for m in markers
        ],
        total_beats=len(result.events),
        total_downbeats=len(result.downbeats),
        dropped_samples=result.dropped_samples,
    )


def _extension(filename: str | None) -> str:
    if filename and "." in filename:
        return "." + filename.rsplit(".", 1)[-1].lower()
    return ""


async def _analyze_upload(file: UploadFile) -> TrackingResult:
    ext = _extension(file.filename)
    if ext and ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    content = await file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    tmp_path = None
    try:
        # librosa needs a file path for some formats
        with tempfile.NamedTemporaryFile(suffix=ext, delete=False) as tmp:
            tmp.write(content)
            tmp_path = tmp.name
        return AnalysisEngine().analyze_file(tmp_path)
    except InvalidConfiguration as e:
        raise HTTPException(400, str(e))
    except Exception:
        logger.exception(f"Analysis failed for {file.filename!r}")
        raise HTTPException(500, "Analysis failed")
    finally:
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(file: UploadFile = File(...), downbeats_only: bool = False):
    """Track beats in an uploaded audio file."""
    result = await _analyze_upload(file)
    return result_to_response(result, downbeats_only=downbeats_only)


@router.post("/export/fcpxml")
async def export_fcpxml(file: UploadFile = File(...), downbeats_only: bool = False):
    """Track beats and return them as an FCPXML marker document."""
    result = await _analyze_upload(file)
    audio_name = os.path.basename(file.filename or "audio.wav")
    document = generate_fcpxml(
        generate_markers(result, downbeats_only=downbeats_only),
        audio_name,
        result.duration,
    )
    return Response(
        content=document,
        media_type="application/xml",
        headers={"Content-Disposition": f'attachment; filename="{fcpxml_file_name(audio_name)}"'},
    )
