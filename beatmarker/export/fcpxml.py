"""FCPXML 1.10 marker export for Final Cut Pro."""

import logging
import re
import xml.etree.ElementTree as ET

from beatmarker.export.markers import MarkerData

logger = logging.getLogger(__name__)

FCPXML_VERSION = "1.10"
FORMAT_ID = "BMXRefTimelineFormat"
FORMAT_NAME = "FFVideoFormat1080p25"
FRAME_DURATION = "1000/25000s"
ASSET_ID = "ASSET_BMXRefBeatmarkedClip"
AUDIO_RATE = "48000"
MARKER_DURATION = "1/48000s"
TIMELINE_FRAME_RATE = 25


def seconds_to_fraction(seconds: float, frame_rate: int = TIMELINE_FRAME_RATE) -> str:
    """Encode seconds as an FCPXML rational time, e.g. 2.4 -> ``"60/25s"``."""
    if seconds < 0:
        raise ValueError(f"time must not be negative, got {seconds}")
    frames = int(seconds * frame_rate + 0.5)
    return f"{frames}/{frame_rate}s"


def fcpxml_file_name(audio_file_name: str) -> str:
    """``song.wav`` -> ``song_beatmarkers.fcpxml``."""
    stem = re.sub(r"\.[^/.]+$", "", audio_file_name)
    return f"{stem}_beatmarkers.fcpxml"


def generate_fcpxml(
    markers: list[MarkerData],
    audio_file_name: str,
    duration: float,
    event_name: str | None = None,
) -> str:
    """Build the FCPXML document referencing ``audio_file_name``.

    The audio file is referenced by name only, so the .fcpxml has to be
    saved next to it for Final Cut Pro to relink the media.
    """
    clip_duration = seconds_to_fraction(duration)

    root = ET.Element("fcpxml", version=FCPXML_VERSION)
    resources = ET.SubElement(root, "resources")
    ET.SubElement(
        resources, "format",
        id=FORMAT_ID, name=FORMAT_NAME, frameDuration=FRAME_DURATION,
        width="1920", height="1080", colorSpace="1-1-1 (Rec. 709)",
    )
    asset = ET.SubElement(
        resources, "asset",
        id=ASSET_ID, name=audio_file_name, start="0/1s", duration=clip_duration,
        hasAudio="1", audioSources="1", audioRate=AUDIO_RATE,
    )
    ET.SubElement(asset, "media-rep", kind="original-media", src=audio_file_name)

    library = ET.SubElement(root, "library")
    event = ET.SubElement(library, "event", name=event_name or f"Beat Analysis - {audio_file_name}")
    clip = ET.SubElement(
        event, "asset-clip",
        ref=ASSET_ID, name=audio_file_name, duration=clip_duration,
        audioRole="music", format=FORMAT_ID,
    )
    for marker in markers:
        ET.SubElement(
            clip, "marker",
            start=seconds_to_fraction(marker.start), duration=MARKER_DURATION, value=marker.value,
        )

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    logger.info(f"Generated FCPXML with {len(markers)} markers for {audio_file_name}")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE fcpxml>\n{body}\n'


def validate_fcpxml(text: str) -> bool:
    """Check that ``text`` parses and declares the expected FCPXML version."""
    try:
        root = ET.fromstring(text.encode("utf-8"))
    except ET.ParseError as e:
        logger.error(f"FCPXML does not parse: {e}")
        return False
    if root.tag != "fcpxml" or root.get("version") != FCPXML_VERSION:
        logger.error(f"Unexpected FCPXML root: <{root.tag} version={root.get('version')!r}>")
        return False
    return True
