"""Command line beat tracking and FCPXML export.

Usage:
    beatmarker song.wav                      # print beats
    beatmarker song.wav --fcpxml             # write song_beatmarkers.fcpxml next to it
    beatmarker song.wav --beats-per-bar 3 --seed 7 --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from beatmarker.analysis.engine import AnalysisEngine
from beatmarker.config import TrackerConfig, settings
from beatmarker.errors import InvalidConfiguration
from beatmarker.export.fcpxml import fcpxml_file_name, generate_fcpxml
from beatmarker.export.markers import generate_markers

logger = logging.getLogger("beatmarker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track beats and down-beats in an audio file.")
    parser.add_argument("audio", type=Path, help="Audio file to analyze")
    parser.add_argument("--fcpxml", nargs="?", const="", default=None, metavar="PATH",
                        help="Write FCPXML markers (default: <stem>_beatmarkers.fcpxml beside the audio)")
    parser.add_argument("--downbeats-only", action="store_true", help="Only export down-beat markers")
    parser.add_argument("--json", action="store_true", help="Print events as JSON")
    parser.add_argument("--particles", type=int, default=None, help="Particle count")
    parser.add_argument("--min-bpm", type=float, default=None)
    parser.add_argument("--max-bpm", type=float, default=None)
    parser.add_argument("--beats-per-bar", type=int, default=None)
    parser.add_argument("--onset-mode", choices=["rms", "stft"], default=None)
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _config_from_args(args) -> TrackerConfig:
    overrides = {}
    if args.particles is not None:
        overrides["particle_count"] = args.particles
    if args.min_bpm is not None or args.max_bpm is not None:
        overrides["tempo_range"] = (
            args.min_bpm if args.min_bpm is not None else settings.min_bpm,
            args.max_bpm if args.max_bpm is not None else settings.max_bpm,
        )
    if args.beats_per_bar is not None:
        overrides["beats_per_bar"] = args.beats_per_bar
    if args.onset_mode is not None:
        overrides["onset_mode"] = args.onset_mode
    if args.seed is not None:
        overrides["seed"] = args.seed
    return TrackerConfig.from_settings(**overrides).validate()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(name)s %(levelname)s: %(message)s",
    )

    if not args.audio.is_file():
        print(f"error: {args.audio} not found", file=sys.stderr)
        return 2
    try:
        config = _config_from_args(args)
    except InvalidConfiguration as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    result = AnalysisEngine(config).analyze_file(str(args.audio))

    if args.json:
        print(json.dumps({
            "bpm": result.bpm,
            "meter": result.meter,
            "duration": round(result.duration, 3),
            "beats": [
                {"time": round(e.timestamp, 4), "downbeat": e.is_downbeat,
                 "tempo": round(e.tempo_estimate, 1), "confidence": round(e.confidence, 3)}
                for e in result.events
            ],
        }, indent=2))
    else:
        for e in result.events:
            marker = "*" if e.is_downbeat else " "
            print(f"{e.timestamp:9.3f}s {marker} {e.tempo_estimate:6.1f} BPM  conf={e.confidence:.2f}")
        print(f"{len(result.events)} beats, {len(result.downbeats)} down-beats, "
              f"{result.bpm:.1f} BPM, {result.meter}")

    if args.fcpxml is not None:
        out = Path(args.fcpxml) if args.fcpxml else args.audio.with_name(fcpxml_file_name(args.audio.name))
        markers = generate_markers(result, downbeats_only=args.downbeats_only)
        out.write_text(generate_fcpxml(markers, args.audio.name, result.duration), encoding="utf-8")
        logger.info(f"Wrote {len(markers)} markers to {out}")
        if out.parent.resolve() != args.audio.parent.resolve():
            logger.warning("Final Cut Pro expects the .fcpxml in the same folder as the audio file")

    return 0


if __name__ == "__main__":
    sys.exit(main())
