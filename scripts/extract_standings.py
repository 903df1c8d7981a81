#!/usr/bin/env python3
"""
Extract a league standings ranking from a screenshot.

Tries the remote recognition service first, then local EasyOCR, and falls
back to a mock roster when neither yields enough teams. Prints the ranking
table followed by the JSON payload handed to downstream consumers.
An OCR pass that overruns ``ocr_timeout`` is left on a daemon thread and
does not hold up exit.

Usage:
    # Remote service + OCR fallback
    python scripts/extract_standings.py standings.png --season 2025

    # Local OCR only, save the conditioned image for inspection
    python scripts/extract_standings.py standings.png --no-remote \\
        --debug-dir output/debug_standings

    # Load tunables from a JSON config, write the payload to a file
    python scripts/extract_standings.py standings.png --config extractor.json \\
        --output output/rankings.json
"""

import argparse
import logging
import sys
from pathlib import Path

from standingscan.conditioning import ImageConditioner
from standingscan.pipeline import (
    ConfigError,
    ExtractorConfig,
    NoImageError,
    StandingsExtractor,
)


def save_conditioned(extractor: StandingsExtractor, image_path: Path, debug_dir: Path) -> Path:
    """Write the conditioned image used for OCR next to other debug output."""
    debug_dir.mkdir(parents=True, exist_ok=True)
    conditioner: ImageConditioner = extractor.conditioner
    out = debug_dir / f"{image_path.stem}__conditioned.png"
    out.write_bytes(conditioner.condition(image_path.read_bytes()))
    return out


def main() -> int:
    parser = argparse.ArgumentParser(description="Extract standings from a screenshot")
    parser.add_argument("image", type=str, help="Standings screenshot")
    parser.add_argument("--season", type=str, default="", help="Season/year tag")
    parser.add_argument("--config", type=str, default=None, help="JSON config file")
    parser.add_argument("--remote-url", type=str, default=None, help="Recognition endpoint")
    parser.add_argument("--no-remote", action="store_true", help="Skip the remote service")
    parser.add_argument("--deadline", type=float, default=None, help="Overall time budget (s)")
    parser.add_argument("--gpu", action="store_true", help="Run EasyOCR on GPU")
    parser.add_argument("--output", type=str, default=None, help="Write JSON payload here")
    parser.add_argument("--debug-dir", type=str, default=None, help="Save conditioned image")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "remote_url": args.remote_url,
        "deadline": args.deadline,
        "use_gpu": True if args.gpu else None,
    }
    try:
        if args.config:
            config = ExtractorConfig.from_file(args.config, **overrides)
        else:
            config = ExtractorConfig(**{k: v for k, v in overrides.items() if v is not None})
    except (ConfigError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if args.no_remote:
        config.remote_url = None

    extractor = StandingsExtractor(config)
    try:
        result = extractor.extract(args.image, args.season)
    except NoImageError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.debug_dir:
        out = save_conditioned(extractor, Path(args.image), Path(args.debug_dir))
        print(f"Conditioned image saved: {out}")

    print(f"\nSource: {result.source.value} ({len(result)} teams)")
    for stage, reason in result.degraded:
        print(f"  skipped {stage.value}: {reason}")
    print()
    for entry in result:
        print(f"{entry.rank:>3}  {entry.team:<30} {entry.record}")
    print()

    payload = result.to_json()
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(payload, encoding="utf-8")
        print(f"Saved: {out_path}")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
