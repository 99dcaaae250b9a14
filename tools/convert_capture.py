# tools/convert_capture.py
"""
Convert a recorded media-stream capture (JSON array) into a WAV file.

    python tools/convert_capture.py capture_MZ123.json call.wav --gain 2.0
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from constants import TELEPHONY_SAMPLE_RATE_HZ
from session.capture import CaptureError, analyze_capture, capture_to_wav, load_capture


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("input", type=Path, help="capture JSON file")
    parser.add_argument("output", type=Path, help="WAV file to write")
    parser.add_argument("--gain", type=float, default=1.0, help="linear gain applied to PCM samples")
    parser.add_argument(
        "--sample-rate",
        type=int,
        default=TELEPHONY_SAMPLE_RATE_HZ,
        help="output sample rate; anything but 8000 is resampled",
    )
    parser.add_argument("--track", default=None, help="keep only this media track (e.g. inbound)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        messages = load_capture(args.input)
        analysis = analyze_capture(messages)
        print(json.dumps(analysis.as_dict(), indent=2))

        conversion = capture_to_wav(
            messages,
            gain=args.gain,
            sample_rate_hz=args.sample_rate,
            track=args.track,
        )
    except (CaptureError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(bytes(conversion.artifact))

    print(
        f"wrote {args.output}: {conversion.frames} frames, "
        f"{conversion.duration_seconds:.2f}s, "
        f"{conversion.malformed} malformed, {conversion.gap_count} sequence gaps"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
