"""Command line for the device-side scan flow.

    bodyscan estimate --front front.jpg --side side.jpg --height 170 --gender female
    bodyscan scan http://localhost:8000 Ab3dEf7h --front front.jpg --height 170
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from bodyscan import __version__
from bodyscan.errors import BodyScanError, CalibrationError, DetectionError
from bodyscan.gate import ConfidenceGate, GateDecision, GuestIdentity
from bodyscan.landmarks import LandmarkProvider
from bodyscan.pipeline import ScanClient, ScanPipeline
from bodyscan.profiles import GENDERS
from utils.postprocess import format_decision

logger = logging.getLogger(__name__)

# Exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_RETAKE = 2
EXIT_NEEDS_REVIEW = 3


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bodyscan",
        description="Body measurements from a front and side photo.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr.")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_photo_args(parser: argparse.ArgumentParser, gender_required: bool) -> None:
        parser.add_argument("--front", required=True, type=Path, help="Front photo (full body, facing camera).")
        parser.add_argument("--side", type=Path, default=None, help="Side photo (optional, improves girths).")
        parser.add_argument("--height", required=True, type=float, help="Height in cm.")
        parser.add_argument("--gender", choices=GENDERS, required=gender_required, default=None)
        parser.add_argument("--threshold", type=float, default=None, help="Override the confidence threshold.")

    p_est = sub.add_parser("estimate", help="Estimate measurements locally and print them as JSON")
    add_photo_args(p_est, gender_required=True)

    p_scan = sub.add_parser("scan", help="Run the full scan flow against a gateway")
    p_scan.add_argument("url", help="Gateway base URL")
    p_scan.add_argument("code", help="Link code from the scan link")
    add_photo_args(p_scan, gender_required=False)
    choice = p_scan.add_mutually_exclusive_group()
    choice.add_argument(
        "--accept-anyway",
        action="store_true",
        help="Submit a low-confidence estimate as-is (flagged for the designer).",
    )
    choice.add_argument(
        "--manual",
        nargs="+",
        metavar="NAME=VALUE",
        default=None,
        help="Enter measurements by hand when confidence is low, e.g. waist=72 hips=98.",
    )
    p_scan.add_argument("--guest-name", default=None, help="Your name (quick scans only).")
    p_scan.add_argument("--guest-phone", default=None)
    p_scan.add_argument("--guest-gender", choices=GENDERS, default=None)

    return p


def build_provider() -> LandmarkProvider:
    # MediaPipe is heavy; only load it when photos are actually processed
    from bodyscan.pose import MediaPipeLandmarkProvider

    return MediaPipeLandmarkProvider()


def parse_manual(pairs: List[str]) -> Dict[str, str]:
    values = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {pair!r}")
        values[name.strip()] = value.strip()
    return values


def _print(data) -> None:
    print(json.dumps(data, indent=2))


def _analyze(args, provider: LandmarkProvider, gender: str) -> GateDecision:
    pipeline = ScanPipeline(provider, gate=ConfidenceGate(args.threshold))
    side = args.side.read_bytes() if args.side else None
    return pipeline.analyze(args.front.read_bytes(), args.height, gender, side_image=side)


def run_estimate(args, provider: LandmarkProvider) -> int:
    try:
        decision = _analyze(args, provider, args.gender)
    except (DetectionError, CalibrationError) as exc:
        print(exc.message, file=sys.stderr)
        return EXIT_RETAKE
    _print(format_decision(decision))
    return EXIT_OK if decision.accepted else EXIT_NEEDS_REVIEW


def run_scan(args, provider: LandmarkProvider, client: Optional[ScanClient] = None) -> int:
    client = client or ScanClient(args.url)
    with client:
        info = client.open_session(args.code)

        gender = args.gender or info.client_gender or args.guest_gender
        if gender is None:
            print("Please pass --gender so the right body profile is used.", file=sys.stderr)
            return EXIT_ERROR

        guest = None
        if info.is_quick_scan and args.guest_name:
            guest = GuestIdentity(args.guest_name, args.guest_phone, args.guest_gender or gender)

        client.start(args.code)

        try:
            decision = _analyze(args, provider, gender)
        except (DetectionError, CalibrationError) as exc:
            # Nothing was written; the link stays usable for another attempt
            print(exc.message, file=sys.stderr)
            return EXIT_RETAKE

        gate = ConfidenceGate(decision.threshold)
        if decision.accepted:
            if args.manual or args.accept_anyway:
                print(
                    "Confidence is high enough; submitting the estimate and ignoring "
                    "--manual / --accept-anyway.",
                    file=sys.stderr,
                )
            submission = gate.submission(decision, guest)
        elif args.manual:
            # Typed values override the pre-filled derived ones
            values = gate.manual_form(decision)
            values.update(parse_manual(args.manual))
            submission = gate.submit_manual(decision, values, guest)
        elif args.accept_anyway:
            submission = gate.accept_anyway(decision, guest)
        else:
            _print(format_decision(decision))
            print(gate.retry(decision).message, file=sys.stderr)
            print(
                "Confidence is low. Retake the photos, or rerun with --accept-anyway "
                "or --manual NAME=VALUE ...",
                file=sys.stderr,
            )
            return EXIT_NEEDS_REVIEW

        result = client.submit(args.code, submission)
    _print(result.to_json())
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        if args.cmd == "estimate":
            return run_estimate(args, build_provider())
        if args.cmd == "scan":
            return run_scan(args, build_provider())
    except BodyScanError as exc:
        print(exc.message, file=sys.stderr)
        return EXIT_ERROR
    except argparse.ArgumentTypeError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_ERROR
    except httpx.TransportError as exc:
        print(f"Could not reach the scan service: {exc}. Please try again.", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
