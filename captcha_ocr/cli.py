"""CAPTCHA OCR solver command line."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from captcha_ocr.core.config import settings
from captcha_ocr.core.errors import DecodeError
from captcha_ocr.core.logging import configure_logging


def _cmd_solve(args: argparse.Namespace) -> int:
    from captcha_ocr.ocr.factory import get_ocr_engine
    from captcha_ocr.pipeline.pipeline import CaptchaPipeline

    try:
        image_bytes = Path(args.image).read_bytes()
    except OSError as exc:
        logging.error("Cannot read %s: %s", args.image, exc)
        return 1

    pipeline = CaptchaPipeline.from_settings(get_ocr_engine(args.provider))
    try:
        solution = asyncio.run(pipeline.solve(image_bytes))
    except DecodeError as exc:
        logging.error("%s", exc)
        return 1

    if args.json:
        payload = asdict(solution)
        payload["alternatives"] = list(solution.alternatives)
        print(json.dumps(payload))
    else:
        print(solution.text)
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("captcha_ocr.main:app", host=args.host, port=args.port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="captcha-ocr", description="Read short alphanumeric CAPTCHA tokens")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command", required=True)

    solve = sub.add_parser("solve", help="Solve a CAPTCHA image file")
    solve.add_argument("image", help="Path to the image file")
    solve.add_argument(
        "--provider",
        default=None,
        help="OCR provider: mock | tesseract (default: OCR_PROVIDER setting)",
    )
    solve.add_argument("--json", action="store_true", help="Print text, confidence and alternatives as JSON")
    solve.set_defaults(func=_cmd_solve)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    serve.set_defaults(func=_cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # stdout carries the solution itself
    configure_logging(args.log_level, settings.log_format, stream=sys.stderr)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
