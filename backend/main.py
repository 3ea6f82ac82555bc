from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

# Support direct script execution (python backend/main.py) by adding repo root.
if __package__ in {None, ""}:
    _repo_root = Path(__file__).resolve().parents[1]
    _repo_root_str = str(_repo_root)
    if _repo_root_str not in sys.path:
        sys.path.insert(0, _repo_root_str)

from header_remover.config import load_config
from header_remover.controller import HeaderRemovalController, Notification
from header_remover.error_handling import UserFacingError
from header_remover.preview import InPlacePreviewFactory
from header_remover.structured_logging import StructuredLogger
from header_remover.submission import (
    DEFAULT_BAND_MM,
    DEFAULT_MARGIN_MM,
    SubmissionParameters,
)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.input:
        parser.print_usage(sys.stderr)
        print("error: --input is required", file=sys.stderr)
        return 2

    try:
        header_text = _collect_header_text(args.header_text, args.header_file)
    except UserFacingError as error:
        _print_user_facing_error(error)
        return 2

    config = load_config()
    overrides: dict[str, object] = {}
    if args.api_url:
        overrides["api_base_url"] = args.api_url.rstrip("/")
    if args.timeout is not None and args.timeout > 0:
        overrides["timeout_seconds"] = args.timeout
    if args.output_dir:
        overrides["download_dir"] = Path(args.output_dir).expanduser()
    if args.log_dir:
        overrides["log_dir"] = Path(args.log_dir).expanduser()
    config = replace(config, **overrides)

    logger = StructuredLogger.from_config("cli", config)
    notifications: list[Notification] = []
    controller = HeaderRemovalController(
        config,
        notifier=notifications.append,
        preview_factory=InPlacePreviewFactory(),
        logger=logger,
    )
    try:
        controller.select_file(args.input)
        params = SubmissionParameters(
            header_text=header_text,
            band_mm=args.band_mm,
            margin_mm=args.margin_mm,
            ignore_case=args.ignore_case,
        )
        outcome = asyncio.run(controller.submit(params))
    finally:
        controller.teardown()
        logger.close()

    for notification in notifications:
        stream = sys.stdout if notification.level == "success" else sys.stderr
        prefix = "" if notification.level == "success" else "error: "
        print(f"{prefix}{notification.message}", file=stream)
    if outcome is not None and outcome.succeeded:
        return 0
    return 1


def _collect_header_text(values: list[str] | None, header_file: str | None) -> str:
    lines = list(values or [])
    if header_file:
        path = Path(header_file).expanduser()
        try:
            lines.extend(path.read_text(encoding="utf-8").splitlines())
        except OSError as exc:
            raise UserFacingError(
                title="Header file unreadable",
                summary=f"Could not read header texts from {path}: {exc}",
                suggested_fixes=("Pass header texts with --header-text instead.",),
                error_code="CLI-001",
                can_retry=False,
            ) from exc
    return "\n".join(lines)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Strip header text from a PDF using the header removal service.",
        epilog=(
            "Example: python backend/main.py --input report.pdf "
            "--header-text \"ACME Corp\" --header-text CONFIDENTIAL --band-mm 30"
        ),
    )
    parser.add_argument("--input", default=None, help="PDF file to process.")
    parser.add_argument(
        "--header-text",
        action="append",
        help="Header text to remove. Repeat for multiple texts.",
    )
    parser.add_argument(
        "--header-file",
        default=None,
        help="Text file with one header text per line.",
    )
    parser.add_argument(
        "--band-mm",
        type=float,
        default=DEFAULT_BAND_MM,
        help="Height of the top band searched for headers, 5-120 mm (default: 25).",
    )
    parser.add_argument(
        "--margin-mm",
        type=float,
        default=DEFAULT_MARGIN_MM,
        help="Left/right margin excluded from the search, 0-40 mm (default: 0).",
    )
    parser.add_argument(
        "--ignore-case",
        action="store_true",
        help="Match header texts case-insensitively.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for the result. Defaults to the user's downloads folder.",
    )
    parser.add_argument("--api-url", default=None, help="Base URL of the service.")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds.")
    parser.add_argument("--log-dir", default=None, help="Directory for structured logs.")
    return parser


def _print_user_facing_error(error: UserFacingError) -> None:
    print(f"{error.title}: {error.summary}", file=sys.stderr)
    for fix in error.suggested_fixes:
        print(f"- {fix}", file=sys.stderr)
    print(f"Error code: {error.error_code}", file=sys.stderr)


if __name__ == "__main__":
    raise SystemExit(main())
