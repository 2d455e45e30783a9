"""Scan California ZIP codes against the Holosun dealer locator.

Sub-commands:

* ``start``: run the background scan, writing unique dealers incrementally to
  the output CSV while logging job status every ``--status-interval`` seconds.
* ``test``: scan a short list of ZIPs in the foreground and print a summary.
* ``debug``: resolve a single ZIP and print the raw dealer records.

Example:
    python scripts/scan_dealers.py start --skip 5
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from holosun_scan.errors import InvalidInput, ScanError
from holosun_scan.orchestrator import ScanOrchestrator
from holosun_scan.resolver import HolosunResolver, load_work_list, load_zip_centroids
from holosun_scan.service import ScanService
from holosun_scan.settings import (
    DEFAULT_CATEGORY,
    DEFAULT_DISTANCE,
    DEFAULT_OUTPUT_PATH,
    DEFAULT_STATUS_INTERVAL,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    DEFAULT_ZIP_CSV,
    TEST_SCAN_SIZE,
    ScanSettings,
)
from holosun_scan.writer import IncrementalWriter

LOGGER = logging.getLogger("holosun.cli")


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument(
        "--zip-csv",
        type=Path,
        default=DEFAULT_ZIP_CSV,
        help="CSV file containing the ordered ZIP list (and optional centroids).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT_PATH,
        help="CSV file receiving unique dealers; truncated when a scan starts.",
    )
    parser.add_argument(
        "--distance",
        type=int,
        default=DEFAULT_DISTANCE,
        help="Distance radius parameter submitted with each request.",
    )
    parser.add_argument(
        "--category",
        default=DEFAULT_CATEGORY,
        help="Holosun category parameter (defaults to 'both').",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help="HTTP timeout in seconds.",
    )
    parser.add_argument(
        "--user-agent",
        default=DEFAULT_USER_AGENT,
        help="User-Agent header to use for requests.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="run the full background scan")
    start_parser.add_argument(
        "--skip",
        type=positive_int,
        default=1,
        help="Process every Nth ZIP code; adjacent ZIPs overlap heavily at a 100-mile radius.",
    )
    start_parser.add_argument(
        "--status-interval",
        type=float,
        default=DEFAULT_STATUS_INTERVAL,
        help="Seconds between status log lines while the scan runs.",
    )

    test_parser = subparsers.add_parser("test", help="scan a few ZIPs and print a summary")
    test_parser.add_argument(
        "--zip",
        dest="zip_codes",
        action="append",
        help="ZIP code to include (repeatable, comma separated allowed). Defaults to the first ZIPs of the list.",
    )
    test_parser.add_argument(
        "--limit",
        type=positive_int,
        default=TEST_SCAN_SIZE,
        help="Number of leading ZIPs to use when --zip is not given.",
    )

    debug_parser = subparsers.add_parser("debug", help="resolve one ZIP and print raw dealers")
    debug_parser.add_argument("zip_code", help="5-digit ZIP code to query.")
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
    )


def build_settings(args: argparse.Namespace) -> ScanSettings:
    return ScanSettings(
        output_path=args.output,
        zip_csv=args.zip_csv,
        test_scan_size=getattr(args, "limit", TEST_SCAN_SIZE),
        distance=args.distance,
        category=args.category,
        timeout=args.timeout,
        user_agent=args.user_agent,
        status_interval=getattr(args, "status_interval", DEFAULT_STATUS_INTERVAL),
    )


def build_service(settings: ScanSettings, work_items: List[str], centroids: Dict[str, Any]) -> ScanService:
    resolver = HolosunResolver(settings, centroids=centroids)
    orchestrator = ScanOrchestrator(
        resolver,
        work_items,
        IncrementalWriter(settings.output_path),
        request_delay=settings.request_delay,
    )
    return ScanService(orchestrator, settings)


def expand_zip_args(zip_args: Optional[List[str]]) -> List[str]:
    selected: List[str] = []
    for entry in zip_args or []:
        selected.extend(code.strip() for code in entry.split(",") if code.strip())
    return selected


async def run_background_scan(service: ScanService, sparsify: int, status_interval: float) -> int:
    response = service.start_scan(sparsify)
    LOGGER.info("Start response: %s", json.dumps(response, indent=2))
    if not response["accepted"]:
        return 1

    task = service.orchestrator.task
    while task is not None and not task.done():
        await asyncio.wait({task}, timeout=status_interval)
        progress = service.get_status()["progress"]
        LOGGER.info(
            "Status: %s/%s ZIPs (%s) | current=%s | dealers=%s | errors=%s",
            progress["processed_zip_codes"],
            progress["total_zip_codes"],
            progress["percent_complete"],
            progress["current_zip"],
            progress["dealers_found"],
            progress["errors"],
        )
    if task is not None:
        task.result()

    status = service.get_status()
    LOGGER.info("Final status: %s", json.dumps(status, indent=2))
    if status["progress"]["write_errors"]:
        LOGGER.error(
            "%d batches failed to persist; %s is incomplete",
            status["progress"]["write_errors"],
            service.settings.output_path,
        )
        return 1
    return 0


async def dispatch(args: argparse.Namespace, service: ScanService) -> int:
    if args.command == "start":
        return await run_background_scan(service, args.skip, service.settings.status_interval)
    if args.command == "test":
        work_list = expand_zip_args(args.zip_codes) or None
        summary = await service.run_test_scan(work_list)
        print(json.dumps(summary, indent=2, ensure_ascii=False))
        return 0
    result = await service.debug_one(args.zip_code)
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    settings = build_settings(args)

    try:
        work_items = load_work_list(settings.zip_csv)
        centroids = load_zip_centroids(settings.zip_csv)
    except (FileNotFoundError, InvalidInput) as exc:
        LOGGER.error("Failed to load ZIP list: %s", exc)
        return 2

    service = build_service(settings, work_items, centroids)
    try:
        return asyncio.run(dispatch(args, service))
    except InvalidInput as exc:
        LOGGER.error("%s", exc)
        return 2
    except ScanError as exc:
        LOGGER.error("Scan failed: %s", exc)
        return 1
    finally:
        service.orchestrator.resolver.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
