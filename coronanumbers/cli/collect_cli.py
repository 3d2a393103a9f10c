"""Collect upstream time series into the local DuckDB store."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from ..collect.config import load
from ..collect.orchestrator import collect
from ..collect.ranges import RequestedMode
from ..common import configure_root_logger, get_logger, write_json

LOGGER = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_PRECHECK = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--all",
        action="store_true",
        help="Request the full history of every country instead of the recent tail",
    )
    parser.add_argument(
        "--bulk-prefetch",
        action="store_true",
        help="With --all, load every timeline with one bulk request first",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="DuckDB URL or path override (default: from config)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of parallel worker threads (default: from config)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to an alternative collect.yml",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("CORONA_LOG_LEVEL", "INFO"),
        help="Set logging level (default: %(default)s)",
    )
    parser.add_argument(
        "--only",
        nargs="+",
        metavar="GEO_ID",
        default=None,
        help="Restrict the run to these geo ids",
    )
    parser.add_argument(
        "--report-json",
        default=None,
        help="Optional path for a JSON copy of the run report",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Stop dequeuing countries after this many seconds",
    )
    return parser


def run(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_root_logger(level=args.log_level)
    LOGGER.setLevel(getattr(logging, str(args.log_level).upper(), logging.INFO))

    config = load(args.config)
    if args.db:
        config.store.db_url = args.db
    if args.workers is not None:
        if args.workers < 1:
            parser.error("--workers must be at least 1")
        config.workers = args.workers
    if args.bulk_prefetch:
        config.bulk_prefetch = True
    if args.only:
        config.only = [geo_id.strip().upper() for geo_id in args.only if geo_id.strip()]

    mode = RequestedMode.ALL if args.all else RequestedMode.RECENT
    LOGGER.info(
        "collect_cli.start | mode=%s db=%s workers=%d only=%s",
        mode.value,
        config.store.db_url,
        config.workers,
        ",".join(config.only) or "-",
    )
    report = collect(mode, config=config, deadline_s=args.deadline)

    if args.report_json:
        write_json(args.report_json, report.to_dict())
    print(report.summary())

    if report.fatal and report.precheck == "fatal":
        print(f"Precheck failed: {report.fatal_reason}", file=sys.stderr)
        return EXIT_PRECHECK
    if report.fatal or report.partial_failures:
        return EXIT_FAILURES
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> None:
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
