"""CLI entry point: python -m marketdl <command>

Commands:
  download  Download minute or daily aggregates for one ticker to CSV/JSON.

Examples:
  marketdl download -t AAPL -f 2024-01-01 -T 2024-01-03 --granularity day
  POLYGON_API_KEY=... marketdl download -t I:NDX -f 2024-02-01 -T 2024-02-01 --format json
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

from marketdl.config import Config
from marketdl.delivery.file_writer import OutputError
from marketdl.providers.base import Granularity, MarketDataError, OutputFormat
from marketdl.providers.registry import PROVIDERS
from marketdl.utils.logging import configure_logging, get_logger

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD") from None


def _cmd_download(args: argparse.Namespace) -> int:
    try:
        config = Config(args.config)
    except (OSError, ValueError) as exc:
        print(f"error: cannot load config: {exc}", file=sys.stderr)
        return EXIT_USAGE
    level = "DEBUG" if args.verbose else config.log_level
    configure_logging(level, config.log_format)
    log = get_logger()

    from marketdl.delivery.cli_output import print_summary
    from marketdl.orchestrator import DownloadOptions, run_download

    options = DownloadOptions(
        ticker=args.ticker,
        start=args.start,
        end=args.end,
        granularity=Granularity(args.granularity),
        fmt=OutputFormat(args.format),
        provider=args.provider,
        api_key=args.apikey,
        out=args.out,
        split_by_day=args.split_by_day,
        header=not args.no_header,
        max_decimals=args.max_decimals,
        wait_seconds=args.rate_limit_wait_secs,
        max_retries=args.max_retries,
        timeout=args.timeout,
    )

    try:
        result = run_download(options, config)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except (MarketDataError, OutputError) as exc:
        log.debug("download_failed", error_type=type(exc).__name__, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    print_summary(result)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marketdl",
        description="Historical market-data aggregate downloader",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # download
    p = sub.add_parser("download", help="Download aggregates for one ticker")
    p.add_argument("-t", "--ticker", required=True, help="Ticker, e.g. AAPL or I:SPX")
    p.add_argument("-f", "--from", dest="start", required=True, type=_iso_date, help="Start date (YYYY-MM-DD)")
    p.add_argument("-T", "--to", dest="end", required=True, type=_iso_date, help="End date, inclusive (YYYY-MM-DD)")
    p.add_argument("--granularity", choices=[g.value for g in Granularity], default="minute")
    p.add_argument("--format", choices=[f.value for f in OutputFormat], default="csv")
    p.add_argument("-o", "--out", help="Output file (directory with --split-by-day)")
    p.add_argument("--provider", choices=sorted(PROVIDERS), default="polygon")
    p.add_argument("-k", "--apikey", help="API key (else POLYGON_API_KEY / TWELVEDATA_API_KEY)")
    p.add_argument("--split-by-day", action="store_true", help="One CSV per day under <out>/<ticker>/YYYY/MM/")
    p.add_argument("--no-header", action="store_true", help="Omit the CSV header row")
    p.add_argument("--max-decimals", type=int, default=None, help="Round prices and volume to N decimals")
    p.add_argument("--rate-limit-wait-secs", type=float, default=None,
                   help="Seconds to wait between pages (default 12, ~5 req/min)")
    p.add_argument("--max-retries", type=int, default=None, help="Retries per page on HTTP 429")
    p.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds, 0 disables")
    p.add_argument("--config", type=Path, default=None, help="Path to settings.toml")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Log request URLs and response bodies")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    dispatch = {
        "download": _cmd_download,
    }
    try:
        return dispatch[args.command](args)
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
