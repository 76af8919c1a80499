"""Download coordinator: wires together resolve key → fetch pages → write files."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from marketdl.config import Config
from marketdl.delivery.file_writer import default_output_path, write_bars
from marketdl.pager import Pager
from marketdl.providers.base import (
    AuthError,
    DataProvider,
    FetchRequest,
    Granularity,
    OutputFormat,
)
from marketdl.providers.registry import API_KEY_ENV, build_provider
from marketdl.utils.logging import get_logger
from marketdl.utils.retry import Sleeper

log = get_logger(__name__)


@dataclass
class DownloadOptions:
    """Everything the CLI collects for one ``download`` invocation."""

    ticker: str
    start: date
    end: date
    granularity: Granularity = Granularity.MINUTE
    fmt: OutputFormat = OutputFormat.CSV
    provider: str = "polygon"
    api_key: str | None = None
    out: str | None = None
    split_by_day: bool = False
    header: bool = True
    max_decimals: int | None = None
    wait_seconds: float | None = None
    max_retries: int | None = None
    timeout: float | None = None


@dataclass
class DownloadResult:
    ticker: str
    start: date
    end: date
    granularity: Granularity
    provider: str
    bars: int = 0
    pages: int = 0
    paths: list[Path] = field(default_factory=list)


def resolve_api_key(provider_name: str, explicit: str | None, config: Config) -> str:
    """An explicit key wins over the provider's environment variable."""
    if explicit:
        return explicit
    key = config.api_keys.get(provider_name)
    if key:
        return key
    env_var = API_KEY_ENV.get(provider_name, "the provider's API key variable")
    raise AuthError(f"API key not provided. Use --apikey or set {env_var}.")


def validate_options(options: DownloadOptions) -> None:
    """Reject invalid combinations before any network traffic."""
    if not options.ticker or not options.ticker.strip():
        raise ValueError("ticker must not be empty")
    if options.start > options.end:
        raise ValueError(f"from-date {options.start} is after to-date {options.end}")
    if options.split_by_day and options.fmt is not OutputFormat.CSV:
        raise ValueError("--split-by-day is only supported with --format csv")
    if options.max_decimals is not None and options.max_decimals < 0:
        raise ValueError("--max-decimals must be zero or positive")
    for flag, value in (
        ("--rate-limit-wait-secs", options.wait_seconds),
        ("--max-retries", options.max_retries),
        ("--timeout", options.timeout),
    ):
        if value is not None and value < 0:
            raise ValueError(f"{flag} must be zero or positive")


def run_download(
    options: DownloadOptions,
    config: Config,
    provider: DataProvider | None = None,
    sleep: Sleeper = time.sleep,
) -> DownloadResult:
    """Execute one download and return what was fetched and written."""
    validate_options(options)
    api_key = resolve_api_key(options.provider, options.api_key, config)

    if provider is None:
        timeout = config.request_timeout if options.timeout is None else options.timeout
        provider = build_provider(options.provider, timeout=timeout or None)

    request = FetchRequest(
        ticker=options.ticker.strip(),
        start=options.start,
        end=options.end,
        granularity=options.granularity,
        api_key=api_key,
    )

    wait = config.rate_limit_wait_seconds if options.wait_seconds is None else options.wait_seconds
    retries = config.max_retries if options.max_retries is None else options.max_retries

    log.info(
        "download_start",
        provider=provider.name,
        ticker=request.ticker,
        start=request.start.isoformat(),
        end=request.end.isoformat(),
        granularity=request.granularity.value,
    )

    pager = Pager(
        provider,
        wait_seconds=wait,
        max_retries=retries,
        network_retries=config.network_retries,
        sleep=sleep,
    )
    bars = pager.fetch_all(request)

    result = DownloadResult(
        ticker=request.ticker,
        start=request.start,
        end=request.end,
        granularity=request.granularity,
        provider=provider.name,
        bars=len(bars),
        pages=pager.pages_fetched,
    )

    if not bars:
        log.warning(
            "no_data_returned",
            ticker=request.ticker,
            start=request.start.isoformat(),
            end=request.end.isoformat(),
        )
        return result

    if options.split_by_day:
        target: str | Path = options.out or config.output_dir
    else:
        target = options.out or default_output_path(
            request.ticker, request.start, request.end, options.fmt, config.output_dir
        )

    result.paths = write_bars(
        bars,
        options.fmt,
        target,
        split_days=options.split_by_day,
        header=options.header,
        max_decimals=options.max_decimals,
    )
    log.info("files_written", count=len(result.paths), bars=len(bars))
    return result
