"""Write bars to the filesystem as CSV or JSON."""

from __future__ import annotations

import csv
import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from itertools import groupby
from pathlib import Path
from typing import IO

from marketdl.providers.base import Bar, OutputFormat

CSV_HEADER = ["ticker", "timestamp", "open", "high", "low", "close", "volume"]


class OutputError(Exception):
    """Raised when an output path cannot be created or written."""


def format_number(value: float, max_decimals: int | None = None) -> str:
    """Render *value* for CSV.

    Full precision by default.  With *max_decimals* the value is rounded and
    trailing zeros are stripped, so ``185.50`` at 4 decimals is ``185.5``.
    Integral values never carry a ``.0`` suffix.
    """
    if max_decimals is not None:
        text = f"{value:.{max_decimals}f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return "0" if text in ("-0", "") else text
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _round(value: float, max_decimals: int | None) -> float | int:
    v = round(value, max_decimals) if max_decimals is not None else value
    return int(v) if float(v).is_integer() else v


def _safe_ticker(ticker: str) -> str:
    return ticker.replace("/", "_").replace("\\", "_")


def default_output_path(
    ticker: str,
    start: date,
    end: date,
    fmt: OutputFormat,
    output_dir: str | Path = "output",
) -> Path:
    return Path(output_dir) / f"{_safe_ticker(ticker)}_{start.isoformat()}_{end.isoformat()}.{fmt.value}"


def day_partition_path(base_dir: str | Path, ticker: str, day: date) -> Path:
    """``<base>/<ticker>/<YYYY>/<MM>/<ticker>_<YYYY-MM-DD>.csv``"""
    t = _safe_ticker(ticker)
    return Path(base_dir) / t / f"{day.year:04d}" / f"{day.month:02d}" / f"{t}_{day.isoformat()}.csv"


def split_by_day(bars: list[Bar]) -> dict[date, list[Bar]]:
    """Group *bars* (already ascending) by UTC calendar day, preserving order."""
    return {day: list(group) for day, group in groupby(bars, key=lambda b: b.day)}


@contextmanager
def _atomic_open(path: Path) -> Iterator[IO[str]]:
    """Write to a temp sibling of *path* and rename it into place on success."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise OutputError(f"cannot create {path}: {exc}") from exc

    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            yield f
        os.replace(tmp, path)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise OutputError(f"cannot write {path}: {exc}") from exc
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def write_csv(
    bars: list[Bar],
    path: str | Path,
    header: bool = True,
    max_decimals: int | None = None,
) -> Path:
    path = Path(path)
    with _atomic_open(path) as f:
        writer = csv.writer(f, lineterminator="\n")
        if header:
            writer.writerow(CSV_HEADER)
        for b in bars:
            row = b.as_dict()
            writer.writerow(
                [row["ticker"], row["timestamp"]]
                + [format_number(row[k], max_decimals) for k in CSV_HEADER[2:]]
            )
    return path


def write_json(bars: list[Bar], path: str | Path, max_decimals: int | None = None) -> Path:
    path = Path(path)
    records = []
    for b in bars:
        row = b.as_dict()
        for k in CSV_HEADER[2:]:
            row[k] = _round(row[k], max_decimals)
        records.append(row)
    with _atomic_open(path) as f:
        json.dump(records, f, indent=2)
        f.write("\n")
    return path


def write_bars(
    bars: list[Bar],
    fmt: OutputFormat,
    target: str | Path,
    *,
    split_days: bool = False,
    header: bool = True,
    max_decimals: int | None = None,
) -> list[Path]:
    """Write *bars* and return the paths written.

    With *split_days* (CSV only) *target* is a base directory and one file is
    written per UTC calendar day; otherwise *target* is the output file.
    """
    if split_days and fmt is not OutputFormat.CSV:
        raise ValueError("splitting by day is only supported for CSV output")

    if fmt is OutputFormat.JSON:
        return [write_json(bars, target, max_decimals=max_decimals)]
    if not split_days:
        return [write_csv(bars, target, header=header, max_decimals=max_decimals)]

    paths = []
    for day, day_bars in split_by_day(bars).items():
        path = day_partition_path(target, day_bars[0].ticker, day)
        paths.append(write_csv(day_bars, path, header=header, max_decimals=max_decimals))
    return paths
