"""Unit tests for marketdl.delivery.file_writer."""

from __future__ import annotations

import csv
import json
from datetime import date
from pathlib import Path

import pytest

from marketdl.delivery.file_writer import (
    CSV_HEADER,
    OutputError,
    day_partition_path,
    default_output_path,
    format_number,
    split_by_day,
    write_bars,
    write_csv,
    write_json,
)
from marketdl.providers.base import OutputFormat
from tests.conftest import parse_timestamp, utc


class TestFormatNumber:
    @pytest.mark.parametrize(
        "value, decimals, expected",
        [
            (185.0, None, "185"),
            (185.5, None, "185.5"),
            (0.1 + 0.2, None, "0.30000000000000004"),
            (1_000_000.0, None, "1000000"),
            (185.123456, 2, "185.12"),
            (185.5, 4, "185.5"),
            (185.0, 4, "185"),
            (185.5, 0, "186"),
            (-0.0001, 2, "0"),
        ],
    )
    def test_format(self, value, decimals, expected) -> None:
        assert format_number(value, decimals) == expected


class TestPaths:
    def test_default_output_path(self) -> None:
        p = default_output_path("AAPL", date(2024, 1, 1), date(2024, 1, 3), OutputFormat.CSV, "out")
        assert p == Path("out") / "AAPL_2024-01-01_2024-01-03.csv"

    def test_default_output_path_json(self) -> None:
        p = default_output_path("I:NDX", date(2024, 2, 1), date(2024, 2, 1), OutputFormat.JSON)
        assert p == Path("output") / "I:NDX_2024-02-01_2024-02-01.json"

    def test_slash_in_ticker_does_not_create_directories(self) -> None:
        p = default_output_path("BRK/B", date(2024, 1, 1), date(2024, 1, 1), OutputFormat.CSV, "out")
        assert p.parent == Path("out")

    def test_day_partition_path(self) -> None:
        p = day_partition_path("base", "AAPL", date(2024, 3, 7))
        assert p == Path("base") / "AAPL" / "2024" / "03" / "AAPL_2024-03-07.csv"


class TestCsv:
    def test_header_and_rows(self, tmp_path: Path, make_bar) -> None:
        bars = [make_bar(utc(2024, 1, 2), 185.0, 186.0, 184.5, 185.5, 1_000_000)]
        path = write_csv(bars, tmp_path / "a.csv")
        assert path.read_text().splitlines() == [
            "ticker,timestamp,open,high,low,close,volume",
            "AAPL,2024-01-02T00:00:00Z,185,186,184.5,185.5,1000000",
        ]

    def test_no_header(self, tmp_path: Path, make_bar) -> None:
        path = write_csv([make_bar(utc(2024, 1, 2))], tmp_path / "a.csv", header=False)
        lines = path.read_text().splitlines()
        assert len(lines) == 1
        assert not lines[0].startswith("ticker,")

    def test_round_trip_within_decimals(self, tmp_path: Path, make_bar) -> None:
        bars = [
            make_bar(utc(2024, 1, 2, 14, 30), 185.123456, 186.987654, 184.5, 185.55555, 1234.5),
            make_bar(utc(2024, 1, 2, 14, 31), 0.1 + 0.2, 1.0, 0.1, 0.7, 0),
        ]
        path = write_csv(bars, tmp_path / "rt.csv", max_decimals=3)
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))

        assert len(rows) == len(bars)
        for bar, row in zip(bars, rows):
            assert parse_timestamp(row["timestamp"]) == bar.timestamp
            for key in CSV_HEADER[2:]:
                assert float(row[key]) == pytest.approx(getattr(bar, key), abs=0.5e-3)

    def test_full_precision_round_trip_is_exact(self, tmp_path: Path, make_bar) -> None:
        bar = make_bar(utc(2024, 1, 2), 0.1 + 0.2, 1.0 / 3, 0.1, 0.2, 17)
        path = write_csv([bar], tmp_path / "rt.csv")
        with open(path, newline="") as f:
            (row,) = list(csv.DictReader(f))
        assert float(row["open"]) == bar.open
        assert float(row["high"]) == bar.high

    def test_overwrites_and_leaves_no_temp_files(self, tmp_path: Path, make_bar) -> None:
        target = tmp_path / "nested" / "dir" / "a.csv"
        write_csv([make_bar(utc(2024, 1, 2))], target)
        write_csv([make_bar(utc(2024, 1, 3))], target)
        assert "2024-01-03" in target.read_text()
        assert "2024-01-02" not in target.read_text()
        assert [p.name for p in target.parent.iterdir()] == ["a.csv"]

    def test_unwritable_target_is_output_error(self, tmp_path: Path, make_bar) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(OutputError):
            write_csv([make_bar(utc(2024, 1, 2))], blocker / "a.csv")

    def test_interrupted_write_keeps_previous_file(self, tmp_path: Path, make_bar) -> None:
        target = tmp_path / "a.csv"
        write_csv([make_bar(utc(2024, 1, 2))], target)
        before = target.read_text()

        class _Interrupting:
            def as_dict(self):
                raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            write_csv([make_bar(utc(2024, 1, 3)), _Interrupting()], target)

        assert target.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["a.csv"]


class TestJson:
    def test_array_of_objects(self, tmp_path: Path, make_bar) -> None:
        bars = [make_bar(utc(2024, 1, 2), 185.0, 186.0, 184.5, 185.5, 1_000_000)]
        data = json.loads(write_json(bars, tmp_path / "a.json").read_text())
        assert data == [{
            "ticker": "AAPL",
            "timestamp": "2024-01-02T00:00:00Z",
            "open": 185,
            "high": 186,
            "low": 184.5,
            "close": 185.5,
            "volume": 1000000,
        }]

    def test_max_decimals_rounds(self, tmp_path: Path, make_bar) -> None:
        bars = [make_bar(utc(2024, 1, 2), 185.123456, 186.0, 184.5, 185.5, 10)]
        (row,) = json.loads(write_json(bars, tmp_path / "a.json", max_decimals=2).read_text())
        assert row["open"] == 185.12

    def test_empty_list(self, tmp_path: Path) -> None:
        assert json.loads(write_json([], tmp_path / "a.json").read_text()) == []


class TestSplitByDay:
    def test_groups_by_utc_day(self, make_bar) -> None:
        bars = [
            make_bar(utc(2024, 1, 2, 14, 30)),
            make_bar(utc(2024, 1, 2, 20, 59)),
            make_bar(utc(2024, 1, 3, 14, 30)),
        ]
        groups = split_by_day(bars)
        assert list(groups) == [date(2024, 1, 2), date(2024, 1, 3)]
        assert len(groups[date(2024, 1, 2)]) == 2

    def test_one_file_per_day(self, tmp_path: Path, make_bar) -> None:
        bars = [make_bar(utc(2024, 1, d, 15)) for d in (2, 3, 4)]
        paths = write_bars(bars, OutputFormat.CSV, tmp_path, split_days=True)

        assert len(paths) == 3
        for path, day in zip(paths, (2, 3, 4)):
            assert path == tmp_path / "AAPL" / "2024" / "01" / f"AAPL_2024-01-0{day}.csv"
            rows = path.read_text().splitlines()[1:]
            assert len(rows) == 1
            assert f"2024-01-0{day}T" in rows[0]

    def test_json_split_rejected(self, tmp_path: Path, make_bar) -> None:
        with pytest.raises(ValueError, match="CSV"):
            write_bars([make_bar(utc(2024, 1, 2))], OutputFormat.JSON, tmp_path, split_days=True)
        assert list(tmp_path.iterdir()) == []
