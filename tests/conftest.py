"""Shared pytest fixtures."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest
import requests

from marketdl.config import Config
from marketdl.providers.base import (
    Bar,
    DataProvider,
    FetchRequest,
    Granularity,
    Page,
)


def make_response(
    status: int = 200,
    payload: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    resp = requests.Response()
    resp.status_code = status
    body = text if text is not None else json.dumps(payload if payload is not None else {})
    resp._content = body.encode("utf-8")
    resp.encoding = "utf-8"
    if headers:
        resp.headers.update(headers)
    return resp


def make_session(*responses: requests.Response | Exception) -> MagicMock:
    """A Session mock whose ``get`` returns (or raises) *responses* in order."""
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = list(responses)
    return session


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def parse_timestamp(raw: str) -> datetime:
    """Read back a timestamp written by format_timestamp."""
    return datetime.strptime(raw, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)


def polygon_agg(ts: datetime, o: float, h: float, l: float, c: float, v: float) -> dict:
    return {"t": int(ts.timestamp() * 1000), "o": o, "h": h, "l": l, "c": c, "v": v}


def twelvedata_value(ts: datetime, o: float, h: float, l: float, c: float, v: float, daily: bool) -> dict:
    fmt = "%Y-%m-%d" if daily else "%Y-%m-%d %H:%M:%S"
    return {
        "datetime": ts.strftime(fmt),
        "open": repr(o),
        "high": repr(h),
        "low": repr(l),
        "close": repr(c),
        "volume": str(int(v)),
    }


class ScriptedProvider(DataProvider):
    """Replays a script of Pages / exceptions, recording each cursor it was asked for."""

    def __init__(self, script: list[Page | BaseException]) -> None:
        super().__init__(session=MagicMock(spec=requests.Session))
        self._script = list(script)
        self.cursors: list[str | None] = []

    @property
    def name(self) -> str:
        return "scripted"

    def fetch_page(self, request: FetchRequest, cursor: str | None = None) -> Page:
        self.cursors.append(cursor)
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def make_bar() -> Callable[..., Bar]:
    def _make(
        ts: datetime,
        o: float = 100.0,
        h: float = 101.0,
        l: float = 99.5,
        c: float = 100.5,
        v: float = 1000,
        ticker: str = "AAPL",
    ) -> Bar:
        return Bar(ticker=ticker, timestamp=ts, open=o, high=h, low=l, close=c, volume=v)

    return _make


@pytest.fixture()
def day_request() -> FetchRequest:
    return FetchRequest(
        ticker="AAPL",
        start=date(2024, 1, 1),
        end=date(2024, 1, 5),
        granularity=Granularity.DAY,
        api_key="test-key",
    )


@pytest.fixture()
def minute_request() -> FetchRequest:
    return FetchRequest(
        ticker="AAPL",
        start=date(2024, 1, 2),
        end=date(2024, 1, 3),
        granularity=Granularity.MINUTE,
        api_key="test-key",
    )


@pytest.fixture()
def cfg(tmp_path) -> Config:
    """Config with a temp output dir, no waits and no API keys from the host."""
    toml_content = f"""
[download]
output_dir = "{(tmp_path / 'output').as_posix()}"
rate_limit_wait_seconds = 0
max_retries = 2
network_retries = 1
request_timeout = 5

[logging]
level = "DEBUG"
format = "console"
"""
    cfg_path = tmp_path / "settings.toml"
    cfg_path.write_text(toml_content)
    return Config(cfg_path, environ={})


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    """configure_logging binds a handler to the current sys.stderr; drop it after each test."""
    yield
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
