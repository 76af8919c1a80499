"""Abstract base class for aggregate-bar providers, plus the shared data model."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any

import requests

from marketdl import __version__
from marketdl.utils.logging import get_logger

log = get_logger(__name__)

USER_AGENT = f"marketdl/{__version__}"

_SECRET_PARAM = re.compile(r"(api_?key=)[^&]+", re.IGNORECASE)


class Granularity(str, Enum):
    MINUTE = "minute"
    DAY = "day"

    @property
    def step(self) -> timedelta:
        return timedelta(minutes=1) if self is Granularity.MINUTE else timedelta(days=1)

    def truncate(self, ts: datetime) -> datetime:
        """Drop everything finer than this granularity from *ts*."""
        if self is Granularity.MINUTE:
            return ts.replace(second=0, microsecond=0)
        return ts.replace(hour=0, minute=0, second=0, microsecond=0)


class OutputFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


# ── Errors ────────────────────────────────────────────────────────────────────


class MarketDataError(Exception):
    """Base class for everything a provider can raise."""


class AuthError(MarketDataError):
    """Missing or rejected API key (HTTP 401/403). Never retried."""


class RateLimited(MarketDataError):
    """HTTP 429 from the vendor. The caller should wait and retry."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProviderError(MarketDataError):
    """Unexpected status code or malformed response body."""

    def __init__(self, message: str, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class NetworkError(MarketDataError):
    """Transport-level failure (DNS, connection reset, timeout)."""


# ── Data model ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Bar:
    """One OHLCV aggregate for one ticker over one minute or one day."""

    ticker: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def day(self) -> date:
        return self.timestamp.astimezone(timezone.utc).date()

    def is_consistent(self) -> bool:
        return self.high >= max(self.open, self.close) and self.low <= min(self.open, self.close)

    def as_dict(self) -> dict[str, Any]:
        return {
            "ticker": self.ticker,
            "timestamp": format_timestamp(self.timestamp),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def format_timestamp(ts: datetime) -> str:
    """Render *ts* as ISO 8601 UTC with a ``Z`` suffix."""
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class FetchRequest:
    """Everything a provider needs for one download. Immutable for the run."""

    ticker: str
    start: date
    end: date
    granularity: Granularity
    api_key: str

    def validate(self) -> None:
        if not self.ticker or not self.ticker.strip():
            raise ValueError("ticker must not be empty")
        if self.start > self.end:
            raise ValueError(f"from-date {self.start} is after to-date {self.end}")
        if not self.api_key:
            raise AuthError("API key must not be empty")

    def window(self) -> tuple[datetime, datetime]:
        """Inclusive UTC instant range covered by the request."""
        lo = datetime.combine(self.start, time.min, tzinfo=timezone.utc)
        hi = datetime.combine(self.end, time.max, tzinfo=timezone.utc)
        return lo, hi


@dataclass(frozen=True)
class Page:
    bars: list[Bar] = field(default_factory=list)
    next_cursor: str | None = None


def redact(url: str) -> str:
    return _SECRET_PARAM.sub(r"\1***", url)


def loggable_url(url: str, params: dict[str, Any] | None = None) -> str:
    """The full URL *url* + *params* would request, with API keys redacted."""
    return redact(requests.Request("GET", url, params=params).prepare().url)


# ── Provider interface ────────────────────────────────────────────────────────


class DataProvider(ABC):
    """Abstract interface for aggregate-bar vendors.

    Concrete implementations must be drop-in replaceable so the pager never
    knows which vendor is active.  Each call to :meth:`fetch_page` issues
    exactly one HTTP request.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
        self._session = session
        self._timeout = timeout

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider id (e.g. "polygon")."""

    @abstractmethod
    def fetch_page(self, request: FetchRequest, cursor: str | None = None) -> Page:
        """Fetch one page of bars for *request*.

        Args:
            request: The validated download request.
            cursor:  Opaque value from the previous page's ``next_cursor``,
                     or None for the first page.

        Returns:
            Page with bars sorted ascending and the cursor for the next page
            (None once the range is exhausted).

        Raises:
            AuthError, RateLimited, ProviderError, NetworkError.
        """

    def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET *url* and return the decoded JSON object, mapping failures to errors."""
        try:
            log.debug("http_request", provider=self.name, url=loggable_url(url, params))
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"{self.name}: request failed: {exc}") from exc

        status = resp.status_code
        if status in (401, 403):
            raise AuthError(self._auth_message(status, resp.text))
        if status == 429:
            raise RateLimited(
                f"{self.name}: HTTP 429 Too Many Requests",
                retry_after=_retry_after(resp.headers.get("Retry-After")),
            )
        if not 200 <= status < 300:
            log.debug("http_error_body", provider=self.name, status=status, body=resp.text)
            raise ProviderError(f"{self.name}: HTTP {status}: {resp.text}", status=status, body=resp.text)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.name}: invalid JSON in response", status=status, body=resp.text
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderError(
                f"{self.name}: expected a JSON object", status=status, body=resp.text
            )
        return payload

    def _auth_message(self, status: int, body: str) -> str:
        return f"{self.name}: HTTP {status}: {body}"


def _retry_after(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None
