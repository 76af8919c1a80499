"""Twelve Data time-series DataProvider."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any

from marketdl.providers.base import (
    AuthError,
    Bar,
    DataProvider,
    FetchRequest,
    Granularity,
    Page,
    ProviderError,
    RateLimited,
)

BASE_URL = "https://api.twelvedata.com/time_series"
OUTPUT_SIZE = 5000

_INTERVALS = {
    Granularity.MINUTE: "1min",
    Granularity.DAY: "1day",
}

_CURSOR_FMT = "%Y-%m-%d %H:%M:%S"


class TwelveDataProvider(DataProvider):
    """Fetch bars from Twelve Data's ``/time_series`` endpoint.

    Twelve Data has no page token.  Each call asks for up to ``OUTPUT_SIZE``
    values from the cursor instant to the end of the range; a full page means
    there may be more, so the next cursor is one bar past the last one seen.
    Errors arrive as HTTP 200 bodies with ``"status": "error"``.
    """

    def __init__(self, *args: Any, output_size: int = OUTPUT_SIZE, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._output_size = output_size

    @property
    def name(self) -> str:
        return "twelvedata"

    def build_params(self, request: FetchRequest, cursor: str | None) -> dict[str, Any]:
        if cursor is None:
            start = datetime.combine(request.start, time.min)
        else:
            start = datetime.strptime(cursor, _CURSOR_FMT)
        end = datetime.combine(request.end + timedelta(days=1), time.min)
        return {
            "symbol": request.ticker.strip(),
            "interval": _INTERVALS[request.granularity],
            "start_date": start.strftime(_CURSOR_FMT),
            "end_date": end.strftime(_CURSOR_FMT),
            "order": "ASC",
            "timezone": "UTC",
            "outputsize": self._output_size,
            "apikey": request.api_key,
        }

    def fetch_page(self, request: FetchRequest, cursor: str | None = None) -> Page:
        request.validate()
        payload = self._get(BASE_URL, params=self.build_params(request, cursor))

        if payload.get("status") == "error":
            return self._handle_error(payload)

        values = payload.get("values") or []
        if not isinstance(values, list):
            raise ProviderError("twelvedata: 'values' is not an array", body=str(payload))

        bars = sorted(
            (self._parse_value(request, raw) for raw in values),
            key=lambda b: b.timestamp,
        )

        next_cursor = None
        if len(values) >= self._output_size and bars:
            nxt = bars[-1].timestamp + request.granularity.step
            if nxt.date() <= request.end:
                next_cursor = nxt.strftime(_CURSOR_FMT)
        return Page(bars=bars, next_cursor=next_cursor)

    def _handle_error(self, payload: dict[str, Any]) -> Page:
        code = payload.get("code")
        message = str(payload.get("message", "unknown error"))
        if code in (401, 403):
            raise AuthError(f"twelvedata: {message}")
        if code == 429:
            raise RateLimited(f"twelvedata: {message}")
        if code == 400 and "no data" in message.lower():
            return Page()
        raise ProviderError(f"twelvedata: error {code}: {message}", status=code, body=str(payload))

    def _parse_value(self, request: FetchRequest, raw: Any) -> Bar:
        try:
            ts = _parse_datetime(raw["datetime"])
            return Bar(
                ticker=request.ticker,
                timestamp=request.granularity.truncate(ts),
                open=float(raw["open"]),
                high=float(raw["high"]),
                low=float(raw["low"]),
                close=float(raw["close"]),
                volume=float(raw.get("volume") or 0),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderError(f"twelvedata: malformed value {raw!r}: {exc}", body=str(raw)) from exc


def _parse_datetime(raw: str) -> datetime:
    """Twelve Data sends ``YYYY-MM-DD`` for daily bars and adds a time for intraday."""
    fmt = _CURSOR_FMT if " " in raw else "%Y-%m-%d"
    return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
