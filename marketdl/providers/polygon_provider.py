"""Polygon.io range-aggregates DataProvider."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from marketdl.providers.base import (
    Bar,
    DataProvider,
    FetchRequest,
    Page,
    ProviderError,
)

BASE_URL = "https://api.polygon.io"
PAGE_LIMIT = 50000

_ENTITLEMENT_HINT = (
    "Hint: your API key may not be entitled to this data. Try:\n"
    "- using --granularity day (daily aggregates) instead of minute\n"
    "- using a different ticker (e.g. equities like AAPL)\n"
    "- upgrading your Polygon plan for minute/index data"
)


class PolygonProvider(DataProvider):
    """Fetch aggregates from ``/v2/aggs/ticker/{ticker}/range/1/{span}/{from}/{to}``.

    Polygon paginates with an absolute ``next_url``; that URL is the cursor.
    It does not carry the API key, so the key is re-attached on every call.
    """

    @property
    def name(self) -> str:
        return "polygon"

    def build_url(self, request: FetchRequest) -> str:
        # Plain dates in the path are read as New York calendar days; epoch
        # milliseconds pin the range to the UTC window instead.
        ticker = quote(request.ticker.strip(), safe="")
        lo, hi = request.window()
        return (
            f"{BASE_URL}/v2/aggs/ticker/{ticker}/range/1/{request.granularity.value}"
            f"/{_epoch_ms(lo)}/{_epoch_ms(hi)}"
        )

    def fetch_page(self, request: FetchRequest, cursor: str | None = None) -> Page:
        request.validate()
        if cursor is None:
            params: dict[str, Any] = {
                "adjusted": "true",
                "sort": "asc",
                "limit": PAGE_LIMIT,
                "apiKey": request.api_key,
            }
            payload = self._get(self.build_url(request), params=params)
        else:
            payload = self._get(cursor, params={"apiKey": request.api_key})

        if payload.get("status") == "ERROR":
            raise ProviderError(
                f"polygon: {payload.get('error') or payload.get('message') or 'unknown error'}",
                body=str(payload),
            )

        results = payload.get("results") or []
        if not isinstance(results, list):
            raise ProviderError("polygon: 'results' is not an array", body=str(payload))

        bars = [self._parse_agg(request, raw) for raw in results]
        bars.sort(key=lambda b: b.timestamp)
        next_url = payload.get("next_url") or None
        return Page(bars=bars, next_cursor=next_url)

    def _parse_agg(self, request: FetchRequest, raw: Any) -> Bar:
        try:
            ts = datetime.fromtimestamp(int(raw["t"]) / 1000, tz=timezone.utc)
            return Bar(
                ticker=request.ticker,
                timestamp=request.granularity.truncate(ts),
                open=float(raw["o"]),
                high=float(raw["h"]),
                low=float(raw["l"]),
                close=float(raw["c"]),
                volume=float(raw.get("v", 0) or 0),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderError(f"polygon: malformed aggregate {raw!r}: {exc}", body=str(raw)) from exc

    def _auth_message(self, status: int, body: str) -> str:
        msg = f"polygon: HTTP {status}: {body}"
        if status == 403:
            msg = f"{msg}\n{_ENTITLEMENT_HINT}"
        return msg


def _epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)
