"""Closed set of known providers and their API-key environment variables."""

from __future__ import annotations

import requests

from marketdl.providers.base import DataProvider
from marketdl.providers.polygon_provider import PolygonProvider
from marketdl.providers.twelvedata_provider import TwelveDataProvider

PROVIDERS: dict[str, type[DataProvider]] = {
    "polygon": PolygonProvider,
    "twelvedata": TwelveDataProvider,
}

API_KEY_ENV: dict[str, str] = {
    "polygon": "POLYGON_API_KEY",
    "twelvedata": "TWELVEDATA_API_KEY",
}


def build_provider(
    name: str,
    session: requests.Session | None = None,
    timeout: float | None = None,
) -> DataProvider:
    try:
        cls = PROVIDERS[name]
    except KeyError:
        raise ValueError(
            f"unknown provider {name!r}; expected one of: {', '.join(sorted(PROVIDERS))}"
        ) from None
    return cls(session=session, timeout=timeout)
