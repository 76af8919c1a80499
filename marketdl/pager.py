"""Drive a DataProvider page by page until the requested range is covered."""

from __future__ import annotations

import time
from datetime import datetime

from marketdl.providers.base import Bar, DataProvider, FetchRequest, Page, ProviderError
from marketdl.utils.logging import get_logger
from marketdl.utils.retry import Sleeper, network_policy, rate_limit_policy

log = get_logger(__name__)

DEFAULT_MAX_PAGES = 10_000


class Pager:
    """Sequential fetch loop with a fixed inter-request delay.

    RateLimited is retried ``max_retries`` times with the configured delay and
    NetworkError ``network_retries`` times with backoff; everything else
    propagates on the first occurrence.
    """

    def __init__(
        self,
        provider: DataProvider,
        wait_seconds: float = 12.0,
        max_retries: int = 3,
        network_retries: int = 2,
        sleep: Sleeper = time.sleep,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        self.provider = provider
        self.wait_seconds = wait_seconds
        self.max_pages = max_pages
        self._sleep = sleep
        self._rate_policy = rate_limit_policy(wait_seconds, max_retries, sleep=sleep)
        self._network_policy = network_policy(network_retries, sleep=sleep)
        self.pages_fetched = 0

    def _fetch(self, request: FetchRequest, cursor: str | None) -> Page:
        return self._rate_policy(self._network_policy, self.provider.fetch_page, request, cursor)

    def fetch_all(self, request: FetchRequest) -> list[Bar]:
        """Return every bar in the request window, strictly ascending by timestamp."""
        request.validate()
        lo, hi = request.window()
        bars: list[Bar] = []
        last_ts: datetime | None = None
        dropped = 0
        seen_cursors: set[str] = set()
        cursor: str | None = None
        self.pages_fetched = 0

        while True:
            if self.pages_fetched >= self.max_pages:
                raise ProviderError(
                    f"{self.provider.name}: gave up after {self.max_pages} pages without reaching the end"
                )
            page = self._fetch(request, cursor)
            self.pages_fetched += 1
            log.info(
                "page_fetched",
                provider=self.provider.name,
                page=self.pages_fetched,
                bars=len(page.bars),
            )

            for bar in page.bars:
                if not lo <= bar.timestamp <= hi or (last_ts is not None and bar.timestamp <= last_ts):
                    dropped += 1
                    continue
                if not bar.is_consistent():
                    log.warning("bar_inconsistent", ticker=bar.ticker, timestamp=bar.timestamp.isoformat())
                bars.append(bar)
                last_ts = bar.timestamp

            nxt = page.next_cursor
            if nxt is None:
                break
            if nxt == cursor or nxt in seen_cursors:
                log.warning("cursor_repeated_stopping", provider=self.provider.name, page=self.pages_fetched)
                break
            seen_cursors.add(nxt)
            cursor = nxt

            log.debug("rate_limit_wait", seconds=self.wait_seconds)
            self._sleep(self.wait_seconds)

        if dropped:
            log.info("bars_dropped", count=dropped, reason="duplicate_or_out_of_range")
        log.info("fetch_complete", pages=self.pages_fetched, bars=len(bars))
        return bars
