"""Pretty-print a download summary to stdout."""

from __future__ import annotations

from marketdl.orchestrator import DownloadResult


def print_summary(r: DownloadResult) -> None:
    """Print a human-readable summary of a finished download."""
    sep = "=" * 60
    print(sep)
    print(f"  {r.ticker}  {r.start} to {r.end}  ({r.granularity.value}, {r.provider})")
    print(sep)
    print(f"  Pages : {r.pages}")
    print(f"  Bars  : {r.bars}")

    if not r.paths:
        print(f"  No data returned for {r.ticker} between {r.start} and {r.end}")
    elif len(r.paths) == 1:
        print(f"  Saved to {r.paths[0]}")
    else:
        print(f"  Saved {len(r.paths)} files:")
        for p in r.paths:
            print(f"    {p}")

    print(sep)
