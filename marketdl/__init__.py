"""Historical market-data aggregate downloader (Polygon.io, Twelve Data)."""

__version__ = "0.1.0"
