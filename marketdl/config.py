"""Load configuration from TOML file and merge environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from marketdl.providers.registry import API_KEY_ENV


_DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "settings.toml"


def _load_toml(path: Path) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


class Config:
    """Application configuration.  Reads settings.toml then overlays env vars.

    An explicitly given path must exist; the default path is optional and
    built-in defaults apply when it is absent.  *environ* defaults to
    ``os.environ`` and is read once, here.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        env = os.environ if environ is None else environ
        explicit = config_path or env.get("MARKETDL_CONFIG")
        path = Path(explicit) if explicit else _DEFAULT_CONFIG_PATH
        raw = _load_toml(path) if explicit or path.exists() else {}

        # ── Download ──────────────────────────────────────────────────────────
        dl = raw.get("download", {})
        self.output_dir: str = str(dl.get("output_dir", "output"))
        self.rate_limit_wait_seconds: float = float(dl.get("rate_limit_wait_seconds", 12))
        self.max_retries: int = int(dl.get("max_retries", 3))
        self.network_retries: int = int(dl.get("network_retries", 2))
        self.request_timeout: float = float(dl.get("request_timeout", 30))
        for key in ("rate_limit_wait_seconds", "max_retries", "network_retries", "request_timeout"):
            if getattr(self, key) < 0:
                raise ValueError(f"[download] {key} must be zero or positive")

        # ── Logging ───────────────────────────────────────────────────────────
        log = raw.get("logging", {})
        self.log_level: str = env.get("LOG_LEVEL", log.get("level", "INFO")).upper()
        self.log_format: str = str(log.get("format", "console"))

        # ── Env-var overlays ──────────────────────────────────────────────────
        self.api_keys: dict[str, str] = {
            provider: env[var] for provider, var in API_KEY_ENV.items() if env.get(var)
        }
