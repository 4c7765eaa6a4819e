"""Centralised settings for the metrics proxy.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

``Settings`` is frozen: build one at startup (or use the module-level
default) and pass it to :func:`metrics_proxy.api.app.create_app` and
:class:`metrics_proxy.scraper.Scraper`.  Derive variants with
:func:`dataclasses.replace`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

ACCEPT_HEADER = (
    "application/openmetrics-text; version=0.0.1,"
    "text/plain;version=0.0.4;q=0.5,"
    "*/*;q=0.1"
)

PORT_MODES = ("substring", "authority")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.environ.get(name, "").strip()
    return int(value) if value else None


def _env_prefixes(name: str) -> Tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------
    listen_addr: str = field(
        default_factory=lambda: os.environ.get("METRICS_PROXY_ADDR", ":8444")
    )
    route_prefixes: Tuple[str, ...] = field(
        default_factory=lambda: _env_prefixes("METRICS_PROXY_ROUTE_PREFIXES")
    )
    port_mode: str = field(
        default_factory=lambda: os.environ.get("METRICS_PROXY_PORT_MODE", "substring")
    )
    shutdown_grace: float = field(
        default_factory=lambda: float(os.environ.get("METRICS_PROXY_SHUTDOWN_GRACE", "5.0"))
    )
    transport_error_status: int = field(
        default_factory=lambda: int(
            os.environ.get("METRICS_PROXY_TRANSPORT_ERROR_STATUS", "502")
        )
    )

    # ------------------------------------------------------------------
    # Scraper
    # ------------------------------------------------------------------
    scrape_timeout: float = field(
        default_factory=lambda: float(os.environ.get("METRICS_PROXY_SCRAPE_TIMEOUT", "5.0"))
    )
    scrape_timeout_hint: int = field(
        default_factory=lambda: int(os.environ.get("METRICS_PROXY_SCRAPE_TIMEOUT_HINT", "10"))
    )
    body_limit: int = field(
        default_factory=lambda: int(
            os.environ.get("METRICS_PROXY_BODY_LIMIT", str(2 * 1024 * 1024))
        )
    )
    limit_identity_bodies: bool = field(
        default_factory=lambda: _env_bool("METRICS_PROXY_LIMIT_IDENTITY_BODIES", False)
    )
    error_body_limit: Optional[int] = field(
        default_factory=lambda: _env_optional_int("METRICS_PROXY_ERROR_BODY_LIMIT")
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get("METRICS_PROXY_USER_AGENT", "Prometheus/2.7.1")
    )
    accept_header: str = ACCEPT_HEADER
    follow_redirects: bool = field(
        default_factory=lambda: _env_bool("METRICS_PROXY_FOLLOW_REDIRECTS", True)
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("METRICS_PROXY_LOG_LEVEL", "INFO")
    )

    def __post_init__(self) -> None:
        if self.port_mode not in PORT_MODES:
            raise ValueError(
                f"port_mode must be one of {', '.join(PORT_MODES)}, got {self.port_mode!r}"
            )
        if self.scrape_timeout <= 0:
            raise ValueError("scrape_timeout must be positive")
        if self.body_limit <= 0:
            raise ValueError("body_limit must be positive")
        if self.error_body_limit is not None and self.error_body_limit < 0:
            raise ValueError("error_body_limit must not be negative")
        if not 100 <= self.transport_error_status <= 599:
            raise ValueError("transport_error_status must be a valid HTTP status code")
        for prefix in self.route_prefixes:
            if not prefix.startswith("/") or prefix == "/":
                raise ValueError(f"route prefix must start with '/' and not be the root: {prefix!r}")

    @property
    def request_headers(self) -> dict[str, str]:
        """Negotiation headers attached to every outbound scrape."""
        return {
            "Accept": self.accept_header,
            "Accept-Encoding": "gzip",
            "User-Agent": self.user_agent,
            "X-Prometheus-Scrape-Timeout-Seconds": str(self.scrape_timeout_hint),
        }


# Module-level default; build a replacement with dataclasses.replace()
# rather than mutating it:
#   from metrics_proxy.config import settings
settings = Settings()
