"""Scraper package — target resolution and outbound metrics fetch."""

from metrics_proxy.scraper.errors import EmptyTarget, ProxyError, ScrapeError, TransportError
from metrics_proxy.scraper.fetcher import Scraper, ScrapeSession
from metrics_proxy.scraper.models import Deadline, ScrapeTarget
from metrics_proxy.scraper.resolver import resolve_target

__all__ = [
    "Scraper",
    "ScrapeSession",
    "resolve_target",
    "ScrapeTarget",
    "Deadline",
    "ProxyError",
    "EmptyTarget",
    "ScrapeError",
    "TransportError",
]
