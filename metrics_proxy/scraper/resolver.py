"""Derive the upstream target URL from the inbound request URI."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from metrics_proxy.scraper.errors import EmptyTarget
from metrics_proxy.scraper.models import ScrapeTarget

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _strip_port_substrings(url: str) -> str:
    """Remove every literal ``:80`` and ``:443`` from *url*.

    Purely textual, so ``http://host:8080/`` becomes ``http://host80/`` and a
    query such as ``?addr=:443`` loses its value.  Kept as the default because
    existing deployments depend on the exact rewritten URL.
    """
    return url.replace(":80", "").replace(":443", "")


def _strip_default_port(url: str) -> str:
    """Drop the port from the authority only when it is the scheme default."""
    parts = urlsplit(url)
    try:
        port = parts.port
    except ValueError:
        return url
    if port is None or _DEFAULT_PORTS.get(parts.scheme.lower()) != port:
        return url
    host = parts.netloc.rsplit(":", 1)[0]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def resolve_target(raw_uri: str, port_mode: str = "substring") -> ScrapeTarget:
    """Turn the raw URI embedded in an inbound request into a :class:`ScrapeTarget`.

    *raw_uri* is everything after the proxy's route prefix and leading ``/``,
    query string included, e.g. ``http://10.0.0.5:9100/metrics``.

    Normalisation strips one trailing ``/`` and then the default ports.  With
    ``port_mode="substring"`` (the default) every ``:80`` / ``:443`` substring
    is removed; ``port_mode="authority"`` only removes a default port from the
    host part.

    Raises:
        EmptyTarget: If *raw_uri* is empty.
        ValueError: If *port_mode* is not recognised.
    """
    if not raw_uri:
        raise EmptyTarget()

    url = raw_uri[:-1] if raw_uri.endswith("/") else raw_uri

    if port_mode == "substring":
        url = _strip_port_substrings(url)
    elif port_mode == "authority":
        url = _strip_default_port(url)
    else:
        raise ValueError(f"unknown port mode: {port_mode!r}")

    return ScrapeTarget(url=url)
