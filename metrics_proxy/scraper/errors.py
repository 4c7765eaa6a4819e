"""Failure taxonomy for a single scrape.

Every failure the relay can produce is one of three :class:`ProxyError`
subclasses, and the dispatcher matches them exhaustively:

* :class:`EmptyTarget`: the inbound request carried no target URL.
* :class:`ScrapeError`: the upstream answered with a non-accepted status.
* :class:`TransportError`: the exchange itself failed (network, timeout,
  gzip decoding, malformed URL).
"""

from __future__ import annotations

from typing import Optional


class ProxyError(Exception):
    """Base class for every failure raised by the scrape pipeline."""


class EmptyTarget(ProxyError):
    """The inbound request path did not embed a target URL."""

    def __init__(self) -> None:
        super().__init__("Not Found(Empty proxy argument)")


class ScrapeError(ProxyError):
    """The upstream responded, but not with 200, 301 or 302."""

    def __init__(self, code: int, status: str, text: str, url: str) -> None:
        self.code = code
        self.status = status
        self.text = text
        self.url = url
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f"Response Error: URL: {self.url}\n"
            f" http status: {self.status}\n"
            f", text: {self.text}\n"
        )


class TransportError(ProxyError):
    """The outbound exchange failed before a usable response was relayed.

    ``kind`` is one of ``request`` (the URL could not be turned into a
    request), ``connect``, ``timeout``, ``decode`` (bad gzip stream) or
    ``read`` (the body stream broke).
    """

    KINDS = ("request", "connect", "timeout", "decode", "read")

    _REASONS = {
        "request": "Invalid target",
        "connect": "Upstream unreachable",
        "timeout": "Scrape timed out",
        "decode": "Invalid gzip response",
        "read": "Upstream read failed",
    }

    def __init__(self, kind: str, url: str, cause: Optional[BaseException] = None) -> None:
        if kind not in self.KINDS:
            raise ValueError(f"unknown transport error kind: {kind!r}")
        self.kind = kind
        self.url = url
        self.cause = cause
        detail = f": {cause!r}" if cause is not None else ""
        super().__init__(f"{kind} error scraping {url}{detail}")

    @property
    def reason(self) -> str:
        """Caller-safe description; never includes the underlying exception."""
        return self._REASONS[self.kind]
