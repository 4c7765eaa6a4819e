"""Relay endpoint — every routed path embeds the URL to scrape.

Routes
------
Wildcard mode (no route prefixes configured)::

    GET /{target}               → scrape ``target``

Prefixed mode (``route_prefixes=("/metrics", ...)``)::

    GET /metrics/{target}       → scrape ``target``
    GET /metrics                → 404, empty target

``target`` is taken from the raw request path, query string included, so
``GET /http://10.0.0.5:9100/metrics?name[]=up`` scrapes
``http://10.0.0.5:9100/metrics?name[]=up``.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from metrics_proxy.config import Settings
from metrics_proxy.scraper import (
    Deadline,
    EmptyTarget,
    ProxyError,
    Scraper,
    ScrapeError,
    ScrapeSession,
    TransportError,
    resolve_target,
)

logger = logging.getLogger(__name__)

_FAILURE_BANNER = "HTTP Request Failed! \n "


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def raw_target_uri(request: Request, prefix: str = "") -> str:
    """Return the part of the inbound URI that names the scrape target.

    Uses the undecoded ``raw_path`` so percent-escapes in the target reach the
    upstream untouched, then strips *prefix* and the leading ``/``.
    """
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    if prefix and path.startswith(prefix):
        path = path[len(prefix):]
    if path.startswith("/"):
        path = path[1:]

    query = request.scope.get("query_string", b"").decode("latin-1")
    if query:
        path = f"{path}?{query}"
    return path


def failure_response(exc: ProxyError, settings: Settings) -> Response:
    """Map a pipeline failure onto the caller-facing plaintext response."""
    if isinstance(exc, EmptyTarget):
        return PlainTextResponse(str(exc), status_code=404)
    if isinstance(exc, ScrapeError):
        return PlainTextResponse(f"{_FAILURE_BANNER}{exc}", status_code=exc.code)
    if isinstance(exc, TransportError):
        return PlainTextResponse(
            f"{_FAILURE_BANNER}{exc.reason}: URL: {exc.url}\n",
            status_code=settings.transport_error_status,
        )
    raise TypeError(f"unhandled proxy error type: {type(exc).__name__}")


async def _relay_body(session: ScrapeSession) -> AsyncIterator[bytes]:
    """Stream *session*'s body to the caller, closing it however the stream ends."""
    try:
        async for chunk in session.iter_bytes():
            yield chunk
    except TransportError as exc:
        # Status 200 is already on the wire; aborting the connection is the
        # only way left to tell the caller the body is incomplete.
        logger.error(
            "scrape of %s failed after %d bytes: %s",
            session.url,
            session.bytes_relayed,
            exc,
        )
        raise
    finally:
        await session.aclose()


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

async def relay(request: Request, prefix: str = "") -> Response:
    """Scrape the target embedded in *request* and relay the result.

    Failures before the first body byte become a plaintext error response;
    see :func:`failure_response` for the status mapping.
    """
    settings: Settings = request.app.state.settings
    scraper: Scraper = request.app.state.scraper
    raw_uri = raw_target_uri(request, prefix)

    try:
        target = resolve_target(raw_uri, port_mode=settings.port_mode)
        session = await scraper.open(target.url, Deadline(settings.scrape_timeout))
    except ProxyError as exc:
        logger.warning("failed to scrape: %s, %s", raw_uri or "<empty>", exc)
        return failure_response(exc, settings)

    headers = {}
    if session.content_type:
        headers["Content-Type"] = session.content_type
    return StreamingResponse(_relay_body(session), status_code=200, headers=headers)


def _endpoint(prefix: str):
    async def endpoint(request: Request) -> Response:
        return await relay(request, prefix)

    return endpoint


def build_router(settings: Settings) -> APIRouter:
    """Return the relay router for the configured routing mode."""
    router = APIRouter()

    if not settings.route_prefixes:
        router.add_api_route(
            "/{target:path}", _endpoint(""), methods=["GET"], include_in_schema=False
        )
        return router

    for prefix in settings.route_prefixes:
        prefix = prefix.rstrip("/")
        endpoint = _endpoint(prefix)
        router.add_api_route(prefix, endpoint, methods=["GET"], include_in_schema=False)
        router.add_api_route(
            f"{prefix}/{{target:path}}", endpoint, methods=["GET"], include_in_schema=False
        )
    return router
