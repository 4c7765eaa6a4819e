"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single ``httpx.AsyncClient`` (shared by all
requests through ``request.app.state.scraper``).  The client carries no
timeout of its own; each scrape is bounded by its request deadline.  On
shutdown the client is closed.

Routers
-------
Only the relay router is mounted.  Depending on ``Settings.route_prefixes``
it either claims every path (wildcard mode) or only the configured
prefixes, so the OpenAPI/docs routes are disabled to keep them from
shadowing target URLs.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI

from metrics_proxy import __version__
from metrics_proxy.api.routers.relay import build_router
from metrics_proxy.config import Settings, settings as default_settings
from metrics_proxy.scraper import Scraper

logger = logging.getLogger(__name__)


def build_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Return the outbound client used for every scrape."""
    return httpx.AsyncClient(
        timeout=None,
        follow_redirects=settings.follow_redirects,
        transport=transport,
    )


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Return a fully-configured FastAPI application instance.

    *client* lets callers supply a pre-built ``httpx.AsyncClient`` (e.g. one
    with a mock transport); it is still closed on shutdown.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the outbound client on startup and close it on shutdown."""
        http_client = client or build_client(settings)
        app.state.scraper = Scraper(http_client, settings)
        logger.info(
            "relay ready: mode=%s timeout=%.1fs body_limit=%d",
            ",".join(settings.route_prefixes) or "wildcard",
            settings.scrape_timeout,
            settings.body_limit,
        )
        try:
            yield
        finally:
            await http_client.aclose()
            logger.info("relay stopped")

    app = FastAPI(
        title="metrics-proxy",
        description=(
            "Forwards Prometheus scrapes to the target URL embedded in the "
            "request path and relays the (gzip-decoded) exposition body."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.include_router(build_router(settings))

    return app
