"""metrics-proxy CLI — entry-point for running and exercising the relay.

Usage:
    python cli/main.py --help

Commands:
    serve     → run the relay HTTP server (uvicorn)
    scrape    → one-shot scrape of a target, body written to stdout
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from metrics_proxy.xxx
# import ...` works when the CLI is invoked as `python cli/main.py` from any
# working directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import dataclasses
from typing import List, Optional, Tuple

import typer

from metrics_proxy.config import PORT_MODES, Settings, settings as default_settings
from metrics_proxy.log import configure_logging

app = typer.Typer(
    name="metrics-proxy",
    help="Prometheus scrape forwarding proxy.",
    no_args_is_help=True,
)


def parse_addr(addr: str) -> Tuple[str, int]:
    """Split a listen address such as ``:8444``, ``127.0.0.1:9000`` or ``[::1]:8444``.

    An empty host means all interfaces.
    """
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise typer.BadParameter(f"listen address must be [host]:port, got {addr!r}")
    host = host.strip("[]") or "0.0.0.0"
    port_num = int(port)
    if not 0 < port_num < 65536:
        raise typer.BadParameter(f"port out of range: {port_num}")
    return host, port_num


def _settings_with(base: Settings, **overrides: object) -> Settings:
    """Apply non-``None`` CLI overrides on top of *base*."""
    changes = {k: v for k, v in overrides.items() if v is not None}
    try:
        return dataclasses.replace(base, **changes)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    addr: Optional[str] = typer.Option(None, "--addr", help="HTTP listen address (default :8444)."),
    prefix: Optional[List[str]] = typer.Option(
        None, "--prefix", help="Serve only under this route prefix (repeatable)."
    ),
    port_mode: Optional[str] = typer.Option(
        None, "--port-mode", help=f"Default-port stripping: {' | '.join(PORT_MODES)}."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level."),
) -> None:
    """Run the relay until interrupted."""
    import uvicorn

    from metrics_proxy.api.app import create_app

    settings = _settings_with(
        default_settings,
        listen_addr=addr,
        route_prefixes=tuple(prefix) if prefix else None,
        port_mode=port_mode,
        log_level=log_level,
    )
    host, port = parse_addr(settings.listen_addr)
    logger = configure_logging(settings.log_level)
    logger.info("Start listen: %s", settings.listen_addr)

    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=max(1, round(settings.shutdown_grace)),
    )
    logger.info("Shutdown Server ...")


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------
@app.command("scrape")
def scrape(
    target: str = typer.Argument(..., help="Target metrics URL."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Scrape deadline in seconds."),
) -> None:
    """Scrape TARGET through the relay pipeline and print the body to stdout."""
    from metrics_proxy.api.app import build_client
    from metrics_proxy.scraper import ProxyError, Scraper, resolve_target

    settings = _settings_with(default_settings, scrape_timeout=timeout)
    configure_logging(settings.log_level)

    out = sys.stdout.buffer

    async def sink(chunk: bytes) -> None:
        out.write(chunk)

    async def run() -> int:
        async with build_client(settings) as client:
            url = resolve_target(target, port_mode=settings.port_mode).url
            return await Scraper(client, settings).scrape(url, sink)

    try:
        asyncio.run(run())
    except ProxyError as exc:
        typer.echo(f"[scrape] failed: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        out.flush()


if __name__ == "__main__":
    app()
