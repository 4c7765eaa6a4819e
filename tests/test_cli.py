"""Tests for the metrics-proxy CLI (``serve`` and ``scrape``)."""

from __future__ import annotations

import gzip
from unittest.mock import patch

import httpx
import pytest
import respx
import typer
from typer.testing import CliRunner

from cli.main import app, parse_addr
from metrics_proxy.config import Settings

runner = CliRunner()

TARGET = "http://10.0.0.5:9100/metrics"


@pytest.fixture(autouse=True)
def _no_logging_setup():
    """Keep the CLI from reconfiguring the ``metrics_proxy`` logger tree."""
    with patch("cli.main.configure_logging") as mock_configure:
        yield mock_configure


# ---------------------------------------------------------------------------
# parse_addr
# ---------------------------------------------------------------------------

class TestParseAddr:
    def test_port_only_binds_all_interfaces(self) -> None:
        assert parse_addr(":8444") == ("0.0.0.0", 8444)

    def test_host_and_port(self) -> None:
        assert parse_addr("127.0.0.1:9000") == ("127.0.0.1", 9000)

    def test_ipv6(self) -> None:
        assert parse_addr("[::1]:8444") == ("::1", 8444)

    @pytest.mark.parametrize("addr", ["8444", "host:", "host:http", ":70000"])
    def test_invalid(self, addr: str) -> None:
        with pytest.raises(typer.BadParameter):
            parse_addr(addr)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

class TestServe:
    def test_runs_uvicorn_on_default_addr(self) -> None:
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve"])

        assert result.exit_code == 0, result.output
        _, kwargs = mock_run.call_args
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 8444
        assert kwargs["timeout_graceful_shutdown"] == 5

    def test_addr_and_prefixes(self) -> None:
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(
                app,
                ["serve", "--addr", "127.0.0.1:9100", "--prefix", "/metrics", "--prefix", "/api/metrics"],
            )

        assert result.exit_code == 0, result.output
        fastapi_app = mock_run.call_args.args[0]
        assert fastapi_app.state.settings.route_prefixes == ("/metrics", "/api/metrics")
        assert mock_run.call_args.kwargs["port"] == 9100

    def test_fractional_grace_never_rounds_to_zero(self) -> None:
        with patch("cli.main.default_settings", Settings(shutdown_grace=0.4)), patch(
            "uvicorn.run"
        ) as mock_run:
            result = runner.invoke(app, ["serve"])

        assert result.exit_code == 0, result.output
        assert mock_run.call_args.kwargs["timeout_graceful_shutdown"] == 1

    def test_invalid_port_mode_rejected(self) -> None:

        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--port-mode", "regex"])

        assert result.exit_code != 0
        mock_run.assert_not_called()


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------

class TestScrapeCommand:
    def test_prints_decoded_body(self) -> None:
        with respx.mock:
            respx.get(TARGET).mock(
                return_value=httpx.Response(
                    200, content=gzip.compress(b"up 1\n"), headers={"Content-Encoding": "gzip"}
                )
            )
            result = runner.invoke(app, ["scrape", TARGET])

        assert result.exit_code == 0, result.output
        assert "up 1" in result.output

    def test_target_is_normalised(self) -> None:
        with respx.mock:
            route = respx.get("http://10.0.0.5/metrics").mock(
                return_value=httpx.Response(200, content=b"up 1\n")
            )
            result = runner.invoke(app, ["scrape", "http://10.0.0.5:80/metrics/"])

        assert result.exit_code == 0, result.output
        assert route.called

    def test_upstream_error_exits_non_zero(self) -> None:
        with respx.mock:
            respx.get(TARGET).mock(return_value=httpx.Response(500, text="boom"))
            result = runner.invoke(app, ["scrape", TARGET])

        assert result.exit_code == 1
        assert "boom" in result.output
