"""Tests for ``metrics_proxy.config.Settings``."""

from __future__ import annotations

import dataclasses

import pytest

from metrics_proxy.config import ACCEPT_HEADER, Settings


class TestDefaults:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "METRICS_PROXY_ADDR",
            "METRICS_PROXY_SCRAPE_TIMEOUT",
            "METRICS_PROXY_BODY_LIMIT",
            "METRICS_PROXY_ROUTE_PREFIXES",
            "METRICS_PROXY_PORT_MODE",
            "METRICS_PROXY_TRANSPORT_ERROR_STATUS",
            "METRICS_PROXY_ERROR_BODY_LIMIT",
            "METRICS_PROXY_LIMIT_IDENTITY_BODIES",
            "METRICS_PROXY_FOLLOW_REDIRECTS",
        ):
            monkeypatch.delenv(name, raising=False)

        s = Settings()
        assert s.listen_addr == ":8444"
        assert s.scrape_timeout == 5.0
        assert s.scrape_timeout_hint == 10
        assert s.body_limit == 2 * 1024 * 1024
        assert s.route_prefixes == ()
        assert s.port_mode == "substring"
        assert s.transport_error_status == 502
        assert s.error_body_limit is None
        assert s.limit_identity_bodies is False
        assert s.follow_redirects is True

    def test_request_headers(self) -> None:
        headers = Settings(user_agent="Prometheus/2.7.1", scrape_timeout_hint=10).request_headers
        assert headers == {
            "Accept": ACCEPT_HEADER,
            "Accept-Encoding": "gzip",
            "User-Agent": "Prometheus/2.7.1",
            "X-Prometheus-Scrape-Timeout-Seconds": "10",
        }


class TestEnvironment:
    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METRICS_PROXY_ADDR", "127.0.0.1:9000")
        monkeypatch.setenv("METRICS_PROXY_SCRAPE_TIMEOUT", "2.5")
        monkeypatch.setenv("METRICS_PROXY_ROUTE_PREFIXES", "/metrics, /api/metrics")
        monkeypatch.setenv("METRICS_PROXY_PORT_MODE", "authority")
        monkeypatch.setenv("METRICS_PROXY_LIMIT_IDENTITY_BODIES", "true")
        monkeypatch.setenv("METRICS_PROXY_ERROR_BODY_LIMIT", "1024")
        monkeypatch.setenv("METRICS_PROXY_FOLLOW_REDIRECTS", "no")

        s = Settings()
        assert s.listen_addr == "127.0.0.1:9000"
        assert s.scrape_timeout == 2.5
        assert s.route_prefixes == ("/metrics", "/api/metrics")
        assert s.port_mode == "authority"
        assert s.limit_identity_bodies is True
        assert s.error_body_limit == 1024
        assert s.follow_redirects is False

    def test_bad_number_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METRICS_PROXY_SCRAPE_TIMEOUT", "soon")
        with pytest.raises(ValueError):
            Settings()


class TestValidation:
    def test_frozen(self) -> None:
        s = Settings()
        with pytest.raises(dataclasses.FrozenInstanceError):
            s.scrape_timeout = 1.0  # type: ignore[misc]

    def test_replace_builds_new_instance(self) -> None:
        s = Settings(scrape_timeout=5.0)
        t = dataclasses.replace(s, scrape_timeout=1.0)
        assert s.scrape_timeout == 5.0
        assert t.scrape_timeout == 1.0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"port_mode": "regex"},
            {"scrape_timeout": 0},
            {"body_limit": 0},
            {"error_body_limit": -1},
            {"transport_error_status": 42},
            {"route_prefixes": ("metrics",)},
            {"route_prefixes": ("/",)},
        ],
    )
    def test_invalid_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValueError):
            Settings(**overrides)


class TestConfigureLogging:
    def test_single_handler_and_level(self) -> None:
        import logging

        from metrics_proxy.log import configure_logging

        logger = logging.getLogger("metrics_proxy")
        saved = (logger.level, list(logger.handlers), logger.propagate)
        try:
            configure_logging("debug")
            configure_logging("warning")
            assert logger.level == logging.WARNING
            assert len(logger.handlers) == 1
            assert logger.propagate is False
        finally:
            logger.setLevel(saved[0])
            logger.handlers[:] = saved[1]
            logger.propagate = saved[2]
