"""
Tests for endpoint verification, using httpx.MockTransport in place of the
network.
"""

from io import StringIO
from pathlib import Path

import httpx

from site_provisioner.audit_logger import AuditLogger
from site_provisioner.enums import LogLevel
from site_provisioner.models import DesiredConfig
from site_provisioner.self_test import SelfTest


def demo_config() -> DesiredConfig:
    return DesiredConfig(
        site_name="demo",
        app_pool_name="demoPool",
        runtime_version="v4.0",
        bindings=("demo.localtest.me", "demo.example.com"),
        web_root=Path("."),
    )


def test_all_endpoints_served() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text="ok")

    result = SelfTest(demo_config(), transport=httpx.MockTransport(handler)).run()

    assert result.success is True
    assert result.failed_endpoints == []
    assert seen == [
        "http://demo.localtest.me/",
        "https://demo.localtest.me/",
        "http://demo.example.com/",
        "https://demo.example.com/",
    ]
    assert [r.protocol for r in result.endpoint_results] == ["http", "https", "http", "https"]


def test_client_errors_count_as_served() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404))

    result = SelfTest(demo_config(), transport=transport).run()

    assert result.success is True
    assert all(r.http_status_code == 404 for r in result.endpoint_results)


def test_server_errors_and_connection_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "demo.example.com":
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.scheme == "https":
            return httpx.Response(503)
        return httpx.Response(200)

    logger = AuditLogger(output_stream=StringIO())
    result = SelfTest(demo_config(), logger=logger, transport=httpx.MockTransport(handler)).run()

    assert result.success is False
    failed = result.failed_endpoints
    assert [r.url for r in failed] == [
        "https://demo.localtest.me/",
        "http://demo.example.com/",
        "https://demo.example.com/",
    ]
    assert failed[0].http_status_code == 503
    assert failed[1].http_status_code is None
    assert failed[1].error.startswith("ConnectError")
    assert [e.level for e in logger.entries] == [
        LogLevel.INFO, LogLevel.WARN, LogLevel.WARN, LogLevel.WARN,
    ]
