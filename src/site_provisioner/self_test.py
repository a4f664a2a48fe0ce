"""
Endpoint verification for a provisioned site.

After a reconcile run, every binding should answer on both HTTP and
HTTPS. This module probes each endpoint and reports reachability and
status codes. TLS verification is disabled because the certificates are
self-signed; this checks that the binding is served, not that it is
trusted.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .audit_logger import AuditLogger
from .enums import LogLevel
from .hostnames import site_url
from .models import DesiredConfig


@dataclass
class EndpointTestResult:
    """Result of probing a single endpoint."""

    url: str
    hostname: str
    protocol: str
    success: bool
    response_time_ms: float
    error: Optional[str] = None
    http_status_code: Optional[int] = None


@dataclass
class SelfTestResult:
    """Complete verification result for a site."""

    success: bool
    endpoint_results: list[EndpointTestResult] = field(default_factory=list)
    total_duration_ms: float = 0.0

    @property
    def failed_endpoints(self) -> list[EndpointTestResult]:
        """Return list of failed endpoint probes."""
        return [r for r in self.endpoint_results if not r.success]


class SelfTest:
    """
    Probes the HTTP and HTTPS endpoint of every binding.

    Any response below 500 counts as served; 4xx usually means the site is
    up but the web root has no default document.
    """

    CONNECTIVITY_TIMEOUT = 5.0

    def __init__(
        self,
        desired: DesiredConfig,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._desired = desired
        self._logger = logger
        self._transport = transport

    def run(self) -> SelfTestResult:
        start_time = time.perf_counter()
        results: list[EndpointTestResult] = []

        with httpx.Client(
            verify=False,
            timeout=httpx.Timeout(self.CONNECTIVITY_TIMEOUT),
            follow_redirects=False,
            transport=self._transport,
        ) as client:
            for hostname in self._desired.bindings:
                results.append(self._probe(client, f"http://{hostname}/", hostname, "http"))
                results.append(self._probe(client, site_url(hostname) + "/", hostname, "https"))

        return SelfTestResult(
            success=all(r.success for r in results),
            endpoint_results=results,
            total_duration_ms=self._elapsed_ms(start_time),
        )

    def _probe(
        self, client: httpx.Client, url: str, hostname: str, protocol: str
    ) -> EndpointTestResult:
        start_time = time.perf_counter()
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            result = EndpointTestResult(
                url=url,
                hostname=hostname,
                protocol=protocol,
                success=False,
                response_time_ms=self._elapsed_ms(start_time),
                error=f"{type(e).__name__}: {e}",
            )
        else:
            result = EndpointTestResult(
                url=url,
                hostname=hostname,
                protocol=protocol,
                success=response.status_code < 500,
                response_time_ms=self._elapsed_ms(start_time),
                http_status_code=response.status_code,
            )

        if self._logger:
            self._logger.log(
                LogLevel.INFO if result.success else LogLevel.WARN,
                "SelfTest",
                f"Probed {url}",
                {"success": result.success, "status": result.http_status_code,
                 "error": result.error},
            )
        return result

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000
