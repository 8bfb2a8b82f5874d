"""
Post-deploy health gate.

Issues one instant query (`up` by default) against a Prometheus-compatible
metrics backend and turns the response into a HEALTHY/UNHEALTHY/UNREACHABLE
verdict. Single-shot: no retries here. A scrape that has not happened yet
fails the gate; callers wanting resilience retry the whole run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import structlog

from releasegate.observability import metrics
from releasegate.orchestrator.exceptions import HealthCheckFailure

logger = structlog.get_logger(__name__)

QUERY_PATH = "/api/v1/query"
UP_SENTINEL = 1.0


class HealthVerdict(str, Enum):
    HEALTHY = "HEALTHY"
    UNHEALTHY = "UNHEALTHY"
    UNREACHABLE = "UNREACHABLE"


@dataclass
class HealthQueryResult:
    """
    Outcome of one health query.

    Attributes:
        endpoint: Full query URL
        verdict: HEALTHY, UNHEALTHY or UNREACHABLE
        samples: Parsed (target, value) pairs
        status_code: HTTP status, None if no response was received
        body: Raw response body
        reason: Why the verdict is not HEALTHY
    """

    endpoint: str
    verdict: HealthVerdict
    samples: list[tuple[str, str]] = field(default_factory=list)
    status_code: int | None = None
    body: str = ""
    reason: str = ""

    @property
    def healthy(self) -> bool:
        return self.verdict is HealthVerdict.HEALTHY

    @property
    def up_targets(self) -> list[str]:
        return [target for target, value in self.samples if _is_up(value)]

    def summary(self) -> str:
        lines = [f"{self.verdict.value} ({self.endpoint})"]
        lines.extend(f"  {target} = {value}" for target, value in self.samples)
        if self.reason:
            lines.append(f"  reason: {self.reason}")
        return "\n".join(lines)


def query_url(metrics_host: str) -> str:
    """Instant query URL for a metrics host base URL."""
    return metrics_host.rstrip("/") + QUERY_PATH


def parse_samples(payload: Any) -> list[tuple[str, str]]:
    """
    Extract (target, value) samples from a query response.

    Accepts the Prometheus envelope ({"data": {"result": [...]}}), a bare
    list of result objects, or a single result object. Results without a
    two-element `value` array are ignored.
    """
    if isinstance(payload, dict) and "data" in payload:
        data = payload["data"]
        results = data.get("result", []) if isinstance(data, dict) else []
    elif isinstance(payload, dict) and "value" in payload:
        results = [payload]
    elif isinstance(payload, list):
        results = payload
    else:
        results = []

    if not isinstance(results, list):
        return []

    samples: list[tuple[str, str]] = []
    for item in results:
        if not isinstance(item, dict):
            continue
        value = item.get("value")
        if not isinstance(value, list) or len(value) != 2:
            continue
        samples.append((_target_name(item.get("metric")), str(value[1])))
    return samples


def evaluate(samples: list[tuple[str, str]]) -> HealthVerdict:
    """HEALTHY iff at least one sample is up."""
    if any(_is_up(value) for _, value in samples):
        return HealthVerdict.HEALTHY
    return HealthVerdict.UNHEALTHY


def _is_up(value: str) -> bool:
    try:
        return float(value) == UP_SENTINEL
    except ValueError:
        return False


def _target_name(metric: Any) -> str:
    if not isinstance(metric, dict):
        return "unknown"
    for key in ("instance", "job", "__name__"):
        if metric.get(key):
            return str(metric[key])
    return "unknown"


class HealthGate:
    """
    Health gate against a metrics backend.

    Example:
        >>> gate = HealthGate()
        >>> result = await gate.check("http://10.0.0.12:9090", timeout=5.0)
        >>> result.verdict
        <HealthVerdict.HEALTHY: 'HEALTHY'>
    """

    def __init__(self, client: httpx.AsyncClient | None = None, query: str = "up") -> None:
        """
        Args:
            client: Shared HTTP client; a short-lived one is created per check if None
            query: Instant query to evaluate
        """
        self._client = client
        self._query = query

    async def check(self, metrics_endpoint: str, timeout: float = 10.0) -> HealthQueryResult:
        """
        Query the metrics backend once.

        Args:
            metrics_endpoint: Metrics host base URL (e.g. http://prometheus:9090)
            timeout: Request timeout in seconds

        Returns:
            HealthQueryResult; never raises for HTTP or transport errors
        """
        url = query_url(metrics_endpoint)
        log = logger.bind(endpoint=url, query=self._query)

        # httpx timeouts apply per phase; the overall deadline bounds a slow body
        try:
            async with asyncio.timeout(timeout):
                if self._client is not None:
                    response = await self._client.get(
                        url, params={"query": self._query}, timeout=timeout
                    )
                else:
                    async with httpx.AsyncClient(timeout=timeout) as client:
                        response = await client.get(url, params={"query": self._query})
        except (TimeoutError, httpx.TimeoutException) as e:
            result = HealthQueryResult(
                endpoint=url,
                verdict=HealthVerdict.UNREACHABLE,
                reason=f"timeout after {timeout}s: {type(e).__name__}",
            )
            return self._finish(result, log)
        except httpx.HTTPError as e:
            result = HealthQueryResult(
                endpoint=url,
                verdict=HealthVerdict.UNREACHABLE,
                reason=f"{type(e).__name__}: {e}",
            )
            return self._finish(result, log)

        result = HealthQueryResult(
            endpoint=url,
            verdict=HealthVerdict.UNHEALTHY,
            status_code=response.status_code,
            body=response.text,
        )

        if not response.is_success:
            result.reason = f"HTTP {response.status_code}"
            return self._finish(result, log)

        try:
            payload = response.json()
        except ValueError:
            result.reason = "response body is not JSON"
            return self._finish(result, log)

        result.samples = parse_samples(payload)
        result.verdict = evaluate(result.samples)
        if not result.healthy:
            result.reason = (
                "no samples in response"
                if not result.samples
                else "no target reports up == 1"
            )
        return self._finish(result, log)

    def _finish(self, result: HealthQueryResult, log: Any) -> HealthQueryResult:
        metrics.record_health_check(result.verdict.value)
        log.info(
            "health_gate_checked",
            verdict=result.verdict.value,
            status_code=result.status_code,
            up_targets=result.up_targets,
            samples=len(result.samples),
            reason=result.reason or None,
        )
        return result


def ensure_healthy(result: HealthQueryResult) -> HealthQueryResult:
    """
    Convert a non-HEALTHY result into HealthCheckFailure.

    Raises:
        HealthCheckFailure: verdict is UNHEALTHY or UNREACHABLE
    """
    if not result.healthy:
        raise HealthCheckFailure(
            verdict=result.verdict.value,
            endpoint=result.endpoint,
            output=result.summary(),
            reason=result.reason,
        )
    return result
