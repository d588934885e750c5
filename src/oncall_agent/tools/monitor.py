"""
Monitoring tools: metric time series and alert lookup.
"""

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from typing import Any, Protocol

import httpx
import structlog

from .base import BaseTool, ToolDefinition, ToolParameter, ToolResult
from .log_query import as_int, parse_time, resolve_time_range

logger = structlog.get_logger()

DEFAULT_STEP = "1m"
DEFAULT_ALERT_LIMIT = 50
SUPPORTED_METRICS = ("cpu", "memory", "qps", "latency", "error_rate")


@dataclass
class MetricsQueryRequest:
    service: str
    metric: str
    start_time: datetime
    end_time: datetime
    step: str = DEFAULT_STEP


@dataclass
class MetricPoint:
    timestamp: str
    value: float


@dataclass
class MetricsQueryResponse:
    metric: str
    points: list[MetricPoint] = field(default_factory=list)


@dataclass
class AlertsQueryRequest:
    service: str = ""
    severity: str = ""
    status: str = ""
    limit: int = DEFAULT_ALERT_LIMIT


@dataclass
class Alert:
    id: str
    service: str
    name: str
    severity: str
    status: str
    message: str
    start_time: str = ""
    resolve_time: str = ""


@dataclass
class AlertsQueryResponse:
    alerts: list[Alert] = field(default_factory=list)
    total: int = 0


class MonitorClient(Protocol):
    async def query_metrics(self, request: MetricsQueryRequest) -> MetricsQueryResponse:
        ...

    async def query_alerts(self, request: AlertsQueryRequest) -> AlertsQueryResponse:
        ...


class HTTPMonitorClient:
    """Metrics/alerts backend reached over HTTP."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}{path}",
                params={k: v for k, v in params.items() if v not in (None, "")},
            )
            response.raise_for_status()
            return response.json()

    async def query_metrics(self, request: MetricsQueryRequest) -> MetricsQueryResponse:
        data = await self._get("/metrics", {
            "service": request.service,
            "metric": request.metric,
            "start_time": request.start_time.isoformat(),
            "end_time": request.end_time.isoformat(),
            "step": request.step,
        })
        points = [
            MetricPoint(timestamp=str(p.get("timestamp", "")), value=float(p.get("value", 0.0)))
            for p in data.get("points", [])
        ]
        return MetricsQueryResponse(metric=data.get("metric", request.metric), points=points)

    async def query_alerts(self, request: AlertsQueryRequest) -> AlertsQueryResponse:
        data = await self._get("/alerts", asdict(request))
        alerts = [
            Alert(
                id=str(a.get("id", "")),
                service=a.get("service", ""),
                name=a.get("name", ""),
                severity=a.get("severity", ""),
                status=a.get("status", ""),
                message=a.get("message", ""),
                start_time=str(a.get("start_time", "")),
                resolve_time=str(a.get("resolve_time") or ""),
            )
            for a in data.get("alerts", [])
        ]
        return AlertsQueryResponse(alerts=alerts, total=data.get("total", len(alerts)))


class MetricsQueryTool(BaseTool):
    """Query monitoring metrics such as CPU, memory, QPS and latency."""

    def __init__(self, client: MonitorClient):
        self.client = client

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="monitor_metrics",
            description="Query service monitoring metrics such as CPU, memory, QPS, latency and error rate.",
            parameters=[
                ToolParameter("service", "string", "Service name", required=True),
                ToolParameter("metric", "string", "Metric: " + "/".join(SUPPORTED_METRICS), required=True),
                ToolParameter("start_time", "string", "Start time (RFC 3339)"),
                ToolParameter("end_time", "string", "End time (RFC 3339)"),
                ToolParameter("step", "string", "Sampling interval: 1m/5m/1h"),
            ],
        )

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        service = params.get("service")
        if not isinstance(service, str) or not service:
            return ToolResult(success=False, error="service is required")

        metric = params.get("metric")
        if not isinstance(metric, str) or not metric:
            return ToolResult(success=False, error="metric is required")

        start, end = resolve_time_range(
            parse_time(params.get("start_time")),
            parse_time(params.get("end_time")),
        )
        request = MetricsQueryRequest(
            service=service,
            metric=metric,
            start_time=start,
            end_time=end,
            step=params.get("step") or DEFAULT_STEP,
        )

        try:
            response = await self.client.query_metrics(request)
        except Exception as e:
            logger.error("Metrics query failed", service=service, metric=metric, error=str(e))
            return ToolResult(success=False, error=f"query failed: {e}")

        return ToolResult(success=True, data=asdict(response) if is_dataclass(response) else response)


class AlertQueryTool(BaseTool):
    """Look up firing or resolved alerts."""

    def __init__(self, client: MonitorClient):
        self.client = client

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="alert_query",
            description="Query service alerts.",
            parameters=[
                ToolParameter("service", "string", "Service name"),
                ToolParameter("severity", "string", "Severity: critical/warning/info"),
                ToolParameter("status", "string", "Status: firing/resolved"),
                ToolParameter("limit", "integer", "Max alerts to return"),
            ],
        )

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        request = AlertsQueryRequest(
            service=params.get("service") or "",
            severity=params.get("severity") or "",
            status=params.get("status") or "",
            limit=as_int(params.get("limit"), DEFAULT_ALERT_LIMIT),
        )

        try:
            response = await self.client.query_alerts(request)
        except Exception as e:
            logger.error("Alert query failed", service=request.service, error=str(e))
            return ToolResult(success=False, error=f"query failed: {e}")

        return ToolResult(success=True, data=asdict(response) if is_dataclass(response) else response)
