"""
Log query tool: searches service logs by level, keyword and time range.
"""

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import httpx
import structlog

from .base import BaseTool, ToolDefinition, ToolParameter, ToolResult

logger = structlog.get_logger()

DEFAULT_LOG_LIMIT = 100
DEFAULT_LOOKBACK = timedelta(hours=1)


@dataclass
class LogQueryRequest:
    service: str
    level: str = ""
    keyword: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    limit: int = DEFAULT_LOG_LIMIT

    def to_params(self) -> dict[str, Any]:
        params = asdict(self)
        params["start_time"] = self.start_time.isoformat() if self.start_time else None
        params["end_time"] = self.end_time.isoformat() if self.end_time else None
        return {k: v for k, v in params.items() if v not in (None, "")}


@dataclass
class LogEntry:
    timestamp: str
    level: str
    service: str
    message: str
    trace_id: str = ""


@dataclass
class LogQueryResponse:
    logs: list[LogEntry] = field(default_factory=list)
    total: int = 0


class LogClient(Protocol):
    async def query(self, request: LogQueryRequest) -> LogQueryResponse:
        ...


def parse_time(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp; anything unparsable is ignored."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_time_range(
    start: datetime | None,
    end: datetime | None,
    lookback: timedelta = DEFAULT_LOOKBACK,
) -> tuple[datetime, datetime]:
    """Default the end to now and the start to ``lookback`` before the end."""
    end = end or datetime.now(timezone.utc)
    start = start or end - lookback
    return start, end


def as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return default


class HTTPLogClient:
    """Log backend reached over HTTP (``GET {base_url}/logs``)."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def query(self, request: LogQueryRequest) -> LogQueryResponse:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/logs", params=request.to_params())
            response.raise_for_status()
            data = response.json()

        logs = [
            LogEntry(
                timestamp=str(item.get("timestamp", "")),
                level=item.get("level", ""),
                service=item.get("service", request.service),
                message=item.get("message", ""),
                trace_id=item.get("trace_id", ""),
            )
            for item in data.get("logs", [])
        ]
        return LogQueryResponse(logs=logs, total=data.get("total", len(logs)))


class LogQueryTool(BaseTool):
    """Query service logs."""

    def __init__(self, client: LogClient):
        self.client = client

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="log_query",
            description=(
                "Query service logs. Filter by service name, log level, keyword "
                "and time range."
            ),
            parameters=[
                ToolParameter("service", "string", "Service name", required=True),
                ToolParameter("level", "string", "Log level: debug/info/warn/error"),
                ToolParameter("keyword", "string", "Keyword to search for"),
                ToolParameter("start_time", "string", "Start time (RFC 3339)"),
                ToolParameter("end_time", "string", "End time (RFC 3339)"),
                ToolParameter("limit", "integer", "Max entries to return, default 100"),
            ],
        )

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        service = params.get("service")
        if not isinstance(service, str) or not service:
            return ToolResult(success=False, error="service is required")

        start, end = resolve_time_range(
            parse_time(params.get("start_time")),
            parse_time(params.get("end_time")),
        )
        request = LogQueryRequest(
            service=service,
            level=params.get("level") or "",
            keyword=params.get("keyword") or "",
            start_time=start,
            end_time=end,
            limit=as_int(params.get("limit"), DEFAULT_LOG_LIMIT),
        )

        try:
            response = await self.client.query(request)
        except Exception as e:
            logger.error("Log query failed", service=service, error=str(e))
            return ToolResult(success=False, error=f"query failed: {e}")

        return ToolResult(success=True, data=asdict(response) if is_dataclass(response) else response)
