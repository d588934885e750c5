"""
Tests for tools module.
"""

import json
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from oncall_agent.config import Settings
from oncall_agent.errors import ToolNotFoundError
from oncall_agent.tools.base import FunctionTool, ToolDefinition, ToolParameter, ToolResult
from oncall_agent.tools.log_query import (
    LogEntry,
    LogQueryResponse,
    LogQueryTool,
    as_int,
    parse_time,
)
from oncall_agent.tools.monitor import (
    Alert,
    AlertQueryTool,
    AlertsQueryResponse,
    MetricPoint,
    MetricsQueryResponse,
    MetricsQueryTool,
)
from oncall_agent.tools.registry import ToolRegistry, create_default_registry


async def echo_handler(text: str = "") -> ToolResult:
    return ToolResult(success=True, output=text)


def make_echo_tool(name: str = "echo") -> FunctionTool:
    return FunctionTool(
        tool_name=name,
        description="Echo the input",
        parameters=[
            ToolParameter("text", "string", "Text to echo", required=True),
            ToolParameter("times", "integer", "Repeat count"),
        ],
        handler=echo_handler,
    )


def test_tool_result_success():
    """Test successful tool result."""
    result = ToolResult(success=True, output="Test output", data={"key": "value"})

    assert result.success is True
    assert result.output == "Test output"
    assert result.data == {"key": "value"}
    assert result.error is None


def test_tool_result_text_prefers_output():
    assert ToolResult(success=True, output="out", data={"a": 1}).text() == "out"
    assert ToolResult(success=True, data="plain").text() == "plain"
    assert json.loads(ToolResult(success=True, data={"a": 1}).text()) == {"a": 1}
    assert ToolResult(success=True).text() == ""


def test_tool_definition_schema():
    definition = make_echo_tool().definition()

    schema = definition.to_schema()

    assert schema["name"] == "echo"
    assert schema["parameters"]["type"] == "object"
    assert set(schema["parameters"]["properties"]) == {"text", "times"}
    assert schema["parameters"]["required"] == ["text"]


def test_registry_round_trip():
    """Register, look up, list and export."""
    registry = ToolRegistry()
    tool = make_echo_tool()

    registry.register(tool)

    assert registry.get("echo") is tool
    assert "echo" in registry
    assert len(registry) == 1
    assert registry.list_tools() == ["echo"]
    assert [d.name for d in registry.list()] == ["echo"]

    exported = registry.export_for_model()
    assert exported[0]["parameters"]["required"] == ["text"]


def test_registry_register_replaces_same_name():
    registry = ToolRegistry()
    first = make_echo_tool()
    second = make_echo_tool()

    registry.register(first)
    registry.register(second)

    assert registry.get("echo") is second
    assert len(registry) == 1


def test_registry_get_unknown_raises():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError) as exc_info:
        registry.get("missing")

    assert exc_info.value.code == "TOOL_NOT_FOUND"


def test_registry_unregister():
    registry = ToolRegistry()
    registry.register(make_echo_tool())

    registry.unregister("echo")
    registry.unregister("echo")

    assert "echo" not in registry


def test_registry_openai_format_and_json():
    registry = ToolRegistry()
    registry.register(make_echo_tool())

    wrapped = registry.to_openai_format()
    assert wrapped[0]["type"] == "function"
    assert wrapped[0]["function"]["name"] == "echo"

    data = json.loads(registry.to_json())
    assert data[0]["parameters"][0] == {
        "name": "text",
        "type": "string",
        "description": "Text to echo",
        "required": True,
    }


@pytest.mark.asyncio
async def test_registry_execute():
    registry = ToolRegistry()
    registry.register(make_echo_tool())

    result = await registry.execute("echo", {"text": "hi"})

    assert result.success is True
    assert result.output == "hi"


@pytest.mark.asyncio
async def test_registry_execute_unknown_tool():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError):
        await registry.execute("missing", {})


def test_default_registry_depends_on_backends():
    empty = create_default_registry(Settings(_env_file=None))
    assert len(empty) == 0

    full = create_default_registry(Settings(
        _env_file=None,
        log_api_url="http://logs.local",
        monitor_api_url="http://monitor.local",
    ))
    assert sorted(full.list_tools()) == ["alert_query", "log_query", "monitor_metrics"]


def test_parse_time():
    assert parse_time("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_time("2024-05-01T10:00:00").tzinfo == timezone.utc
    assert parse_time("yesterday") is None
    assert parse_time(None) is None


def test_as_int():
    assert as_int(5, 100) == 5
    assert as_int("20", 100) == 20
    assert as_int("many", 100) == 100
    assert as_int(True, 100) == 100
    assert as_int(None, 100) == 100


@pytest.mark.asyncio
async def test_log_query_requires_service():
    client = MagicMock()
    client.query = AsyncMock()
    tool = LogQueryTool(client)

    result = await tool.execute({"level": "error"})

    assert result.success is False
    assert result.error == "service is required"
    client.query.assert_not_called()


@pytest.mark.asyncio
async def test_log_query_builds_request_with_defaults():
    client = MagicMock()
    client.query = AsyncMock(return_value=LogQueryResponse(
        logs=[LogEntry(timestamp="t", level="error", service="api", message="boom")],
        total=1,
    ))
    tool = LogQueryTool(client)

    result = await tool.execute({"service": "api", "level": "error", "limit": "10"})

    assert result.success is True
    assert result.data["total"] == 1
    assert result.data["logs"][0]["message"] == "boom"

    request = client.query.await_args.args[0]
    assert request.service == "api"
    assert request.limit == 10
    assert (request.end_time - request.start_time).total_seconds() == 3600


@pytest.mark.asyncio
async def test_log_query_client_error():
    client = MagicMock()
    client.query = AsyncMock(side_effect=RuntimeError("connection refused"))
    tool = LogQueryTool(client)

    result = await tool.execute({"service": "api"})

    assert result.success is False
    assert result.error == "query failed: connection refused"


@pytest.mark.asyncio
async def test_metrics_query_requires_metric():
    client = MagicMock()
    tool = MetricsQueryTool(client)

    result = await tool.execute({"service": "api"})

    assert result.success is False
    assert result.error == "metric is required"


@pytest.mark.asyncio
async def test_metrics_query_success():
    client = MagicMock()
    client.query_metrics = AsyncMock(return_value=MetricsQueryResponse(
        metric="cpu",
        points=[MetricPoint(timestamp="t", value=0.93)],
    ))
    tool = MetricsQueryTool(client)

    result = await tool.execute({"service": "api", "metric": "cpu"})

    assert result.success is True
    assert result.data["points"][0]["value"] == 0.93
    assert client.query_metrics.await_args.args[0].step == "1m"


@pytest.mark.asyncio
async def test_alert_query_defaults():
    client = MagicMock()
    client.query_alerts = AsyncMock(return_value=AlertsQueryResponse(
        alerts=[Alert(id="a1", service="api", name="HighCPU", severity="critical",
                      status="firing", message="cpu > 90%")],
        total=1,
    ))
    tool = AlertQueryTool(client)

    result = await tool.execute({})

    assert result.success is True
    assert result.data["alerts"][0]["name"] == "HighCPU"
    assert client.query_alerts.await_args.args[0].limit == 50


def test_tool_definitions_have_names():
    client = MagicMock()
    for tool, name in (
        (LogQueryTool(client), "log_query"),
        (MetricsQueryTool(client), "monitor_metrics"),
        (AlertQueryTool(client), "alert_query"),
    ):
        assert tool.name == name
        assert isinstance(tool.definition(), ToolDefinition)
