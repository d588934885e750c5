"""
Plan-and-execute planner.

Turns a goal plus the tool catalog into an ordered list of steps by asking
the LLM for JSON. Model output is parsed leniently: a fenced ``json`` block
first, then the outermost ``{...}``; anything unusable becomes a single
direct-answer step holding the raw reply.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

import structlog

from ..errors import PlanParseError
from ..llm.base import BaseLLM, LLMMessage
from ..tools.base import ToolDefinition

logger = structlog.get_logger()

NO_CHANGE_KEY = "no_change"
NO_CHANGE_SENTINEL = '{"no_change": true}'

_FENCED_JSON = re.compile(r"```json\s*(.+?)\s*```", re.DOTALL)

SYSTEM_PROMPT = """You are an operations AI agent responsible for analysing alerts, troubleshooting incidents and carrying out operational checks.

Your capabilities:
1. Understand the symptoms the user describes
2. Draw up a sensible investigation plan
3. Call tools to query logs, monitoring metrics and alerts
4. Perform root-cause analysis from the query results
5. Recommend fixes and next steps

Plan the work for the user's request and complete it step by step."""


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PlanStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Step:
    """One unit of plan execution: a tool call or a direct answer."""

    id: int
    description: str
    tool_name: str | None = None
    tool_params: dict[str, Any] = field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    result: str = ""
    error: str = ""

    @property
    def is_tool_step(self) -> bool:
        return bool(self.tool_name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
        }
        if self.tool_name:
            data["tool_name"] = self.tool_name
            data["tool_params"] = self.tool_params
        if self.result:
            data["result"] = self.result
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class Plan:
    """Ordered steps produced for one user goal."""

    goal: str
    steps: list[Step] = field(default_factory=list)
    status: PlanStatus = PlanStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
        }


def extract_json(text: str) -> str:
    """Pull the JSON payload out of a model reply, or return ``""``."""
    match = _FENCED_JSON.search(text)
    if match:
        return match.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]

    return ""


def _parse_step(raw: Any, index: int) -> Step:
    if not isinstance(raw, dict):
        raise PlanParseError(f"step {index} is not an object")

    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        raise PlanParseError(f"step {index} has no description")

    tool_name = raw.get("tool_name") or None
    if tool_name is not None and not isinstance(tool_name, str):
        raise PlanParseError(f"step {index} has a non-string tool_name")

    tool_params = raw.get("tool_params") or {}
    if not isinstance(tool_params, dict):
        raise PlanParseError(f"step {index} has non-object tool_params")

    try:
        status = StepStatus(raw.get("status") or StepStatus.PENDING.value)
    except ValueError:
        status = StepStatus.PENDING

    step_id = raw.get("id")
    if not isinstance(step_id, int) or isinstance(step_id, bool):
        step_id = index

    return Step(
        id=step_id,
        description=description.strip(),
        tool_name=tool_name,
        tool_params=tool_params,
        status=status,
    )


def parse_steps(response: str) -> list[Step]:
    """Parse the ``{"steps": [...]}`` payload of a model reply.

    Raises ``PlanParseError`` if the reply holds no usable step list.
    """
    payload = extract_json(response) or response

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise PlanParseError("reply is not valid JSON", cause=e) from e

    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise PlanParseError("reply has no steps list")

    steps = [_parse_step(raw, i) for i, raw in enumerate(data["steps"], start=1)]
    if not steps:
        raise PlanParseError("reply has an empty steps list")
    return steps


def parse_plan_response(response: str, goal: str = "") -> Plan:
    return Plan(goal=goal, steps=parse_steps(response))


def is_no_change(response: str) -> bool:
    """True if a revision reply is the no-change sentinel."""
    payload = extract_json(response)
    if payload:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and data.get(NO_CHANGE_KEY) is True:
            return True
    return f'"{NO_CHANGE_KEY}"' in response and "steps" not in response


def format_tool_catalog(tools: Sequence[ToolDefinition]) -> str:
    lines = []
    for tool in tools:
        params = ", ".join(
            f"{p.name}: {p.type}{' (required)' if p.required else ''}" for p in tool.parameters
        )
        lines.append(f"- {tool.name}: {tool.description}" + (f" Params: {params}" if params else ""))
    return "\n".join(lines) if lines else "(no tools available)"


class Planner:
    """Creates and revises plans through the LLM. Holds no per-request state."""

    def __init__(self, llm: BaseLLM, system_prompt: str = SYSTEM_PROMPT):
        self.llm = llm
        self.system_prompt = system_prompt

    def build_planning_prompt(
        self,
        goal: str,
        tools: Sequence[ToolDefinition],
        context: str = "",
    ) -> str:
        parts = ["## Available tools", format_tool_catalog(tools)]

        if context:
            parts += ["", "## Context", context]

        parts += ["", "## User goal", goal]

        parts.append("""
## Output format
Reply with the execution plan as JSON:
```json
{
  "steps": [
    {"id": 1, "description": "what this step does", "tool_name": "tool name", "tool_params": {"param": "value"}}
  ]
}
```

Steps that need no tool omit tool_name and tool_params; their description is the answer given to the user.""")

        return "\n".join(parts)

    def build_revision_prompt(self, plan: Plan, step_result: str) -> str:
        plan_json = json.dumps(plan.to_dict(), ensure_ascii=False)
        return f"""Given the latest execution result, decide whether the remaining plan needs to change.

## Current plan
{plan_json}

## Latest result
{step_result}

If the plan should change, reply with JSON {{"steps": [...]}} listing only the steps that should run next.
If no change is needed, reply with {NO_CHANGE_SENTINEL}."""

    async def create_plan(
        self,
        goal: str,
        tools: Sequence[ToolDefinition],
        context: str = "",
    ) -> Plan:
        """Ask the LLM for a plan. LLM errors propagate; parse errors never do."""
        messages = [LLMMessage(role="user", content=self.build_planning_prompt(goal, tools, context))]
        response = await self.llm.generate(messages=messages, system_prompt=self.system_prompt)
        reply = response.content

        try:
            steps = parse_steps(reply)
        except PlanParseError as e:
            logger.info("Plan reply not structured, answering directly", reason=e.message)
            steps = [Step(id=1, description=reply)]

        # Nothing has run yet; only an explicit skip survives from the reply.
        for step in steps:
            if step.status != StepStatus.SKIPPED:
                step.status = StepStatus.PENDING

        plan = Plan(goal=goal, steps=steps, status=PlanStatus.PENDING)
        logger.info(
            "Plan created",
            steps=len(plan.steps),
            tools=[s.tool_name for s in plan.steps if s.tool_name],
        )
        return plan

    async def revise_plan(self, plan: Plan, step_result: str) -> Plan | None:
        """Ask whether the remaining steps should change.

        Returns ``None`` for no change. Failures are logged and treated as no
        change so a flaky revision never aborts a running plan.
        """
        try:
            reply = await self.llm.complete(self.build_revision_prompt(plan, step_result))
        except Exception as e:
            logger.warning("Plan revision failed, keeping plan", error=str(e))
            return None

        if is_no_change(reply):
            return None

        try:
            steps = parse_steps(reply)
        except PlanParseError as e:
            logger.warning("Unparsable plan revision ignored", reason=e.message)
            return None

        # Steps echoed back with a terminal status already ran.
        steps = [s for s in steps if s.status not in (StepStatus.COMPLETED, StepStatus.FAILED)]
        if not steps:
            return None

        return Plan(goal=plan.goal, steps=steps)
