"""
Plan executor.

Runs plan steps in order and stops at the first failure. After each tool step
that produced output the planner may rewrite the steps that have not run yet.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from ..errors import StepExecutionError
from ..tools.registry import ToolRegistry
from .planner import Plan, Planner, PlanStatus, Step, StepStatus

logger = structlog.get_logger()

DEFAULT_MAX_REVISIONS = 5
CANCELLED = "cancelled"

StepCallback = Callable[[Step, str], Awaitable[None]]


class Executor:
    """Drives a plan through the tool registry."""

    def __init__(
        self,
        tool_registry: ToolRegistry,
        planner: Planner | None = None,
        max_revisions: int = DEFAULT_MAX_REVISIONS,
    ):
        self.tool_registry = tool_registry
        self.planner = planner
        self.max_revisions = max_revisions

    async def execute_plan(self, plan: Plan) -> Plan:
        """Execute every step. Raises ``StepExecutionError`` on the first failure."""
        return await self._run(plan, None)

    async def execute_streaming(self, plan: Plan, on_step: StepCallback) -> Plan:
        """Like ``execute_plan`` but awaits ``on_step`` after each finished step."""
        return await self._run(plan, on_step)

    async def _run(self, plan: Plan, on_step: StepCallback | None) -> Plan:
        plan.status = PlanStatus.RUNNING
        revisions = 0
        i = 0

        while i < len(plan.steps):
            step = plan.steps[i]

            if step.status == StepStatus.SKIPPED:
                i += 1
                continue

            step.status = StepStatus.RUNNING
            logger.info("Executing step", step_id=step.id, tool=step.tool_name)

            try:
                cause = await self._execute_step(step)
            except asyncio.CancelledError:
                step.status = StepStatus.FAILED
                step.error = CANCELLED
                plan.status = PlanStatus.FAILED
                logger.info("Plan cancelled", step_id=step.id)
                raise

            if step.status == StepStatus.FAILED:
                plan.status = PlanStatus.FAILED
                logger.warning("Step failed", step_id=step.id, tool=step.tool_name, error=step.error)
                if on_step is not None:
                    await on_step(step, step.error)
                raise StepExecutionError(step, plan, cause=cause)

            if on_step is not None:
                await on_step(step, step.result)

            if (
                step.is_tool_step
                and step.result
                and self.planner is not None
                and revisions < self.max_revisions
            ):
                revised = await self.planner.revise_plan(plan, step.result)
                if revised is not None and revised.steps:
                    revisions += 1
                    plan.steps = plan.steps[:i + 1] + revised.steps
                    logger.info(
                        "Plan revised",
                        after_step=step.id,
                        remaining=len(revised.steps),
                        revision=revisions,
                    )

            i += 1

        plan.status = PlanStatus.COMPLETED
        logger.info("Plan completed", steps=len(plan.steps), revisions=revisions)
        return plan

    async def _execute_step(self, step: Step) -> Exception | None:
        """Run one step in place. Returns the exception that failed it, if any."""
        if not step.is_tool_step:
            step.result = step.description
            step.status = StepStatus.COMPLETED
            return None

        try:
            result = await self.tool_registry.execute(step.tool_name, step.tool_params)
        except Exception as e:
            step.error = str(e)
            step.status = StepStatus.FAILED
            return e

        if not result.success:
            step.error = result.error or "tool reported failure"
            step.status = StepStatus.FAILED
            return None

        step.result = result.text()
        step.status = StepStatus.COMPLETED
        return None
