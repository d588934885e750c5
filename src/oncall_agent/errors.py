"""
Error taxonomy for OnCall-Agent.

Every error carries a stable ``code`` so the API layer can map it to a
response without inspecting messages.
"""

from typing import Any

CODE_INTERNAL = "INTERNAL_ERROR"
CODE_SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
CODE_TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
CODE_INVALID_INPUT = "INVALID_INPUT"
CODE_LLM_FAILED = "LLM_FAILED"
CODE_RAG_FAILED = "RAG_FAILED"
CODE_PARSE_FAILED = "PARSE_FAILED"
CODE_TOOL_EXEC_FAILED = "TOOL_EXEC_FAILED"


class OnCallError(Exception):
    """Base class for all application errors."""

    code: str = CODE_INTERNAL

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"[{self.code}] {self.message}: {self.cause}"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(OnCallError):
    """A named resource does not exist."""


class ToolNotFoundError(NotFoundError):
    code = CODE_TOOL_NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class SessionNotFoundError(NotFoundError):
    code = CODE_SESSION_NOT_FOUND

    def __init__(self, user_id: str, session_id: str):
        super().__init__(f"Session '{session_id}' not found for user '{user_id}'")
        self.user_id = user_id
        self.session_id = session_id


class InvalidInputError(OnCallError):
    code = CODE_INVALID_INPUT


class UpstreamError(OnCallError):
    """A call to an external service failed."""


class LLMError(UpstreamError):
    code = CODE_LLM_FAILED


class RetrievalError(UpstreamError):
    code = CODE_RAG_FAILED


class PlanParseError(OnCallError):
    """Model output was not a structured plan. Always recovered by the planner."""

    code = CODE_PARSE_FAILED


class StepExecutionError(OnCallError):
    """A plan step failed; the plan halted at that step.

    The plan is kept so callers can inspect partial results.
    """

    code = CODE_TOOL_EXEC_FAILED

    def __init__(self, step: Any, plan: Any, cause: BaseException | None = None):
        super().__init__(f"Step {step.id} failed: {step.error}", cause)
        self.step = step
        self.plan = plan
