"""
Agent module - the brain of the system.

Includes:
- Agent: session handling, planning and execution per message
- SessionStore: In-memory conversation sessions with TTL eviction
- SlidingWindowMemory: Recent window plus running summary
- Planner / Executor: Plan-and-execute loop over registered tools
"""

from .core import Agent, ChatResponse, build_context_text
from .executor import Executor
from .memory import LLMSummarizer, SlidingWindowMemory, Summarizer
from .planner import Plan, Planner, PlanStatus, Step, StepStatus
from .session import Message, MessageRole, Session, SessionStore

__all__ = [
    "Agent",
    "ChatResponse",
    "build_context_text",
    "Executor",
    "LLMSummarizer",
    "SlidingWindowMemory",
    "Summarizer",
    "Plan",
    "Planner",
    "PlanStatus",
    "Step",
    "StepStatus",
    "Message",
    "MessageRole",
    "Session",
    "SessionStore",
]
