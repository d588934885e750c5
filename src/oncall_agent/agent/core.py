"""
Core agent: session handling, context building, planning and execution.

For every message the agent:
1. Records the user turn on the session
2. Builds conversational context (summary + recent window)
3. Optionally retrieves background knowledge
4. Asks the planner for a plan and runs it through the executor
5. Records the assistant turn from the step results
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

import structlog

from ..config import Settings, get_settings
from ..errors import InvalidInputError
from ..llm.base import BaseLLM
from ..rag.service import Document, Retriever, format_context
from ..tools.registry import ToolRegistry
from .executor import Executor
from .memory import Summarizer, SlidingWindowMemory, format_messages
from .planner import Plan, Planner, Step
from .session import Message, MessageRole, Session, SessionStore

logger = structlog.get_logger()

DEFAULT_SESSION_ID = "default"
FALLBACK_RESPONSE = "I wasn't able to produce an answer for that request."
RESULT_SEPARATOR = "\n\n"

ChunkCallback = Callable[[str], Awaitable[None]]


@dataclass
class ChatResponse:
    """Outcome of one chat turn."""

    response: str
    session_id: str
    plan: Plan | None = None
    knowledge: list[Document] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"response": self.response, "session_id": self.session_id}
        if self.plan is not None:
            data["plan"] = self.plan.to_dict()
        if self.knowledge:
            data["knowledge"] = [doc.to_dict() for doc in self.knowledge]
        return data


def build_response(plan: Plan) -> str:
    """Join the non-empty step results, or fall back to a fixed apology."""
    results = [step.result for step in plan.steps if step.result]
    return RESULT_SEPARATOR.join(results) if results else FALLBACK_RESPONSE


def format_step_chunk(step: Step, text: str) -> str:
    """Render a finished step as a streaming chunk."""
    if step.error:
        return f"❌ {step.description}: {step.error}\n\n"
    return f"✅ {step.description}\n{text}\n\n"


def build_context_text(
    summary: str,
    recent: Sequence[Message],
    knowledge: Sequence[Document] = (),
) -> str:
    """Render the context block handed to the planner."""
    parts = []

    if summary:
        parts.append(f"### Conversation summary\n{summary}")

    if recent:
        parts.append(f"### Recent conversation\n{format_messages(list(recent)).rstrip()}")

    if knowledge:
        parts.append(f"### Relevant knowledge\n{format_context(knowledge).rstrip()}")

    return "\n\n".join(parts)


class Agent:
    """Conversational ops agent. All collaborators are injected."""

    def __init__(
        self,
        llm: BaseLLM,
        tool_registry: ToolRegistry,
        session_store: SessionStore,
        retriever: Retriever | None = None,
        summarizer: Summarizer | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.llm = llm
        self.tool_registry = tool_registry
        self.session_store = session_store
        self.retriever = retriever

        self.memory = SlidingWindowMemory(
            max_history=self.settings.max_history,
            summary_after=self.settings.summary_after,
            summarizer=summarizer,
        )
        self.planner = Planner(llm)
        self.executor = Executor(
            tool_registry,
            planner=self.planner,
            max_revisions=self.settings.max_plan_revisions,
        )

    def _open_session(self, user_id: str, session_id: str, message: str) -> Session:
        if not user_id or not user_id.strip():
            raise InvalidInputError("user_id is required")
        if not message or not message.strip():
            raise InvalidInputError("message is required")

        session_id = session_id.strip() if session_id and session_id.strip() else DEFAULT_SESSION_ID
        return self.session_store.get_or_create(user_id, session_id)

    async def _retrieve(self, query: str) -> list[Document]:
        if self.retriever is None:
            return []
        try:
            return await self.retriever.retrieve(query, self.settings.rag_top_k)
        except Exception as e:
            logger.warning("Knowledge retrieval failed, continuing without it", error=str(e))
            return []

    async def _prepare(self, user_id: str, session_id: str, message: str) -> tuple[Session, Plan, list[Document]]:
        session = self._open_session(user_id, session_id, message)
        session.add_message(MessageRole.USER, message)

        summary, recent = await self.memory.build_context(session)
        knowledge = await self._retrieve(message)
        context = build_context_text(summary, recent, knowledge)

        plan = await self.planner.create_plan(message, self.tool_registry.list(), context)
        return session, plan, knowledge

    async def chat(self, user_id: str, session_id: str, message: str) -> ChatResponse:
        """Handle one message and return the final answer."""
        session, plan, knowledge = await self._prepare(user_id, session_id, message)
        logger.info("Processing message", user_id=user_id, session_id=session.id, steps=len(plan.steps))

        await self.executor.execute_plan(plan)

        response = build_response(plan)
        session.add_message(MessageRole.ASSISTANT, response)
        return ChatResponse(response=response, session_id=session.id, plan=plan, knowledge=knowledge)

    async def chat_stream(
        self,
        user_id: str,
        session_id: str,
        message: str,
        on_chunk: ChunkCallback,
    ) -> ChatResponse:
        """Handle one message, emitting a chunk as each step finishes.

        On failure the error chunk is emitted before the exception propagates,
        and no assistant message is recorded.
        """
        session, plan, knowledge = await self._prepare(user_id, session_id, message)
        logger.info("Streaming message", user_id=user_id, session_id=session.id, steps=len(plan.steps))

        emitted: list[str] = []

        async def on_step(step: Step, text: str) -> None:
            chunk = format_step_chunk(step, text)
            emitted.append(chunk)
            await on_chunk(chunk)

        await self.executor.execute_streaming(plan, on_step)

        response = "".join(emitted) or FALLBACK_RESPONSE
        session.add_message(MessageRole.ASSISTANT, response)
        return ChatResponse(response=response, session_id=session.id, plan=plan, knowledge=knowledge)
