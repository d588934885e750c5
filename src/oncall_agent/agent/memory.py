"""
Sliding-window conversation memory.

Keeps the most recent ``max_history`` messages verbatim and folds older ones
into a running summary. Summarization is best-effort: if the summarizer
fails the previous summary is used and the request carries on.
"""

from typing import Protocol

import structlog

from ..llm.base import BaseLLM
from .session import Message, Session

logger = structlog.get_logger()

DEFAULT_MAX_HISTORY = 50
DEFAULT_SUMMARY_AFTER = 20
SUMMARY_SEPARATOR = "\n\n"

# Per-message truncation inside the summarization transcript
MAX_TRANSCRIPT_CHARS = 300

SUMMARIZER_SYSTEM_PROMPT = (
    "You are a conversation summarizer for an operations assistant. "
    "Create concise, fact-preserving summaries."
)


class Summarizer(Protocol):
    """Compresses a run of messages into summary text."""

    async def summarize(self, messages: list[Message]) -> str:
        ...


def format_messages(messages: list[Message]) -> str:
    """Render messages as ``[role]: content`` lines."""
    return "".join(f"[{m.role.value}]: {m.content}\n" for m in messages)


class LLMSummarizer:
    """Summarizer backed by the generation service."""

    def __init__(self, llm: BaseLLM):
        self.llm = llm

    async def summarize(self, messages: list[Message]) -> str:
        transcript = "\n".join(
            f"{m.role.value.upper()}: {m.content[:MAX_TRANSCRIPT_CHARS]}" for m in messages
        )

        prompt = f"""Summarize the following conversation into a concise context block.
Preserve:
- Services, hosts, alerts and error messages that were mentioned
- Times, numbers and metric values
- What the user asked for and what was found or done
- Open questions that were not resolved

Keep it under 300 words.

Conversation:
{transcript}

Summary:"""

        text = await self.llm.complete(prompt, system_prompt=SUMMARIZER_SYSTEM_PROMPT)
        return text.strip()


class SlidingWindowMemory:
    """Builds the conversational context presented to the planner."""

    def __init__(
        self,
        max_history: int = DEFAULT_MAX_HISTORY,
        summary_after: int = DEFAULT_SUMMARY_AFTER,
        summarizer: Summarizer | None = None,
    ):
        if max_history <= 0:
            raise ValueError("max_history must be positive")
        self.max_history = max_history
        self.summary_after = max(1, summary_after)
        self.summarizer = summarizer

    async def build_context(self, session: Session) -> tuple[str, list[Message]]:
        """Return ``(summary, recent_messages)`` for a session.

        Messages that slid out of the window but are fewer than
        ``summary_after`` stay pending on the session and are summarized once
        enough of them accumulate.
        """
        messages = session.get_messages()
        summary = session.get_summary()

        if len(messages) <= self.max_history:
            return summary, messages

        boundary = len(messages) - self.max_history
        recent = messages[boundary:]

        if self.summarizer is None or boundary - session.summarized_count < self.summary_after:
            return summary, recent

        # Only one request folds a given batch; the others use the current summary.
        start = session.claim_summary(boundary)
        if start is None:
            return summary, recent

        to_summarize = messages[start:boundary]
        try:
            new_summary = await self.summarizer.summarize(to_summarize)
            if new_summary:
                summary = session.extend_summary(
                    new_summary, boundary, separator=SUMMARY_SEPARATOR, start=start
                )
                logger.info(
                    "Folded history into summary",
                    session_id=session.id,
                    summarized=len(to_summarize),
                    summary_chars=len(summary),
                )
        except Exception as e:
            logger.warning(
                "Summarization failed, keeping previous summary",
                session_id=session.id,
                pending=len(to_summarize),
                error=str(e),
            )
        finally:
            session.release_summary()

        return summary, recent
