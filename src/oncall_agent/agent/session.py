"""
In-memory session management for conversations.

Sessions are keyed by ``user_id:session_id`` so two users never share state
even when they pick the same session id. A coarse lock guards the key space;
each session carries its own lock for message and summary mutation.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog

from ..errors import SessionNotFoundError

logger = structlog.get_logger()

KEY_SEPARATOR = ":"


class MessageRole(str, Enum):
    """Message roles for conversation."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """A single conversation turn. Immutable once appended."""

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)


class Session:
    """Conversation state for one (user, session) pair."""

    def __init__(self, session_id: str, user_id: str):
        now = _utcnow()
        self.id = session_id
        self.user_id = user_id
        self.created_at = now
        self.updated_at = now
        self._messages: list[Message] = []
        self._summary = ""
        self._summarized_count = 0
        self._summarizing = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, user_id={self.user_id!r}, messages={self.message_count})"

    def add_message(self, role: MessageRole | str, content: str) -> Message:
        """Append a message and touch ``updated_at``."""
        message = Message(role=MessageRole(role), content=content)
        with self._lock:
            self._messages.append(message)
            self.updated_at = message.timestamp
        return message

    def get_messages(self) -> list[Message]:
        """Get a copy of all messages in insertion order."""
        with self._lock:
            return list(self._messages)

    def get_recent_messages(self, n: int) -> list[Message]:
        """Get the last ``n`` messages."""
        with self._lock:
            if n <= 0:
                return []
            return list(self._messages[-n:])

    @property
    def message_count(self) -> int:
        with self._lock:
            return len(self._messages)

    def get_summary(self) -> str:
        with self._lock:
            return self._summary

    def set_summary(self, summary: str) -> None:
        """Overwrite the history summary."""
        with self._lock:
            self._summary = summary

    @property
    def summarized_count(self) -> int:
        """Number of oldest messages already folded into the summary."""
        with self._lock:
            return self._summarized_count

    def extend_summary(
        self,
        text: str,
        upto: int,
        separator: str = "\n\n",
        start: int | None = None,
    ) -> str:
        """Append ``text`` to the summary and mark messages ``[:upto]`` as summarized.

        When ``start`` is given the batch is only applied if it still begins at
        the current watermark; a batch another request already folded is
        dropped. Returns the summary.
        """
        with self._lock:
            if start is not None and start != self._summarized_count:
                return self._summary
            if self._summary:
                self._summary = f"{self._summary}{separator}{text}"
            else:
                self._summary = text
            self._summarized_count = max(self._summarized_count, upto)
            return self._summary

    def claim_summary(self, upto: int) -> int | None:
        """Reserve messages ``[summarized_count:upto]`` for summarization.

        Returns the start index, or ``None`` if nothing is pending or another
        summarization is already in flight. Pair with ``release_summary()``.
        """
        with self._lock:
            if self._summarizing or upto <= self._summarized_count:
                return None
            self._summarizing = True
            return self._summarized_count

    def release_summary(self) -> None:
        with self._lock:
            self._summarizing = False

    def touch(self) -> None:
        with self._lock:
            self.updated_at = _utcnow()


class SessionStore:
    """Thread-safe registry of live sessions with TTL eviction.

    Call ``start()`` from a running event loop to launch the periodic sweep
    and ``stop()`` on shutdown.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(minutes=30),
        cleanup_interval: float = 300.0,
    ):
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._running = False
        self._task: asyncio.Task | None = None

    @staticmethod
    def make_key(user_id: str, session_id: str) -> str:
        return f"{user_id}{KEY_SEPARATOR}{session_id}"

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_or_create(self, user_id: str, session_id: str) -> Session:
        """Get the session for this key, creating it if absent."""
        key = self.make_key(user_id, session_id)

        with self._lock:
            session = self._sessions.get(key)
            if session is not None:
                session.touch()
                return session

            session = Session(session_id, user_id)
            self._sessions[key] = session

        logger.info("Created new session", user_id=user_id, session_id=session_id)
        return session

    def get(self, user_id: str, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(self.make_key(user_id, session_id))

    def require(self, user_id: str, session_id: str) -> Session:
        """Get a session or raise ``SessionNotFoundError``."""
        session = self.get(user_id, session_id)
        if session is None:
            raise SessionNotFoundError(user_id, session_id)
        return session

    def delete(self, user_id: str, session_id: str) -> None:
        """Remove a session. Removing an absent session is a no-op."""
        with self._lock:
            removed = self._sessions.pop(self.make_key(user_id, session_id), None)

        if removed is not None:
            logger.info("Session deleted", user_id=user_id, session_id=session_id)

    def cleanup(self) -> int:
        """Evict sessions idle for longer than the TTL. Returns the eviction count."""
        cutoff = _utcnow() - self.ttl

        with self._lock:
            expired = [key for key, s in self._sessions.items() if s.updated_at < cutoff]
            for key in expired:
                del self._sessions[key]

        if expired:
            logger.info("Evicted expired sessions", count=len(expired))
        return len(expired)

    async def _cleanup_loop(self) -> None:
        """Periodic eviction sweep."""
        while self._running:
            try:
                await asyncio.sleep(self.cleanup_interval)
                self.cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Session cleanup error", error=str(e))

    def start(self) -> None:
        """Start the eviction sweep."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info("Session eviction started", ttl_seconds=self.ttl.total_seconds())

    async def stop(self) -> None:
        """Stop the eviction sweep and wait for it to exit."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session eviction stopped")

    @property
    def is_running(self) -> bool:
        return self._running
