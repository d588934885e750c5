"""
FastAPI application factory.

Manages the lifecycle of:
- The agent and its collaborators (LLM, tools, sessions, retrieval)
- The session eviction sweep
- Knowledge files loaded from ``knowledge_dir`` at startup
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ..agent import Agent, LLMSummarizer, SessionStore
from ..config import Settings, get_settings
from ..errors import (
    InvalidInputError,
    NotFoundError,
    OnCallError,
    StepExecutionError,
    UpstreamError,
)
from ..llm import create_llm
from ..rag import RAGService, create_rag_service
from ..tools import create_default_registry

logger = structlog.get_logger()

VERSION = "0.1.0"
CODE_OK = "OK"
SSE_DONE = "data: [DONE]\n\n"


class ChatRequest(BaseModel):
    """Chat request body."""
    user_id: str
    session_id: str = ""
    message: str


class KnowledgeRequest(BaseModel):
    """Document to add to the knowledge base."""
    content: str
    source: str = ""


def create_agent(settings: Settings) -> Agent:
    """Wire the agent from settings."""
    llm = create_llm(settings=settings)
    registry = create_default_registry(settings)
    store = SessionStore(
        ttl=timedelta(minutes=settings.session_ttl_minutes),
        cleanup_interval=settings.session_cleanup_interval_seconds,
    )

    retriever = create_rag_service(settings) if settings.enable_rag else None

    return Agent(
        llm=llm,
        tool_registry=registry,
        session_store=store,
        retriever=retriever,
        summarizer=LLMSummarizer(llm),
        settings=settings,
    )


def status_for(error: OnCallError) -> int:
    """HTTP status for an application error."""
    if isinstance(error, InvalidInputError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, UpstreamError):
        return 502
    return 500


def envelope(data: Any = None, code: str = CODE_OK, message: str = "success") -> dict[str, Any]:
    return {"code": code, "message": message, "data": data}


def sse_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def create_app(settings: Settings | None = None, agent: Agent | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    An ``agent`` may be passed in; otherwise one is built from settings.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        app.state.agent = agent or create_agent(settings)
        store = app.state.agent.session_store
        store.start()

        retriever = app.state.agent.retriever
        if settings.knowledge_dir and isinstance(retriever, RAGService):
            await retriever.index_directory(settings.knowledge_dir)

        logger.info("Agent ready", tools=app.state.agent.tool_registry.list_tools())

        yield

        await store.stop()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Conversational agent for alert analysis and troubleshooting",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OnCallError)
    async def oncall_error_handler(request: Request, exc: OnCallError):
        status = status_for(exc)
        if status >= 500:
            logger.error("Request failed", path=request.url.path, code=exc.code, error=str(exc))
        return JSONResponse(status_code=status, content=envelope(code=exc.code, message=str(exc)))

    # ------------------------------------------------------------------ #
    # Health & tools
    # ------------------------------------------------------------------ #
    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        current: Agent = request.app.state.agent
        return {
            "status": "healthy",
            "version": VERSION,
            "llm_provider": current.llm.provider_name,
            "tools": len(current.tool_registry),
            "sessions": len(current.session_store),
            "session_sweep_running": current.session_store.is_running,
            "rag_enabled": current.retriever is not None,
        }

    @app.get("/api/tools")
    async def list_tools(request: Request):
        """List registered tool definitions."""
        current: Agent = request.app.state.agent
        return envelope([d.to_dict() for d in current.tool_registry.list()])

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #
    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request):
        """Run one chat turn and return the final answer."""
        current: Agent = request.app.state.agent
        result = await current.chat(body.user_id, body.session_id, body.message)
        return envelope(result.to_dict())

    @app.post("/api/chat/stream")
    async def chat_stream(body: ChatRequest, request: Request):
        """Run one chat turn as server-sent events, one event per finished step."""
        current: Agent = request.app.state.agent

        # Reject bad input before the stream starts so it maps to a 400.
        if not body.user_id.strip() or not body.message.strip():
            raise InvalidInputError("user_id and message are required")

        queue: asyncio.Queue[str | None] = asyncio.Queue()

        async def on_chunk(chunk: str) -> None:
            await queue.put(sse_event({"content": chunk}))

        async def run() -> None:
            try:
                await current.chat_stream(body.user_id, body.session_id, body.message, on_chunk)
                await queue.put(SSE_DONE)
            except StepExecutionError as e:
                await queue.put(sse_event({"error": e.message}))
            except OnCallError as e:
                logger.error("Stream failed", code=e.code, error=str(e))
                await queue.put(sse_event({"error": str(e)}))
            except Exception:
                logger.exception("Stream failed unexpectedly")
                await queue.put(sse_event({"error": "internal error"}))
            finally:
                await queue.put(None)

        async def events() -> AsyncGenerator[str, None]:
            task = asyncio.create_task(run())
            try:
                while True:
                    item = await queue.get()
                    if item is None:
                        break
                    yield item
            finally:
                if not task.done():
                    task.cancel()

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # ------------------------------------------------------------------ #
    # Knowledge
    # ------------------------------------------------------------------ #
    @app.post("/api/knowledge")
    async def add_knowledge(body: KnowledgeRequest, request: Request):
        """Chunk, embed and store a document for retrieval."""
        current: Agent = request.app.state.agent
        if not isinstance(current.retriever, RAGService):
            raise InvalidInputError("knowledge retrieval is not enabled")
        if not body.content.strip():
            raise InvalidInputError("content is required")

        metadata = {"source": body.source} if body.source else {}
        docs = await current.retriever.index_document(body.content, metadata)
        return envelope({"chunks": len(docs), "ids": [d.id for d in docs]})

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #
    @app.get("/api/sessions/{user_id}/{session_id}")
    async def get_session(user_id: str, session_id: str, request: Request):
        """Return a session's summary and messages."""
        current: Agent = request.app.state.agent
        session = current.session_store.require(user_id, session_id)
        return envelope({
            "session_id": session.id,
            "user_id": session.user_id,
            "created_at": session.created_at.isoformat(),
            "updated_at": session.updated_at.isoformat(),
            "summary": session.get_summary(),
            "messages": [
                {"role": m.role.value, "content": m.content, "timestamp": m.timestamp.isoformat()}
                for m in session.get_messages()
            ],
        })

    @app.delete("/api/sessions/{user_id}/{session_id}")
    async def delete_session(user_id: str, session_id: str, request: Request):
        """Drop a session."""
        current: Agent = request.app.state.agent
        current.session_store.require(user_id, session_id)
        current.session_store.delete(user_id, session_id)
        return envelope({"deleted": True})

    return app
