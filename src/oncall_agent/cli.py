"""
Command-line interface for OnCall-Agent.
"""

import argparse
import asyncio
import logging
import sys

import structlog
import uvicorn

from .config import get_settings

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Set up structlog with a console or JSON renderer."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="oncall-agent",
        description="OnCall-Agent - conversational assistant for alert analysis and troubleshooting",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("tools", help="List the tools enabled by the current configuration")

    recall_parser = subparsers.add_parser("recall", help="Search the knowledge base")
    recall_parser.add_argument("query", help="Question to search for")
    recall_parser.add_argument("--top-k", type=int, default=None, help="Number of documents to return")
    recall_parser.add_argument("--knowledge-dir", default=None, help="Directory of .md/.txt files to index first")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    if args.command == "serve":
        run_server(args.host or settings.host, args.port or settings.port, args.reload)
    elif args.command == "config":
        ok = show_config(args.check)
        if not ok:
            sys.exit(1)
    elif args.command == "tools":
        show_tools()
    elif args.command == "recall":
        show_recall(
            args.query,
            args.top_k or settings.rag_top_k,
            args.knowledge_dir or settings.knowledge_dir,
        )
    else:
        parser.print_help()


def run_server(host: str, port: int, reload: bool) -> None:
    """Run the FastAPI server."""
    logger.info("Starting OnCall-Agent server", host=host, port=port)

    uvicorn.run(
        "oncall_agent.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level="info",
    )


def mask(value: str) -> str:
    if not value:
        return "(not set)"
    return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"


def check_config(settings) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` for the given settings."""
    errors = []
    warnings = []

    llm_config = settings.get_llm_config()
    if not llm_config.api_key:
        errors.append(f"No API key set for provider '{llm_config.provider}'")

    if settings.enable_rag and not settings.openai_api_key:
        errors.append("ENABLE_RAG requires OPENAI_API_KEY for embeddings")

    if not settings.log_api_url:
        warnings.append("LOG_API_URL not set - log_query tool disabled")

    if not settings.monitor_api_url:
        warnings.append("MONITOR_API_URL not set - monitor_metrics and alert_query tools disabled")

    return errors, warnings


def show_config(check: bool) -> bool:
    """Show current configuration. Returns False if ``check`` found errors."""
    settings = get_settings()
    llm_config = settings.get_llm_config()

    print(f"\n=== {settings.app_name} Configuration ===\n")

    print("Server:")
    print(f"  Host: {settings.host}")
    print(f"  Port: {settings.port}")
    print(f"  Debug: {settings.debug}")
    print(f"  Log: {settings.log_level} ({settings.log_format})")

    print("\nLLM:")
    print(f"  Provider: {llm_config.provider}")
    print(f"  Model: {llm_config.model}")
    print(f"  Base URL: {llm_config.base_url or '(provider default)'}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")

    print("\nSessions:")
    print(f"  TTL: {settings.session_ttl_minutes} min")
    print(f"  Sweep Interval: {settings.session_cleanup_interval_seconds} s")
    print(f"  Max History: {settings.max_history}")
    print(f"  Summary After: {settings.summary_after}")
    print(f"  Max Plan Revisions: {settings.max_plan_revisions}")

    print("\nRetrieval:")
    print(f"  Enabled: {settings.enable_rag}")
    print(f"  Embedding Model: {settings.embedding_model}")
    print(f"  Chunks: {settings.chunk_size} (overlap {settings.chunk_overlap})")
    print(f"  Top K: {settings.rag_top_k}")

    print("\nTool Backends:")
    print(f"  Logs: {settings.log_api_url or '(not set)'}")
    print(f"  Monitoring: {settings.monitor_api_url or '(not set)'}")
    print(f"  Timeout: {settings.tool_timeout_seconds} s")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors, warnings = check_config(settings)

    if errors:
        print("❌ Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("⚠️  Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("✅ Configuration looks good!")
    elif not errors:
        print("\n✅ Configuration is valid (with warnings)")
    else:
        print("\n❌ Configuration has errors - fix them before starting")

    return not errors


def show_tools() -> None:
    """Print the tools enabled by the current configuration."""
    from .tools import create_default_registry

    registry = create_default_registry(get_settings())
    definitions = registry.list()

    if not definitions:
        print("No tools enabled. Set LOG_API_URL and/or MONITOR_API_URL.")
        return

    for definition in definitions:
        print(f"\n{definition.name}: {definition.description}")
        for param in definition.parameters:
            required = " (required)" if param.required else ""
            print(f"  - {param.name} [{param.type}]{required}: {param.description}")


async def recall(service, query: str, top_k: int, knowledge_dir: str = "") -> list:
    """Index ``knowledge_dir`` (if given) into ``service`` and search it."""
    if knowledge_dir:
        await service.index_directory(knowledge_dir)
    return await service.retrieve(query, top_k)


def show_recall(query: str, top_k: int, knowledge_dir: str) -> None:
    """Print the documents retrieved for a query."""
    from .rag import create_rag_service

    settings = get_settings()
    if not knowledge_dir:
        print("No knowledge to search. Pass --knowledge-dir or set KNOWLEDGE_DIR.")
        sys.exit(1)

    docs = asyncio.run(recall(create_rag_service(settings), query, top_k, knowledge_dir))

    print(f"Q: {query}")
    for doc in docs:
        source = doc.metadata.get("source", doc.id)
        print(f"\n[{doc.score:.3f}] {source}\n{doc.content}")
    print(f"\n{len(docs)} document(s)")


if __name__ == "__main__":
    main()
