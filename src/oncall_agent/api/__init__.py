"""
HTTP and SSE transport for the agent.
"""

from .app import create_agent, create_app

__all__ = ["create_agent", "create_app"]
