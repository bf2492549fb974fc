"""Structured logging with per-session context using structlog and contextvars."""

import logging
import sys
from contextvars import ContextVar

import structlog

# Context variables for the current session
current_session_id: ContextVar[str | None] = ContextVar("current_session_id", default=None)
current_agent_name: ContextVar[str | None] = ContextVar("current_agent_name", default=None)

_configured = False


def setup_structured_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON output and per-session context.

    All output goes to stderr so stdio transports keep stdout for protocol frames.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # Inject session context
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )

    _configured = True


def bind_session_context(session_id: str, agent_name: str) -> None:
    """Bind session context for all subsequent logs in this async context.

    Args:
        session_id: Identifier of the session that just opened
        agent_name: Name of the owning agent
    """
    current_session_id.set(session_id)
    current_agent_name.set(agent_name)
    structlog.contextvars.bind_contextvars(session_id=session_id, agent=agent_name)


def clear_session_context() -> None:
    """Clear session context after the session closes."""
    current_session_id.set(None)
    current_agent_name.set(None)
    structlog.contextvars.clear_contextvars()


def get_session_logger(name: str = "mcp_server_browser_skills") -> structlog.stdlib.BoundLogger:
    """Get a structlog logger carrying the session context."""
    return structlog.get_logger(name)


def get_current_session_id() -> str | None:
    """Get the current session ID from context."""
    return current_session_id.get()
