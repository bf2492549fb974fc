"""MCP server and CLI for a browser agent that learns skills by repetition."""

from .agent import AgentEvent, SkillAgent, create_agent
from .config import settings
from .exceptions import (
    AgentStoppedError,
    CapabilityError,
    MCPBrowserSkillsError,
    NotFoundError,
    PersistenceError,
    UnsupportedActionError,
    ValidationError,
)

__all__ = [
    "settings",
    "SkillAgent",
    "AgentEvent",
    "create_agent",
    "MCPBrowserSkillsError",
    "ValidationError",
    "NotFoundError",
    "CapabilityError",
    "UnsupportedActionError",
    "PersistenceError",
    "AgentStoppedError",
]
