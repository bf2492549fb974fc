"""Custom exceptions for the browser skill-learning agent."""


class MCPBrowserSkillsError(Exception):
    """Base exception for browser skill agent errors."""

    pass


class ValidationError(MCPBrowserSkillsError, ValueError):
    """Raised when a skill or action definition fails its schema contract."""

    pass


class NotFoundError(MCPBrowserSkillsError, LookupError):
    """Raised when a referenced skill or session does not exist."""

    pass


class CapabilityError(MCPBrowserSkillsError):
    """Raised when a browser capability call fails or times out."""

    pass


class UnsupportedActionError(CapabilityError):
    """Raised when an action tag has no dispatch handler."""

    pass


class PersistenceError(MCPBrowserSkillsError):
    """Raised when a snapshot cannot be written."""

    pass


class AgentStoppedError(MCPBrowserSkillsError):
    """Raised when an operation is requested on a stopped agent."""

    pass
