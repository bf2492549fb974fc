"""Agent sessions: models, persisted history and analysis."""

from .analyzer import analyze_session, format_duration, summarize_sessions
from .models import MAX_OBSERVATIONS_PER_SESSION, MAX_SCREENSHOTS_PER_SESSION, Session
from .store import SessionStore

__all__ = [
    "MAX_OBSERVATIONS_PER_SESSION",
    "MAX_SCREENSHOTS_PER_SESSION",
    "Session",
    "SessionStore",
    "analyze_session",
    "format_duration",
    "summarize_sessions",
]
