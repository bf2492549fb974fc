"""Session analysis helpers for reports and status tools."""

from typing import Any

from .models import Session


def format_duration(ms: float) -> str:
    """Human readable duration: "1h 2m 3s", "2m 3s" or "3s"."""
    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def analyze_session(session: Session) -> dict[str, Any]:
    """Per-session counts plus productivity (learned per attempt) and quality (1 - errors per observation)."""
    duration_ms = session.duration_seconds * 1000
    attempted = len(session.skills_attempted)

    return {
        "id": session.id,
        "duration": duration_ms,
        "duration_formatted": format_duration(duration_ms),
        "skills_attempted": attempted,
        "skills_learned": len(session.skills_learned),
        "skills_improved": len(session.skills_improved),
        "success_rate": session.success_rate,
        "screenshots_taken": len(session.screenshots),
        "observations_count": len(session.observations),
        "errors_count": len(session.errors),
        "autonomy_level": session.autonomy_level,
        "productivity": len(session.skills_learned) / max(attempted, 1),
        "quality": 1 - len(session.errors) / max(len(session.observations), 1),
    }


def summarize_sessions(sessions: list[Session]) -> dict[str, Any]:
    """Aggregate analysis over many sessions. An empty list yields zeroed totals."""
    analyses = [analyze_session(s) for s in sessions]
    count = len(analyses)

    if not count:
        return {
            "total_sessions": 0,
            "total_duration": 0.0,
            "average_session_duration": 0.0,
            "total_skills_learned": 0,
            "average_success_rate": 0.0,
            "average_autonomy_level": 0.0,
            "total_screenshots": 0,
            "most_productive_session": None,
            "best_quality_session": None,
        }

    total_duration = sum(a["duration"] for a in analyses)
    return {
        "total_sessions": count,
        "total_duration": total_duration,
        "average_session_duration": total_duration / count,
        "total_skills_learned": sum(a["skills_learned"] for a in analyses),
        "average_success_rate": sum(a["success_rate"] for a in analyses) / count,
        "average_autonomy_level": sum(a["autonomy_level"] for a in analyses) / count,
        "total_screenshots": sum(a["screenshots_taken"] for a in analyses),
        "most_productive_session": max(analyses, key=lambda a: a["productivity"])["id"],
        "best_quality_session": max(analyses, key=lambda a: a["quality"])["id"],
    }
