"""Data models for agent sessions."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..utils import utc_now

MAX_SCREENSHOTS_PER_SESSION = 50
MAX_OBSERVATIONS_PER_SESSION = 100


class Session(BaseModel):
    """One bounded window of agent activity."""

    id: str
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    url: str = "about:blank"

    skills_attempted: list[str] = Field(default_factory=list)
    skills_learned: list[str] = Field(default_factory=list)
    skills_improved: list[str] = Field(default_factory=list)

    screenshots: list[str] = Field(default_factory=list)
    observations: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    data_extracted: dict[str, Any] = Field(default_factory=dict)

    autonomy_level: int = Field(default=0, ge=0, le=100)  # Snapshot at start
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)  # Set by finalize()

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration_seconds(self) -> float:
        """Elapsed seconds, up to now while the session is still open."""
        end = self.end_time or utc_now()
        return (end - self.start_time).total_seconds()

    def add_screenshot(self, path: str) -> None:
        """Record a screenshot, evicting the oldest beyond the cap."""
        self.screenshots.append(path)
        if len(self.screenshots) > MAX_SCREENSHOTS_PER_SESSION:
            self.screenshots = self.screenshots[-MAX_SCREENSHOTS_PER_SESSION:]

    def add_observation(self, text: str) -> None:
        """Record an observation, evicting the oldest beyond the cap."""
        self.observations.append(text)
        if len(self.observations) > MAX_OBSERVATIONS_PER_SESSION:
            self.observations = self.observations[-MAX_OBSERVATIONS_PER_SESSION:]

    def record_attempt(self, skill_id: str, learned: bool, improved: bool) -> None:
        """Track a skill run; a skill counts as learned or improved, never both."""
        if skill_id not in self.skills_attempted:
            self.skills_attempted.append(skill_id)

        if learned:
            if skill_id in self.skills_improved:
                self.skills_improved.remove(skill_id)
            if skill_id not in self.skills_learned:
                self.skills_learned.append(skill_id)
        elif improved and skill_id not in self.skills_learned and skill_id not in self.skills_improved:
            self.skills_improved.append(skill_id)

    def finalize(self, end_time: datetime) -> None:
        """Stamp the end time and compute the success rate."""
        self.end_time = end_time
        successful = len(self.skills_learned) + len(self.skills_improved)
        self.success_rate = min(1.0, successful / max(len(self.skills_attempted), 1))

    def to_dict(self) -> dict[str, Any]:
        """Convert session to a JSON-safe dictionary (ISO timestamps)."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls.model_validate(data)
