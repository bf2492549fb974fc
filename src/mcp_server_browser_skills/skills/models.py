"""Data models for browser skills.

A skill is a named, ordered sequence of primitive browser actions plus the
statistics accumulated every time it runs. Skills are promoted from
"attempted" to "learned" once their confidence reaches the learning threshold,
and that promotion is never undone automatically.

Actions form a closed tagged union keyed by ``type``; each variant only
carries the fields its capability call needs, so a ``click`` without a
selector is rejected at validation time rather than at dispatch time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..utils import utc_now

# Selector waits default to the skill timeout, bare waits to a short pause.
DEFAULT_WAIT_FOR_TIMEOUT_MS = 30_000
DEFAULT_SLEEP_MS = 1_000

# Stored in evidence when a successful run produced no after-screenshot.
EXECUTION_SUCCESS_SENTINEL = "execution-success"


class SkillCategory(str, Enum):
    """Functional area a skill belongs to."""

    NAVIGATION = "navigation"
    TASKS = "tasks"
    FILTERS = "filters"
    DATA = "data"
    INTERFACE = "interface"
    AUTOMATION = "automation"


class SkillDifficulty(str, Enum):
    """How hard a skill is expected to be to learn."""

    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


CATEGORY_PRIORITIES: dict[SkillCategory, int] = {
    SkillCategory.NAVIGATION: 10,
    SkillCategory.INTERFACE: 8,
    SkillCategory.TASKS: 6,
    SkillCategory.DATA: 4,
    SkillCategory.FILTERS: 3,
    SkillCategory.AUTOMATION: 2,
}

DIFFICULTY_WEIGHTS: dict[SkillDifficulty, int] = {
    SkillDifficulty.BASIC: 1,
    SkillDifficulty.INTERMEDIATE: 2,
    SkillDifficulty.ADVANCED: 3,
}


# --- Actions ---


class ActionBase(BaseModel):
    """Fields shared by every action variant."""

    description: str = ""
    optional: bool = False


class NavigateAction(ActionBase):
    type: Literal["navigate"] = "navigate"
    url: str = ""  # Empty means "use the execution context url"


class ClickAction(ActionBase):
    type: Literal["click"] = "click"
    selector: str = Field(min_length=1)


class TypeAction(ActionBase):
    type: Literal["type"] = "type"
    selector: str = Field(min_length=1)
    text: str = ""


class FillAction(ActionBase):
    """Clear the field, then set its value to `text`."""

    type: Literal["fill"] = "fill"
    selector: str = Field(min_length=1)
    text: str = ""


class SelectAction(ActionBase):
    """Choose the option whose value is `text`."""

    type: Literal["select"] = "select"
    selector: str = Field(min_length=1)
    text: str = ""


class HoverAction(ActionBase):
    type: Literal["hover"] = "hover"
    selector: str = Field(min_length=1)


class WaitAction(ActionBase):
    """Wait for `selector` when given, otherwise sleep for `timeout` ms."""

    type: Literal["wait"] = "wait"
    selector: str | None = None
    timeout: int | None = Field(default=None, ge=0)


class ExtractAction(ActionBase):
    """Read the page title, the current url, or the text of `selector`."""

    type: Literal["extract"] = "extract"
    extract_field: str | None = None
    selector: str | None = None

    @model_validator(mode="after")
    def _selector_required_for_text(self) -> "ExtractAction":
        if self.extract_field not in ("title", "url") and not self.selector:
            raise ValueError("extract action needs a selector unless extract_field is 'title' or 'url'")
        return self


class ScreenshotAction(ActionBase):
    type: Literal["screenshot"] = "screenshot"
    filename: str | None = None


Action = Annotated[
    Union[
        NavigateAction,
        ClickAction,
        TypeAction,
        FillAction,
        SelectAction,
        HoverAction,
        WaitAction,
        ExtractAction,
        ScreenshotAction,
    ],
    Field(discriminator="type"),
]


# --- Skills ---


class SkillSpec(BaseModel):
    """User- or catalog-supplied definition used to create a skill."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: SkillCategory
    difficulty: SkillDifficulty = SkillDifficulty.BASIC
    actions: list[Action] = Field(default_factory=list)
    selectors: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Skill(BaseModel):
    """A learnable browser skill with its accumulated statistics.

    Unknown fields found in a persisted snapshot are kept and written back.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: SkillCategory
    difficulty: SkillDifficulty = SkillDifficulty.BASIC
    actions: list[Action] = Field(default_factory=list)

    learned: bool = False
    attempts: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    selectors: list[str] = Field(default_factory=list)
    last_attempt: datetime = Field(default_factory=utc_now)
    last_success: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _success_within_attempts(self) -> "Skill":
        if self.success_count > self.attempts:
            raise ValueError(f"success_count ({self.success_count}) cannot exceed attempts ({self.attempts})")
        return self

    @property
    def success_rate(self) -> float:
        """Historical success rate (0 when never attempted)."""
        return self.success_count / max(self.attempts, 1)

    def to_dict(self) -> dict[str, Any]:
        """Convert skill to a JSON/YAML-safe dictionary (ISO timestamps)."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Skill":
        """Create skill from a persisted dictionary."""
        return cls.model_validate(data)

    def summary(self) -> dict[str, Any]:
        """Compact view used by listings."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "difficulty": self.difficulty.value,
            "learned": self.learned,
            "confidence": round(self.confidence, 3),
            "attempts": self.attempts,
            "success_count": self.success_count,
        }


# --- Execution results ---


@dataclass
class ActionOutcome:
    """Outcome of a single dispatched action."""

    action: Any
    success: bool
    result: Any = None
    error: str | None = None


@dataclass
class ExecutionResult:
    """Result of one skill run. Not persisted; it feeds skill and session updates."""

    skill_id: str
    skill_name: str
    success: bool = False
    time_elapsed: float = 0.0  # milliseconds
    actions: list[ActionOutcome] = field(default_factory=list)
    data_extracted: dict[str, Any] = field(default_factory=dict)
    screenshot: str | None = None  # After-screenshot of a successful run
    screenshots: list[str] = field(default_factory=list)  # Every screenshot taken during the run
    observations: list[str] = field(default_factory=list)
    confidence: float = 0.0
    learned_now: bool = False  # Crossed the learning threshold on this run
    improved: bool = False  # Stored confidence went up on this run

    @property
    def actions_succeeded(self) -> int:
        return sum(1 for outcome in self.actions if outcome.success)

    def to_response(self) -> dict[str, Any]:
        """Shape returned to outer transports."""
        return {
            "success": self.success,
            "confidence": self.confidence,
            "time_elapsed": self.time_elapsed,
            "observations": list(self.observations),
            "data_extracted": dict(self.data_extracted),
        }


@dataclass
class LearningMetrics:
    """Aggregate learning statistics over a skill store."""

    total_skills: int
    learned_skills: int
    average_confidence: float
    total_attempts: int
    success_rate: float
    skills_by_category: dict[str, int] = field(default_factory=dict)
    skills_by_difficulty: dict[str, int] = field(default_factory=dict)
    recent_improvements: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_skills": self.total_skills,
            "learned_skills": self.learned_skills,
            "average_confidence": round(self.average_confidence, 3),
            "total_attempts": self.total_attempts,
            "success_rate": round(self.success_rate, 3),
            "skills_by_category": dict(self.skills_by_category),
            "skills_by_difficulty": dict(self.skills_by_difficulty),
            "recent_improvements": list(self.recent_improvements),
        }
