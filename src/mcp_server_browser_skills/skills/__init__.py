"""Skills subsystem: definitions, persistence, execution and scoring.

A skill is an ordered list of primitive browser actions. Every execution:

1. Counts an attempt before the first action runs
2. Dispatches the actions in order through the capability provider
   - a failing required action stops the run
   - a failing optional action is noted and skipped
3. On success scores the run (historical rate, action rate, speed bonus)
4. Marks the skill learned once the score reaches 0.7, permanently
5. Persists the skill snapshot whatever the outcome
"""

from .catalog import DEFAULT_SKILLS, default_skill_specs
from .confidence import LEARNING_THRESHOLD, compute_confidence
from .executor import SkillExecutor
from .models import (
    Action,
    ActionOutcome,
    ClickAction,
    ExecutionResult,
    ExtractAction,
    FillAction,
    HoverAction,
    LearningMetrics,
    NavigateAction,
    ScreenshotAction,
    SelectAction,
    Skill,
    SkillCategory,
    SkillDifficulty,
    SkillSpec,
    TypeAction,
    WaitAction,
)
from .store import SkillStore

__all__ = [
    # Models - Actions
    "Action",
    "NavigateAction",
    "ClickAction",
    "TypeAction",
    "FillAction",
    "SelectAction",
    "HoverAction",
    "WaitAction",
    "ExtractAction",
    "ScreenshotAction",
    # Models - Skills
    "Skill",
    "SkillSpec",
    "SkillCategory",
    "SkillDifficulty",
    "ActionOutcome",
    "ExecutionResult",
    "LearningMetrics",
    # Catalog and scoring
    "DEFAULT_SKILLS",
    "default_skill_specs",
    "LEARNING_THRESHOLD",
    "compute_confidence",
    # Components
    "SkillStore",
    "SkillExecutor",
]
