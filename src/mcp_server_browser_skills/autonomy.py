"""Agent-wide autonomy level derived from the share of learned skills."""

import logging
import math

logger = logging.getLogger(__name__)

MAX_AUTONOMY_LEVEL = 100


def compute_autonomy_level(learned_skills: int, total_skills: int) -> int:
    """Percentage of learned skills, rounded half up and capped at 100."""
    ratio = learned_skills / max(total_skills, 1)
    return min(MAX_AUTONOMY_LEVEL, math.floor(100 * ratio + 0.5))


class AutonomyTracker:
    """Holds the autonomy level and only ever raises it.

    Adding new unlearned skills lowers the computed level; that drop is never
    applied to the stored one.
    """

    def __init__(self, level: int = 0):
        self._level = max(0, min(MAX_AUTONOMY_LEVEL, level))

    @property
    def level(self) -> int:
        return self._level

    def refresh(self, learned_skills: int, total_skills: int) -> int | None:
        """Recompute the level.

        Returns:
            The new level when it went up, None otherwise
        """
        new_level = compute_autonomy_level(learned_skills, total_skills)
        if new_level <= self._level:
            return None

        old_level = self._level
        self._level = new_level
        logger.info(f"Autonomy: {old_level}% -> {new_level}%")
        return new_level
