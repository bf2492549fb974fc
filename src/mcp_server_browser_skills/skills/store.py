"""Skill storage and persistence using a YAML snapshot file."""

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from anyio import to_thread
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NotFoundError, PersistenceError, ValidationError
from ..utils import atomic_write_text, skill_id_from_name, utc_now
from .catalog import default_skill_specs
from .models import (
    CATEGORY_PRIORITIES,
    DIFFICULTY_WEIGHTS,
    LearningMetrics,
    Skill,
    SkillCategory,
    SkillDifficulty,
    SkillSpec,
)

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "skills.yaml"

# Only these fields may be changed through update(); statistics move via execution.
UPDATABLE_FIELDS = frozenset({"learned", "confidence", "evidence", "metadata"})


def get_default_skills_file() -> Path:
    """Get the default skill snapshot path."""
    from ..config import settings

    return settings.get_data_dir() / SNAPSHOT_NAME


def _coerce_category(value: SkillCategory | str | None) -> SkillCategory | None:
    if value is None or isinstance(value, SkillCategory):
        return value
    try:
        return SkillCategory(value)
    except ValueError as e:
        raise ValidationError(f"Unknown category {value!r}, expected one of {[c.value for c in SkillCategory]}") from e


def _coerce_difficulty(value: SkillDifficulty | str | None) -> SkillDifficulty | None:
    if value is None or isinstance(value, SkillDifficulty):
        return value
    try:
        return SkillDifficulty(value)
    except ValueError as e:
        raise ValidationError(f"Unknown difficulty {value!r}, expected one of {[d.value for d in SkillDifficulty]}") from e


class SkillStore:
    """In-memory skill registry backed by a single YAML snapshot.

    Every instance owns its own mapping, so several agents (or tests) can
    coexist in one process. Nothing guards the snapshot file against other
    processes: concurrent writers race and the last one wins.
    """

    def __init__(self, path: str | Path | None = None, clock: Callable[[], datetime] = utc_now):
        """Initialize skill store.

        Args:
            path: Snapshot file. If None, uses <data dir>/skills.yaml.
            clock: Source of timestamps for created/updated skills.
        """
        if path:
            self.path = Path(path).expanduser()
        else:
            self.path = get_default_skills_file()

        self._clock = clock
        self._skills: dict[str, Skill] = {}
        logger.debug(f"Skill snapshot: {self.path}")

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, skill_id: object) -> bool:
        return skill_id in self._skills

    # --- Persistence ---

    def load(self) -> int:
        """Replace the in-memory skills with the snapshot contents.

        A missing, unreadable or malformed snapshot leaves the store empty.

        Returns:
            Number of skills loaded
        """
        self._skills.clear()

        if not self.path.exists():
            logger.info(f"No skill snapshot at {self.path}, starting empty")
            return 0

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Unreadable skill snapshot {self.path}, starting empty: {e}")
            return 0

        if not data:
            return 0

        if not isinstance(data, list):
            logger.warning(f"Skill snapshot {self.path} is not a list, starting empty")
            return 0

        for record in data:
            try:
                skill = Skill.from_dict(record)
            except (PydanticValidationError, TypeError) as e:
                logger.warning(f"Skipping invalid skill record in {self.path}: {e}")
                continue
            self._skills[skill.id] = skill

        logger.info(f"Loaded {len(self._skills)} skills from {self.path}")
        return len(self._skills)

    async def load_async(self) -> int:
        """Async wrapper for load() to avoid blocking the event loop."""
        return await to_thread.run_sync(self.load)

    def _render(self) -> str:
        records = [skill.to_dict() for skill in self._skills.values()]
        return yaml.safe_dump(records, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def _write(self, content: str) -> Path:
        try:
            atomic_write_text(self.path, content)
        except OSError as e:
            logger.error(f"Failed to save skills to {self.path}: {e}")
            raise PersistenceError(f"Failed to save skills to {self.path}: {e}") from e

        logger.debug(f"Saved {len(self._skills)} skills to {self.path}")
        return self.path

    def save(self) -> Path:
        """Write every skill to the snapshot file.

        Raises:
            PersistenceError: If the file cannot be written. In-memory state is kept.
        """
        return self._write(self._render())

    async def save_async(self) -> Path:
        """Async wrapper for save().

        The snapshot is rendered on the calling task so the thread never sees a
        half-mutated registry.
        """
        return await to_thread.run_sync(self._write, self._render())

    # --- Creation and updates ---

    def _add(self, spec: SkillSpec | dict[str, Any]) -> Skill:
        try:
            if not isinstance(spec, SkillSpec):
                spec = SkillSpec.model_validate(spec)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid skill definition: {e}") from e

        skill_id = skill_id_from_name(spec.name)
        if not skill_id:
            raise ValidationError(f"Skill name {spec.name!r} has no letters or digits to build an id from")
        if skill_id in self._skills:
            raise ValidationError(f"Skill {skill_id!r} already exists")

        skill = Skill(
            id=skill_id,
            name=spec.name,
            description=spec.description,
            category=spec.category,
            difficulty=spec.difficulty,
            actions=list(spec.actions),
            selectors=list(spec.selectors),
            metadata=dict(spec.metadata),
            last_attempt=self._clock(),
        )
        self._skills[skill.id] = skill
        logger.info(f"New skill created: {skill.name} ({skill.category.value}/{skill.difficulty.value})")
        return skill

    def create(self, spec: SkillSpec | dict[str, Any]) -> Skill:
        """Validate, register and persist a new skill.

        Args:
            spec: Skill definition (name, description, category, difficulty, actions, ...)

        Returns:
            The created skill with zeroed statistics

        Raises:
            ValidationError: If the definition fails the schema or the id is taken
        """
        skill = self._add(spec)
        self.save()
        return skill

    async def create_async(self, spec: SkillSpec | dict[str, Any]) -> Skill:
        skill = self._add(spec)
        await self.save_async()
        return skill

    def _apply_update(self, skill_id: str, fields: dict[str, Any]) -> Skill:
        skill = self._skills.get(skill_id)
        if skill is None:
            raise NotFoundError(f"Skill not found: {skill_id}")

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated directly: {sorted(unknown)}")

        try:
            candidate = Skill.model_validate({**skill.to_dict(), **fields})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid skill update for {skill_id}: {e}") from e

        for name in fields:
            setattr(skill, name, getattr(candidate, name))
        skill.last_attempt = self._clock()
        return skill

    def update(self, skill_id: str, fields: dict[str, Any]) -> Skill:
        """Merge learned/confidence/evidence/metadata into a skill and persist.

        Raises:
            NotFoundError: If no skill has this id
            ValidationError: If a field is not updatable or has an invalid value
        """
        skill = self._apply_update(skill_id, fields)
        self.save()
        return skill

    async def update_async(self, skill_id: str, fields: dict[str, Any]) -> Skill:
        skill = self._apply_update(skill_id, fields)
        await self.save_async()
        return skill

    def seed_defaults(self) -> list[Skill]:
        """Add every catalog skill whose name is not registered yet.

        Idempotent: running it again creates nothing.

        Returns:
            Skills created by this call
        """
        created = [self._add(spec) for spec in default_skill_specs() if not self.has_skill(spec.name)]
        if created:
            self.save()
            logger.info(f"Seeded {len(created)} default skills")
        return created

    async def seed_defaults_async(self) -> list[Skill]:
        created = [self._add(spec) for spec in default_skill_specs() if not self.has_skill(spec.name)]
        if created:
            await self.save_async()
            logger.info(f"Seeded {len(created)} default skills")
        return created

    # --- Queries ---

    def get(self, skill_id: str) -> Skill | None:
        return self._skills.get(skill_id)

    def get_by_name(self, name: str) -> Skill | None:
        return next((skill for skill in self._skills.values() if skill.name == name), None)

    def has_skill(self, name: str) -> bool:
        return self.get_by_name(name) is not None

    def list_skills(
        self,
        category: SkillCategory | str | None = None,
        difficulty: SkillDifficulty | str | None = None,
    ) -> list[Skill]:
        """List skills, optionally filtered, ordered by ascending category priority."""
        category = _coerce_category(category)
        difficulty = _coerce_difficulty(difficulty)

        skills = list(self._skills.values())
        if category:
            skills = [s for s in skills if s.category == category]
        if difficulty:
            skills = [s for s in skills if s.difficulty == difficulty]

        return sorted(skills, key=lambda s: CATEGORY_PRIORITIES[s.category])

    def list_learned(self) -> list[Skill]:
        return [skill for skill in self._skills.values() if skill.learned]

    def list_unlearned(self) -> list[Skill]:
        """Unlearned skills, easiest first."""
        unlearned = [skill for skill in self._skills.values() if not skill.learned]
        return sorted(unlearned, key=lambda s: DIFFICULTY_WEIGHTS[s.difficulty])

    def learning_metrics(self) -> LearningMetrics:
        """Aggregate statistics over every registered skill."""
        skills = list(self._skills.values())
        total = len(skills)
        learned = [s for s in skills if s.learned]

        recent = sorted(
            (s for s in learned if s.last_success is not None),
            key=lambda s: s.last_success,
            reverse=True,
        )[:5]

        return LearningMetrics(
            total_skills=total,
            learned_skills=len(learned),
            average_confidence=sum(s.confidence for s in skills) / total if total else 0.0,
            total_attempts=sum(s.attempts for s in skills),
            success_rate=sum(s.success_rate for s in skills) / total if total else 0.0,
            skills_by_category=dict(Counter(s.category.value for s in skills)),
            skills_by_difficulty=dict(Counter(s.difficulty.value for s in skills)),
            recent_improvements=[
                {
                    "skill_id": s.id,
                    "improvement": f'Skill "{s.name}" learned',
                    "timestamp": s.last_success.isoformat() if s.last_success else None,
                }
                for s in recent
            ],
        )
