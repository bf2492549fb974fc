"""Skill-learning agent: owns the skill registry, sessions and autonomy level.

Lifecycle:
    agent = await create_agent(provider, preset="development")
    session = await agent.start_session("https://app.example.com/login")
    result = await agent.execute_skill(skill_name="Open Login Page")
    await agent.end_session()
    await agent.stop()

At most one session is open at a time; starting a new one closes the current
one first. Listeners registered with `subscribe()` receive an `AgentEvent`
and a payload for every lifecycle transition.
"""

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .autonomy import AutonomyTracker
from .capabilities import CapabilityProvider
from .config import AppSettings, apply_preset
from .exceptions import AgentStoppedError, NotFoundError, PersistenceError, ValidationError
from .observability import bind_session_context, clear_session_context, get_session_logger
from .sessions import Session, SessionStore
from .skills import ExecutionResult, Skill, SkillExecutor, SkillStore
from .skills.store import SNAPSHOT_NAME
from .utils import describe_error, new_session_id, utc_now

logger = logging.getLogger(__name__)


class AgentEvent(str, Enum):
    """Lifecycle notifications delivered to subscribed listeners."""

    INITIALIZED = "initialized"
    SESSION_STARTED = "session_started"
    SESSION_COMPLETED = "session_completed"
    SKILL_LEARNED = "skill_learned"
    AUTONOMY_LEVEL_UP = "autonomy_level_up"
    ERROR = "error"


EventListener = Callable[[AgentEvent, Any], Awaitable[None] | None]


class SkillAgent:
    """Coordinates skill execution, session bookkeeping and persistence."""

    def __init__(
        self,
        capabilities: CapabilityProvider,
        *,
        settings: AppSettings | None = None,
        skill_store: SkillStore | None = None,
        session_store: SessionStore | None = None,
        screenshots_dir: str | Path | None = None,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        session_id_factory: Callable[[], str] | None = None,
    ):
        """Initialize the agent without touching disk or browser.

        Args:
            capabilities: Browser operations provider
            settings: Application settings. If None, uses the loaded settings.
            skill_store: Skill registry. Defaults to <data dir>/skills.yaml
            session_store: Session history. Defaults to <data dir>/sessions.db
            screenshots_dir: Screenshot directory. Defaults to settings.
            clock: Timestamp source
            timer: Monotonic seconds source for elapsed times
            sleep: Coroutine used by selector-less wait actions
            session_id_factory: Produces new session ids. Defaults to time-based ids.
        """
        if settings is None:
            from .config import settings as loaded_settings

            settings = loaded_settings

        self.settings = settings
        self.name = settings.agent.name
        self.capabilities = capabilities

        self.skill_store = skill_store or SkillStore(settings.get_data_dir() / SNAPSHOT_NAME, clock=clock)
        self.session_store = session_store or SessionStore(
            settings.get_data_dir() / "sessions.db",
            history_limit=settings.storage.history_limit,
        )
        self.screenshots_dir = Path(screenshots_dir).expanduser() if screenshots_dir else settings.get_screenshots_dir()
        self.executor = SkillExecutor(
            self.skill_store,
            capabilities,
            self.screenshots_dir,
            action_timeout=settings.agent.action_timeout,
            clock=clock,
            timer=timer,
            sleep=sleep,
        )

        self._clock = clock
        self._session_id_factory = session_id_factory or (lambda: new_session_id(self._clock()))
        self._autonomy = AutonomyTracker()
        self._current_session: Session | None = None
        self._listeners: list[EventListener] = []
        self._auto_save_task: asyncio.Task | None = None
        self._running = False
        self._stopped = False
        # Set once the snapshot has been read; until then saving would clobber it
        self._loaded = False
        self._events = get_session_logger()

    async def __aenter__(self) -> "SkillAgent":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --- State ---

    @property
    def autonomy_level(self) -> int:
        return self._autonomy.level

    @property
    def current_session(self) -> Session | None:
        return self._current_session

    @property
    def is_running(self) -> bool:
        return self._running

    def _ensure_active(self) -> None:
        if self._stopped:
            raise AgentStoppedError(f"Agent {self.name} has been stopped")

    def _bind_session(self, session: Session) -> None:
        # Context variables do not cross tasks; every entry point rebinds
        bind_session_context(session.id, self.name)

    # --- Events ---

    def subscribe(self, listener: EventListener) -> None:
        """Register a listener called as ``listener(event, payload)``; coroutines are awaited."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    async def _emit(self, event: AgentEvent, payload: Any = None) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(event, payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Listener for {event.value} failed: {e}")

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Load skills, seed the catalog, prepare history and start auto-save.

        Raises:
            AgentStoppedError: If the agent was stopped
            PersistenceError: If seeding cannot be saved or the history database cannot be created
        """
        self._ensure_active()
        if self._running:
            return

        await self.skill_store.load_async()
        self._loaded = True
        if self.settings.agent.seed_defaults:
            await self.skill_store.seed_defaults_async()
        await self.session_store.initialize()

        await self._refresh_autonomy()

        if self.settings.agent.auto_save:
            self._auto_save_task = asyncio.create_task(self._auto_save_loop(), name=f"{self.name}-auto-save")

        self._running = True
        logger.info(f"Agent {self.name} initialized with {len(self.skill_store)} skills (autonomy {self.autonomy_level}%)")
        await self._emit(AgentEvent.INITIALIZED, self.get_status())

    async def stop(self) -> None:
        """Cancel auto-save, close the open session and persist a final time.

        The agent is unusable afterwards; calling stop() again is a no-op.
        """
        if self._stopped:
            return

        self._running = False
        if self._auto_save_task is not None:
            self._auto_save_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._auto_save_task
            self._auto_save_task = None

        if self._current_session is not None:
            await self.end_session()

        await self.auto_save()
        self._stopped = True
        logger.info(f"Agent {self.name} stopped")

    async def auto_save(self) -> bool:
        """Persist the skill snapshot and the open session, if any.

        Failures are logged, never raised. Skills are only written once
        initialize() has loaded the snapshot.

        Returns:
            True when everything was written
        """
        ok = True
        if self._loaded:
            try:
                await self.skill_store.save_async()
            except PersistenceError as e:
                logger.error(f"Auto-save of skills failed: {e}")
                ok = False
        else:
            logger.debug(f"Skipping skill save for {self.name}: snapshot never loaded")

        session = self._current_session
        if session is not None:
            self._bind_session(session)
            try:
                await self.session_store.save(session)
            except PersistenceError as e:
                logger.error(f"Auto-save of session {session.id} failed: {e}")
                ok = False

        return ok

    async def _auto_save_loop(self) -> None:
        interval = self.settings.agent.auto_save_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.auto_save()
            except Exception as e:
                logger.error(f"Auto-save tick failed: {e}")

    # --- Sessions ---

    async def start_session(self, url: str | None = None) -> Session:
        """Open a new session, closing the current one first.

        When a url is given the browser navigates there; a navigation failure
        is recorded on the session instead of raised.
        """
        self._ensure_active()
        if self._current_session is not None:
            logger.info(f"Closing session {self._current_session.id} before starting a new one")
            await self.end_session()

        session = Session(
            id=self._session_id_factory(),
            start_time=self._clock(),
            url=url or self.settings.agent.default_url or "about:blank",
            autonomy_level=self.autonomy_level,
        )
        self._current_session = session
        self._bind_session(session)

        if url:
            try:
                await asyncio.wait_for(self.capabilities.navigate(url), self.settings.agent.action_timeout)
                session.add_observation(f"Navigated to: {url}")
            except Exception as e:
                logger.warning(f"Navigation to {url} failed: {e}")
                session.errors.append(f"Navigation failed: {describe_error(e)}")

        logger.info(f"New session started: {session.id}")
        self._events.info("session_started", url=session.url, autonomy_level=session.autonomy_level)
        await self._emit(AgentEvent.SESSION_STARTED, session)
        return session

    async def end_session(self) -> Session | None:
        """Finalize, screenshot and persist the open session.

        Returns:
            The closed session, or None when no session was open
        """
        session = self._current_session
        if session is None:
            return None

        self._bind_session(session)

        session.finalize(self._clock())

        path = self.screenshots_dir / f"{session.id}-final.png"
        try:
            shot = await asyncio.wait_for(self.capabilities.screenshot(str(path)), self.settings.agent.action_timeout)
            session.add_screenshot(str(shot))
        except Exception as e:
            logger.warning(f"Final screenshot for {session.id} failed: {e}")

        try:
            await self.session_store.save(session)
        except PersistenceError as e:
            session.errors.append(f"Session not persisted: {e}")
            await self._emit(AgentEvent.ERROR, e)

        self._current_session = None
        self._events.info(
            "session_completed",
            skills_attempted=len(session.skills_attempted),
            skills_learned=len(session.skills_learned),
            success_rate=session.success_rate,
        )
        clear_session_context()

        await self._refresh_autonomy()
        logger.info(f"Session completed: {session.id} ({len(session.skills_learned)} skills learned)")
        await self._emit(AgentEvent.SESSION_COMPLETED, session)
        return session

    async def session_history(self, limit: int | None = None) -> list[Session]:
        return await self.session_store.history(limit)

    # --- Skills ---

    def resolve_skill(self, skill_id: str | None = None, skill_name: str | None = None) -> Skill:
        """Look a skill up by id, falling back to its display name.

        Raises:
            ValidationError: If neither id nor name is given
            NotFoundError: If no skill matches
        """
        if not skill_id and not skill_name:
            raise ValidationError("Either skill_id or skill_name is required")

        skill = None
        if skill_id:
            skill = self.skill_store.get(skill_id)
        if skill is None and skill_name:
            skill = self.skill_store.get_by_name(skill_name)
        if skill is None:
            raise NotFoundError(f"Skill not found: {skill_id or skill_name}")
        return skill

    async def execute_skill(
        self,
        skill_id: str | None = None,
        skill_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """Run a skill and fold the outcome into the open session, if any.

        Raises:
            AgentStoppedError: If the agent was stopped
            ValidationError: If neither id nor name is given
            NotFoundError: If no skill matches
        """
        self._ensure_active()
        skill = self.resolve_skill(skill_id, skill_name)

        session = self._current_session
        context = dict(context or {})
        if session is not None:
            self._bind_session(session)
            if session.url != "about:blank":
                context.setdefault("url", session.url)

        result = await self.executor.execute(skill.id, context)

        if session is not None:
            session.record_attempt(skill.id, learned=result.learned_now, improved=result.improved)
            for observation in result.observations:
                session.add_observation(f"[{skill.name}] {observation}")
            for path in result.screenshots:
                session.add_screenshot(path)
            session.data_extracted.update(result.data_extracted)
            if not result.success:
                failed = next((outcome for outcome in reversed(result.actions) if not outcome.success), None)
                reason = failed.error if failed and failed.error else "unknown error"
                session.errors.append(f"Skill {skill.name} failed: {reason}")

        self._events.info(
            "skill_executed",
            skill_id=skill.id,
            success=result.success,
            confidence=round(result.confidence, 3),
            time_elapsed_ms=round(result.time_elapsed),
        )

        if result.learned_now:
            logger.info(f"Skill learned: {skill.name}")
            await self._refresh_autonomy()
            await self._emit(AgentEvent.SKILL_LEARNED, skill)

        return result

    async def create_skill(self, spec: dict[str, Any]) -> Skill:
        self._ensure_active()
        return await self.skill_store.create_async(spec)

    async def _refresh_autonomy(self) -> None:
        level = self._autonomy.refresh(len(self.skill_store.list_learned()), len(self.skill_store))
        if level is not None:
            self._events.info("autonomy_level_up", autonomy_level=level)
            await self._emit(AgentEvent.AUTONOMY_LEVEL_UP, level)

    # --- Reporting ---

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the agent for status tools."""
        session = self._current_session
        metrics = self.skill_store.learning_metrics()
        return {
            "name": self.name,
            "running": self._running,
            "autonomy_level": self.autonomy_level,
            "total_skills": metrics.total_skills,
            "learned_skills": metrics.learned_skills,
            "average_confidence": round(metrics.average_confidence, 3),
            "success_rate": round(metrics.success_rate, 3),
            "current_session": (
                {
                    "id": session.id,
                    "url": session.url,
                    "skills_attempted": len(session.skills_attempted),
                    "skills_learned": len(session.skills_learned),
                    "errors": len(session.errors),
                }
                if session
                else None
            ),
            "next_skills": [s.name for s in self.skill_store.list_unlearned()[:3]],
        }


async def create_agent(
    capabilities: CapabilityProvider,
    preset: str | None = None,
    *,
    settings: AppSettings | None = None,
    **kwargs: Any,
) -> SkillAgent:
    """Build and initialize an agent, optionally applying a named preset.

    A preset also sets the package log level from its server.logging_level.

    Raises:
        ValueError: If the preset is unknown
    """
    if settings is None:
        from .config import settings as loaded_settings

        settings = loaded_settings
    if preset:
        settings = apply_preset(settings, preset)
        logging.getLogger("mcp_server_browser_skills").setLevel(getattr(logging, settings.server.logging_level.upper()))

    agent = SkillAgent(capabilities, settings=settings, **kwargs)
    await agent.initialize()
    return agent
