"""Skill executor: runs a skill's actions and scores the run."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from ..capabilities import CapabilityProvider
from ..exceptions import CapabilityError, NotFoundError, PersistenceError, UnsupportedActionError
from ..utils import describe_error, timestamp_slug, utc_now
from .confidence import LEARNING_THRESHOLD, compute_confidence
from .models import (
    DEFAULT_SLEEP_MS,
    DEFAULT_WAIT_FOR_TIMEOUT_MS,
    EXECUTION_SUCCESS_SENTINEL,
    ActionOutcome,
    ClickAction,
    ExecutionResult,
    ExtractAction,
    FillAction,
    HoverAction,
    NavigateAction,
    ScreenshotAction,
    SelectAction,
    TypeAction,
    WaitAction,
)
from .store import SkillStore

logger = logging.getLogger(__name__)


def substitute_params(template: str, context: dict[str, Any]) -> str:
    """Replace ``{key}`` placeholders with context values; unknown ones are left as-is."""
    for key, value in context.items():
        template = template.replace(f"{{{key}}}", str(value))
    return template


class SkillExecutor:
    """Executes skills action by action against a capability provider.

    Usage:
        executor = SkillExecutor(store, provider, screenshots_dir)
        result = await executor.execute("open-login-page", {"url": "https://app.example.com"})

    Capability failures never escape `execute()`: they become observations and
    a ``success=False`` result. Only an unknown skill id raises.
    """

    def __init__(
        self,
        store: SkillStore,
        capabilities: CapabilityProvider,
        screenshots_dir: str | Path | None = None,
        *,
        action_timeout: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize executor.

        Args:
            store: Skill registry the executor reads and updates
            capabilities: Browser operations provider
            screenshots_dir: Where screenshots are written. If None, uses settings.
            action_timeout: Seconds before a single capability call is abandoned
            clock: Timestamp source for attempts and screenshot names
            timer: Monotonic seconds source used for elapsed time
            sleep: Coroutine used by selector-less waits
        """
        if screenshots_dir:
            self.screenshots_dir = Path(screenshots_dir).expanduser()
        else:
            from ..config import settings

            self.screenshots_dir = settings.get_screenshots_dir()

        self.store = store
        self.capabilities = capabilities
        self.action_timeout = action_timeout
        self._clock = clock
        self._timer = timer
        self._sleep = sleep

        self._handlers: dict[str, Callable[[Any, dict[str, Any]], Awaitable[Any]]] = {
            "navigate": self._navigate,
            "click": self._click,
            "type": self._type,
            "fill": self._fill,
            "select": self._select,
            "hover": self._hover,
            "wait": self._wait,
            "extract": self._extract,
            "screenshot": self._screenshot,
        }

    async def execute(self, skill_id: str, context: dict[str, Any] | None = None) -> ExecutionResult:
        """Run one skill and update its statistics.

        Args:
            skill_id: Id of the skill to run
            context: Optional values; ``url`` feeds url-less navigate actions and
                every key fills matching ``{key}`` placeholders

        Returns:
            ExecutionResult describing the run

        Raises:
            NotFoundError: If the skill id is unknown
        """
        skill = self.store.get(skill_id)
        if skill is None:
            raise NotFoundError(f"Skill not found: {skill_id}")

        context = dict(context or {})
        logger.info(f"Executing skill: {skill.name}")

        started = self._timer()
        # Counted before any action runs so an interrupted run is still an attempt
        skill.attempts += 1
        skill.last_attempt = self._clock()

        result = ExecutionResult(skill_id=skill.id, skill_name=skill.name)

        before = await self._take_screenshot(f"{skill.id}-start", result)
        if before:
            result.observations.append(f"Start screenshot: {before}")

        failed = False
        for action in skill.actions:
            outcome = await self._run_action(action, context)
            result.actions.append(outcome)

            if isinstance(outcome.result, dict):
                result.data_extracted.update(outcome.result)

            if outcome.success:
                if isinstance(action, ScreenshotAction) and isinstance(outcome.result, str):
                    result.screenshots.append(outcome.result)
                continue

            label = action.description or action.type
            if action.optional:
                result.observations.append(f"Optional action failed: {label}: {outcome.error}")
                continue

            result.observations.append(f"Error: required action failed: {label}: {outcome.error}")
            failed = True
            break

        if not failed:
            after = await self._take_screenshot(f"{skill.id}-end", result)
            if after:
                result.screenshot = after
                result.observations.append(f"End screenshot: {after}")

            result.success = True
            skill.success_count += 1
            skill.last_success = self._clock()

            result.confidence = compute_confidence(
                success_count=skill.success_count,
                attempts=skill.attempts,
                actions_succeeded=result.actions_succeeded,
                actions_executed=len(result.actions),
                time_elapsed_ms=(self._timer() - started) * 1000,
            )

            previous = skill.confidence
            if result.confidence >= LEARNING_THRESHOLD and not skill.learned:
                skill.learned = True
                result.learned_now = True
                result.observations.append("Skill learned")

            skill.confidence = max(previous, result.confidence)
            result.improved = skill.confidence > previous
            skill.evidence.append(after or EXECUTION_SUCCESS_SENTINEL)

        result.time_elapsed = (self._timer() - started) * 1000

        try:
            await self.store.update_async(
                skill.id,
                {"learned": skill.learned, "confidence": skill.confidence, "evidence": list(skill.evidence)},
            )
        except PersistenceError as e:
            result.observations.append(f"Skill state not persisted: {e}")

        logger.info(f"Skill {skill.name} executed in {result.time_elapsed:.0f}ms - success: {result.success}")
        return result

    async def _run_action(self, action: Any, context: dict[str, Any]) -> ActionOutcome:
        """Dispatch one action; any failure is captured in the outcome."""
        action_type = getattr(action, "type", None)
        logger.debug(f"  Running: {getattr(action, 'description', '') or action_type}")

        try:
            handler = self._handlers.get(action_type)
            if handler is None:
                raise UnsupportedActionError(f"Unsupported action type: {action_type}")
            value = await handler(action, context)
        except Exception as e:
            logger.debug(f"  Action {action_type} failed: {e}")
            return ActionOutcome(action=action, success=False, error=describe_error(e))

        return ActionOutcome(action=action, success=True, result=value)

    async def _call(self, awaitable: Awaitable[Any], timeout: float | None = None) -> Any:
        """Await a capability call, converting a timeout into CapabilityError."""
        limit = timeout if timeout is not None else self.action_timeout
        try:
            return await asyncio.wait_for(awaitable, limit)
        except TimeoutError as e:
            raise CapabilityError(f"Capability call timed out after {limit:.1f}s") from e

    def _screenshot_path(self, filename: str) -> str:
        name = filename if filename.endswith(".png") else f"{filename}.png"
        return str(self.screenshots_dir / name)

    async def _take_screenshot(self, filename: str, result: ExecutionResult) -> str | None:
        """Best-effort screenshot; failures are only noted."""
        try:
            path = await self._call(self.capabilities.screenshot(self._screenshot_path(filename)))
        except Exception as e:
            logger.warning(f"Screenshot {filename} failed: {e}")
            result.observations.append(f"Screenshot {filename} failed: {e}")
            return None

        path = str(path)
        result.screenshots.append(path)
        return path

    # --- Action handlers ---

    async def _navigate(self, action: NavigateAction, context: dict[str, Any]) -> Any:
        url = substitute_params(action.url, context) or context.get("url")
        if not url:
            raise CapabilityError("navigate action has no url and the context provides none")
        return await self._call(self.capabilities.navigate(url))

    async def _click(self, action: ClickAction, context: dict[str, Any]) -> Any:
        return await self._call(self.capabilities.click(action.selector))

    async def _type(self, action: TypeAction, context: dict[str, Any]) -> Any:
        return await self._call(self.capabilities.type(action.selector, substitute_params(action.text, context)))

    async def _fill(self, action: FillAction, context: dict[str, Any]) -> Any:
        return await self._call(self.capabilities.fill(action.selector, substitute_params(action.text, context)))

    async def _select(self, action: SelectAction, context: dict[str, Any]) -> Any:
        return await self._call(self.capabilities.select(action.selector, substitute_params(action.text, context)))

    async def _hover(self, action: HoverAction, context: dict[str, Any]) -> Any:
        return await self._call(self.capabilities.hover(action.selector))

    async def _wait(self, action: WaitAction, context: dict[str, Any]) -> Any:
        if action.selector:
            timeout_ms = action.timeout if action.timeout is not None else DEFAULT_WAIT_FOR_TIMEOUT_MS
            return await self._call(
                self.capabilities.wait_for(action.selector, timeout_ms),
                timeout=max(self.action_timeout, timeout_ms / 1000),
            )

        delay_ms = action.timeout if action.timeout is not None else DEFAULT_SLEEP_MS
        await self._sleep(delay_ms / 1000)
        return None

    async def _extract(self, action: ExtractAction, context: dict[str, Any]) -> Any:
        if action.extract_field == "title":
            return await self._call(self.capabilities.extract_title())
        if action.extract_field == "url":
            return await self._call(self.capabilities.extract_url())
        if not action.selector:
            raise CapabilityError("extract action needs a selector")
        return await self._call(self.capabilities.extract_text(action.selector))

    async def _screenshot(self, action: ScreenshotAction, context: dict[str, Any]) -> Any:
        filename = action.filename or f"skill-{timestamp_slug(self._clock())}"
        path = await self._call(self.capabilities.screenshot(self._screenshot_path(filename)))
        return str(path)
