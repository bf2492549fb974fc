"""Tests for the agent session manager."""

import asyncio
import logging

import pytest

from mcp_server_browser_skills.agent import AgentEvent, SkillAgent, create_agent
from mcp_server_browser_skills.exceptions import AgentStoppedError, NotFoundError, PersistenceError, ValidationError
from mcp_server_browser_skills.sessions import MAX_SCREENSHOTS_PER_SESSION
from mcp_server_browser_skills.skills import SkillStore


@pytest.fixture
def make_agent(app_settings, capabilities, clock, timer, fake_sleep):
    def _make(**kwargs) -> SkillAgent:
        ids = iter(f"session-{i}" for i in range(1000))
        options = {
            "settings": app_settings,
            "clock": clock,
            "timer": timer,
            "sleep": fake_sleep,
            "session_id_factory": lambda: next(ids),
        }
        options.update(kwargs)
        return SkillAgent(capabilities, **options)

    return _make


@pytest.fixture
async def agent(make_agent):
    agent = make_agent()
    await agent.initialize()
    yield agent
    await agent.stop()


def _add_skill(agent: SkillAgent, name: str, actions: list[dict] | None = None) -> str:
    return agent.skill_store.create({"name": name, "description": "d", "category": "tasks", "actions": actions or []}).id


class TestLifecycle:
    async def test_initialize_seeds_when_configured(self, make_agent, app_settings):
        seeded = app_settings.model_copy(update={"agent": app_settings.agent.model_copy(update={"seed_defaults": True})})
        agent = make_agent(settings=seeded)

        await agent.initialize()

        assert len(agent.skill_store) == 8
        assert agent.is_running is True
        assert agent.autonomy_level == 0
        await agent.stop()

    async def test_end_session_when_idle_returns_none(self, agent):
        assert await agent.end_session() is None

    async def test_stop_is_terminal(self, make_agent):
        agent = make_agent()
        await agent.initialize()
        await agent.stop()

        with pytest.raises(AgentStoppedError):
            await agent.start_session()
        with pytest.raises(AgentStoppedError):
            await agent.execute_skill(skill_id="x")
        # Second stop is a no-op
        await agent.stop()

    async def test_stop_closes_open_session(self, make_agent):
        agent = make_agent()
        await agent.initialize()
        session = await agent.start_session()

        await agent.stop()

        assert session.end_time is not None
        assert (await agent.session_store.get(session.id)) is not None

    async def test_auto_save_task_started_and_cancelled(self, make_agent, app_settings):
        auto = app_settings.model_copy(
            update={"agent": app_settings.agent.model_copy(update={"auto_save": True, "auto_save_interval": 0.01})}
        )
        agent = make_agent(settings=auto)
        await agent.initialize()
        session = await agent.start_session()

        await asyncio.sleep(0.05)

        stored = await agent.session_store.get(session.id)
        assert stored is not None
        assert stored.end_time is None
        task = agent._auto_save_task
        await agent.stop()
        assert task.done()

    async def test_async_context_manager(self, make_agent):
        async with make_agent() as agent:
            assert agent.is_running
        assert agent.is_running is False

    async def test_create_agent_applies_preset(self, capabilities, app_settings):
        agent = await create_agent(capabilities, preset="testing", settings=app_settings)
        try:
            assert agent.name == "BrowserSkillAgent-Test"
            assert agent.settings.agent.action_timeout == 10.0
            assert agent.is_running
        finally:
            await agent.stop()

    async def test_stop_without_initialize_keeps_snapshot(self, make_agent, app_settings):
        existing = SkillStore(app_settings.get_data_dir() / "skills.yaml")
        existing.create({"name": "Keep Me", "description": "d", "category": "tasks"})

        agent = make_agent()
        await agent.stop()

        reloaded = SkillStore(existing.path)
        assert reloaded.load() == 1
        assert reloaded.get("keep-me") is not None

    async def test_create_agent_preset_sets_log_level(self, capabilities, app_settings):
        package_logger = logging.getLogger("mcp_server_browser_skills")
        previous = package_logger.level
        try:
            agent = await create_agent(capabilities, preset="production", settings=app_settings)
            assert package_logger.level == logging.WARNING
            await agent.stop()
        finally:
            package_logger.setLevel(previous)

    async def test_create_agent_unknown_preset(self, capabilities, app_settings):
        with pytest.raises(ValueError):
            await create_agent(capabilities, preset="staging", settings=app_settings)


class TestSessions:
    async def test_start_without_url(self, agent, capabilities):
        session = await agent.start_session()

        assert session.id == "session-0"
        assert session.url == "about:blank"
        assert "navigate" not in capabilities.ops()
        assert agent.current_session is session

    async def test_start_with_default_url(self, make_agent, app_settings):
        configured = app_settings.model_copy(
            update={"agent": app_settings.agent.model_copy(update={"default_url": "https://app.example.com"})}
        )
        agent = make_agent(settings=configured)
        session = await agent.start_session()
        assert session.url == "https://app.example.com"

    async def test_start_navigates(self, agent, capabilities):
        session = await agent.start_session("https://app.example.com/login")

        assert ("navigate", "https://app.example.com/login") in capabilities.calls
        assert session.observations == ["Navigated to: https://app.example.com/login"]
        assert session.errors == []

    async def test_navigation_failure_recorded(self, agent, capabilities):
        capabilities.fail("navigate")

        session = await agent.start_session("https://down.example.com")

        assert agent.current_session is session
        assert session.errors == ["Navigation failed: navigate failed"]

    async def test_start_closes_previous_session(self, agent):
        first = await agent.start_session()
        second = await agent.start_session()

        assert first.end_time is not None
        assert agent.current_session is second
        history = await agent.session_history()
        assert [s.id for s in history] == ["session-0"]

    async def test_end_session_persists_and_screenshots(self, agent, capabilities):
        session = await agent.start_session()

        ended = await agent.end_session()

        assert ended is session
        assert agent.current_session is None
        assert session.screenshots[-1].endswith("session-0-final.png")
        stored = await agent.session_store.get("session-0")
        assert stored is not None
        assert stored.end_time == session.end_time

    async def test_end_session_survives_persistence_failure(self, agent, monkeypatch):
        session = await agent.start_session()

        async def broken_save(_session):
            raise PersistenceError("disk full")

        monkeypatch.setattr(agent.session_store, "save", broken_save)
        events = []
        agent.subscribe(lambda event, payload: events.append(event))

        ended = await agent.end_session()

        assert ended is session
        assert agent.current_session is None
        assert AgentEvent.ERROR in events
        assert any("disk full" in e for e in session.errors)

    async def test_autonomy_snapshot_at_start(self, agent):
        skill_id = _add_skill(agent, "Quick Skill")
        await agent.execute_skill(skill_id=skill_id)
        assert agent.autonomy_level == 100

        session = await agent.start_session()
        assert session.autonomy_level == 100


class TestExecuteSkill:
    async def test_requires_id_or_name(self, agent):
        with pytest.raises(ValidationError):
            await agent.execute_skill()

    async def test_unknown_skill(self, agent):
        with pytest.raises(NotFoundError):
            await agent.execute_skill(skill_name="Nothing Here")

    async def test_lookup_by_name(self, agent):
        _add_skill(agent, "Open Task List")
        result = await agent.execute_skill(skill_name="Open Task List")
        assert result.skill_id == "open-task-list"

    async def test_result_recorded_in_session(self, agent, capabilities):
        capabilities.texts["#count"] = "7"
        skill_id = _add_skill(agent, "Count Tasks", [{"type": "extract", "selector": "#count"}])
        session = await agent.start_session()

        result = await agent.execute_skill(skill_id=skill_id)

        assert result.success is True
        assert session.skills_attempted == [skill_id]
        assert session.skills_learned == [skill_id]
        assert session.data_extracted == {"text": "7"}
        assert any(o.startswith("[Count Tasks]") for o in session.observations)
        assert len(session.screenshots) == 2

        await agent.end_session()
        assert session.success_rate == 1.0

    async def test_failure_recorded_in_session(self, agent, capabilities):
        skill_id = _add_skill(agent, "Broken", [{"type": "click", "selector": "#gone"}])
        capabilities.fail("click", "#gone")
        session = await agent.start_session()

        result = await agent.execute_skill(skill_id=skill_id)

        assert result.success is False
        assert session.skills_attempted == [skill_id]
        assert session.skills_learned == []
        assert session.errors and session.errors[-1].startswith("Skill Broken failed")

    async def test_failure_reason_is_action_error(self, agent, capabilities, monkeypatch):
        async def broken_update(*args, **kwargs):
            raise PersistenceError("read-only")

        skill_id = _add_skill(agent, "Broken", [{"type": "click", "selector": "#gone"}])
        capabilities.fail("click", "#gone")
        monkeypatch.setattr(agent.skill_store, "update_async", broken_update)
        session = await agent.start_session()

        result = await agent.execute_skill(skill_id=skill_id)

        assert result.observations[-1].startswith("Skill state not persisted")
        assert session.errors[-1] == "Skill Broken failed: click failed"

    async def test_session_url_feeds_navigate(self, agent, capabilities):
        skill_id = _add_skill(agent, "Go Home", [{"type": "navigate"}])
        await agent.start_session("https://app.example.com")
        capabilities.calls.clear()

        result = await agent.execute_skill(skill_id=skill_id)

        assert result.success is True
        assert ("navigate", "https://app.example.com") in capabilities.calls

    async def test_screenshot_cap_over_many_runs(self, agent):
        skill_id = _add_skill(agent, "Snap", [{"type": "screenshot"}])
        session = await agent.start_session()

        for _ in range(20):
            await agent.execute_skill(skill_id=skill_id)

        assert len(session.screenshots) == MAX_SCREENSHOTS_PER_SESSION

    async def test_works_without_session(self, agent):
        skill_id = _add_skill(agent, "Solo")
        result = await agent.execute_skill(skill_id=skill_id)
        assert result.success is True


class TestEventsAndAutonomy:
    async def test_skill_learned_raises_autonomy(self, agent):
        ids = [_add_skill(agent, f"Skill {i}") for i in range(10)]
        events: list[tuple[AgentEvent, object]] = []

        async def listener(event, payload):
            events.append((event, payload))

        agent.subscribe(listener)
        for skill_id in ids[:7]:
            await agent.execute_skill(skill_id=skill_id)

        assert agent.autonomy_level == 70
        learned = [p for e, p in events if e == AgentEvent.SKILL_LEARNED]
        levels = [p for e, p in events if e == AgentEvent.AUTONOMY_LEVEL_UP]
        assert len(learned) == 7
        assert levels == [10, 20, 30, 40, 50, 60, 70]

    async def test_autonomy_never_decreases(self, agent):
        skill_id = _add_skill(agent, "First")
        await agent.execute_skill(skill_id=skill_id)
        assert agent.autonomy_level == 100

        _add_skill(agent, "Second")
        await agent.start_session()
        await agent.end_session()

        assert agent.autonomy_level == 100

    async def test_session_events_and_failing_listener(self, agent):
        seen = []

        def broken(event, payload):
            raise RuntimeError("listener bug")

        agent.subscribe(broken)
        agent.subscribe(lambda event, payload: seen.append(event))

        await agent.start_session()
        await agent.end_session()

        assert seen == [AgentEvent.SESSION_STARTED, AgentEvent.SESSION_COMPLETED]

    async def test_unsubscribe(self, agent):
        seen = []

        def listener(event, payload):
            seen.append(event)

        agent.subscribe(listener)
        agent.unsubscribe(listener)
        agent.unsubscribe(listener)
        await agent.start_session()

        assert seen == []

    async def test_status(self, agent):
        _add_skill(agent, "Status Skill")
        await agent.start_session("https://app.example.com")

        status = agent.get_status()

        assert status["name"] == agent.name
        assert status["total_skills"] == 1
        assert status["learned_skills"] == 0
        assert status["current_session"]["id"] == "session-0"
        assert status["next_skills"] == ["Status Skill"]


class TestAutoSave:
    async def test_auto_save_writes_open_session(self, agent):
        session = await agent.start_session()
        _add_skill(agent, "Pending")

        assert await agent.auto_save() is True

        stored = await agent.session_store.get(session.id)
        assert stored is not None
        assert stored.end_time is None
        assert agent.skill_store.path.exists()

    async def test_auto_save_reports_failures(self, agent, monkeypatch):
        async def broken(*args, **kwargs):
            raise PersistenceError("read-only")

        monkeypatch.setattr(agent.skill_store, "save_async", broken)

        assert await agent.auto_save() is False
