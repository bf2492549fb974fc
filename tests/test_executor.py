"""Tests for the skill executor."""

import asyncio

import pytest

from mcp_server_browser_skills.exceptions import NotFoundError
from mcp_server_browser_skills.skills import SkillExecutor, SkillStore
from mcp_server_browser_skills.skills.executor import substitute_params
from mcp_server_browser_skills.skills.models import EXECUTION_SUCCESS_SENTINEL


@pytest.fixture
def store(tmp_path, clock) -> SkillStore:
    return SkillStore(tmp_path / "skills.yaml", clock=clock)


@pytest.fixture
def executor(tmp_path, store, capabilities, clock, timer, fake_sleep) -> SkillExecutor:
    return SkillExecutor(store, capabilities, tmp_path / "shots", clock=clock, timer=timer, sleep=fake_sleep)


def _create(store: SkillStore, actions: list[dict], name: str = "Test Skill") -> str:
    return store.create({"name": name, "description": "d", "category": "interface", "actions": actions}).id


class TestSubstitution:
    def test_placeholders_replaced(self):
        assert substitute_params("{email}:{password}", {"email": "a@b.c", "password": 1}) == "a@b.c:1"

    def test_unknown_placeholders_kept(self):
        assert substitute_params("{missing}", {"email": "x"}) == "{missing}"


class TestExecution:
    async def test_empty_skill_succeeds_and_is_learned(self, executor, store):
        skill_id = _create(store, [])

        result = await executor.execute(skill_id)

        assert result.success is True
        assert result.confidence == pytest.approx(1.0)
        assert result.learned_now is True
        skill = store.get(skill_id)
        assert skill.attempts == 1
        assert skill.success_count == 1
        assert skill.learned is True
        assert skill.last_success is not None

    async def test_required_failure_stops_run(self, executor, store, capabilities):
        skill_id = _create(
            store,
            [
                {"type": "click", "selector": "#missing", "description": "Click missing"},
                {"type": "click", "selector": "#never"},
            ],
        )
        capabilities.fail("click", "#missing")

        result = await executor.execute(skill_id)

        assert result.success is False
        assert result.confidence == 0.0
        assert ("click", "#never") not in capabilities.calls
        assert any("Click missing" in o and o.startswith("Error:") for o in result.observations)
        skill = store.get(skill_id)
        assert skill.attempts == 1
        assert skill.success_count == 0
        assert skill.learned is False
        assert skill.evidence == []

    async def test_optional_failure_continues(self, executor, store, capabilities):
        skill_id = _create(
            store,
            [
                {"type": "hover", "selector": "#menu", "optional": True},
                {"type": "click", "selector": "#ok"},
            ],
        )
        capabilities.fail("hover")

        result = await executor.execute(skill_id)

        assert result.success is True
        assert ("click", "#ok") in capabilities.calls
        assert any(o.startswith("Optional action failed") for o in result.observations)
        # 0.6 * 1 + 0.3 * 1/2 + 0.1
        assert result.confidence == pytest.approx(0.85)

    async def test_unknown_skill(self, executor):
        with pytest.raises(NotFoundError):
            await executor.execute("nope")

    async def test_context_fills_url_and_text(self, executor, store, capabilities):
        skill_id = _create(
            store,
            [
                {"type": "navigate"},
                {"type": "navigate", "url": "{base}/tasks"},
                {"type": "fill", "selector": "#email", "text": "{email}"},
                {"type": "type", "selector": "#note", "text": "hi {name}"},
                {"type": "select", "selector": "#status", "text": "{status}"},
            ],
        )
        context = {"url": "https://app.test", "base": "https://app.test", "email": "me@x", "name": "Ana", "status": "open"}

        result = await executor.execute(skill_id, context)

        assert result.success is True
        assert ("navigate", "https://app.test") in capabilities.calls
        assert ("navigate", "https://app.test/tasks") in capabilities.calls
        assert ("fill", "#email", "me@x") in capabilities.calls
        assert ("type", "#note", "hi Ana") in capabilities.calls
        assert ("select", "#status", "open") in capabilities.calls

    async def test_navigate_without_url_fails(self, executor, store):
        skill_id = _create(store, [{"type": "navigate"}])
        result = await executor.execute(skill_id)
        assert result.success is False

    async def test_extract_merges_data(self, executor, store, capabilities):
        capabilities.texts["#total"] = "42"
        skill_id = _create(
            store,
            [
                {"type": "extract", "extract_field": "title"},
                {"type": "extract", "extract_field": "url"},
                {"type": "extract", "selector": "#total"},
            ],
        )

        result = await executor.execute(skill_id)

        assert result.data_extracted == {"title": "Dashboard", "url": "https://app.example.com/home", "text": "42"}

    async def test_waits(self, executor, store, capabilities, sleeps):
        skill_id = _create(
            store,
            [
                {"type": "wait", "selector": "#grid", "timeout": 5000},
                {"type": "wait", "selector": "#list"},
                {"type": "wait", "timeout": 250},
                {"type": "wait"},
                {"type": "wait", "timeout": 0},
            ],
        )

        await executor.execute(skill_id)

        assert ("wait_for", "#grid", 5000) in capabilities.calls
        assert ("wait_for", "#list", 30000) in capabilities.calls
        assert sleeps == [0.25, 1.0, 0.0]

    async def test_screenshots_recorded(self, executor, store, tmp_path):
        skill_id = _create(store, [{"type": "screenshot", "filename": "grid"}])

        result = await executor.execute(skill_id)

        shots = tmp_path / "shots"
        assert result.screenshots == [
            str(shots / f"{skill_id}-start.png"),
            str(shots / "grid.png"),
            str(shots / f"{skill_id}-end.png"),
        ]
        assert result.screenshot == str(shots / f"{skill_id}-end.png")
        assert store.get(skill_id).evidence == [result.screenshot]

    async def test_screenshot_failure_is_best_effort(self, executor, store, capabilities):
        capabilities.fail("screenshot")
        skill_id = _create(store, [{"type": "click", "selector": "#ok"}])

        result = await executor.execute(skill_id)

        assert result.success is True
        assert result.screenshot is None
        assert store.get(skill_id).evidence == [EXECUTION_SUCCESS_SENTINEL]

    async def test_slow_run_has_no_bonus(self, tmp_path, store, capabilities, clock, timer):
        async def slow_click(selector):
            timer.advance(31)

        capabilities.click = slow_click
        executor = SkillExecutor(store, capabilities, tmp_path, clock=clock, timer=timer)
        skill_id = _create(store, [{"type": "click", "selector": "#slow"}])

        result = await executor.execute(skill_id)

        assert result.confidence == pytest.approx(0.9)
        assert result.time_elapsed == pytest.approx(31_000)

    async def test_capability_timeout_becomes_failure(self, tmp_path, store, capabilities, clock):
        async def hang(selector):
            await asyncio.sleep(10)

        capabilities.click = hang
        executor = SkillExecutor(store, capabilities, tmp_path, action_timeout=0.01, clock=clock)
        skill_id = _create(store, [{"type": "click", "selector": "#hang"}])

        result = await executor.execute(skill_id)

        assert result.success is False
        assert result.actions[0].error.startswith("Capability call timed out")


class TestLearning:
    async def test_learned_is_sticky_and_confidence_is_max(self, executor, store, capabilities):
        skill_id = _create(store, [{"type": "click", "selector": "#a"}, {"type": "click", "selector": "#b", "optional": True}])

        first = await executor.execute(skill_id)
        assert first.learned_now is True

        capabilities.fail("click", "#a")
        failed = await executor.execute(skill_id)
        assert failed.success is False

        capabilities.failures.clear()
        capabilities.fail("click", "#b")
        third = await executor.execute(skill_id)

        skill = store.get(skill_id)
        assert skill.learned is True
        assert third.learned_now is False
        # 0.6 * 2/3 + 0.3 * 1/2 + 0.1 = 0.65, below the stored maximum
        assert third.confidence == pytest.approx(0.65)
        assert third.improved is False
        assert skill.confidence == pytest.approx(1.0)
        assert skill.attempts == 3
        assert skill.success_count == 2

    async def test_learning_after_failures(self, executor, store, capabilities):
        skill_id = _create(store, [{"type": "click", "selector": "#a"}])
        capabilities.fail("click", "#a")
        await executor.execute(skill_id)
        await executor.execute(skill_id)
        capabilities.failures.clear()

        result = await executor.execute(skill_id)

        # 0.6 * 1/3 + 0.3 + 0.1 = 0.6
        assert result.confidence == pytest.approx(0.6)
        assert result.learned_now is False
        assert result.improved is True

        result = await executor.execute(skill_id)
        # 0.6 * 2/4 + 0.3 + 0.1 = 0.7
        assert result.learned_now is True

    async def test_state_persisted_after_run(self, tmp_path, executor, store):
        skill_id = _create(store, [])
        await executor.execute(skill_id)

        reloaded = SkillStore(tmp_path / "skills.yaml")
        reloaded.load()
        skill = reloaded.get(skill_id)
        assert skill.attempts == 1
        assert skill.success_count == 1
        assert skill.learned is True


async def test_unsupported_action_type_is_reported(executor):
    class Drag:
        type = "drag"
        description = ""
        optional = False

    outcome = await executor._run_action(Drag(), {})

    assert outcome.success is False
    assert "Unsupported action type" in outcome.error
