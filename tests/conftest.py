"""Pytest configuration and fixtures for browser-skills tests."""

from datetime import UTC, datetime, timedelta

import pytest

from mcp_server_browser_skills.config import AppSettings, StorageSettings
from mcp_server_browser_skills.exceptions import CapabilityError


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end tests requiring a real browser")
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


class FakeCapabilities:
    """In-memory capability provider recording every call.

    Failures are registered per operation, optionally narrowed to one selector
    (or url for navigate): ``fake.fail("click", "#missing")``.
    """

    def __init__(self, title: str = "Dashboard", url: str = "https://app.example.com/home"):
        self.title = title
        self.url = url
        self.texts: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.failures: dict[tuple[str, str | None], Exception] = {}

    def fail(self, op: str, target: str | None = None, error: Exception | None = None) -> None:
        self.failures[(op, target)] = error or CapabilityError(f"{op} failed")

    def ops(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def _record(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        target = args[0] if args else None
        error = self.failures.get((op, target)) or self.failures.get((op, None))
        if error is not None:
            raise error

    async def navigate(self, url):
        await self._record("navigate", url)

    async def click(self, selector):
        await self._record("click", selector)

    async def type(self, selector, text):
        await self._record("type", selector, text)

    async def fill(self, selector, value):
        await self._record("fill", selector, value)

    async def select(self, selector, value):
        await self._record("select", selector, value)

    async def hover(self, selector):
        await self._record("hover", selector)

    async def wait_for(self, selector, timeout_ms):
        await self._record("wait_for", selector, timeout_ms)

    async def extract_title(self):
        await self._record("extract_title")
        return {"title": self.title}

    async def extract_url(self):
        await self._record("extract_url")
        return {"url": self.url}

    async def extract_text(self, selector):
        await self._record("extract_text", selector)
        return {"text": self.texts.get(selector, "")}

    async def screenshot(self, path):
        await self._record("screenshot", path)
        return path


class FakeClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class FakeTimer:
    """Monotonic timer that only moves when told to."""

    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def capabilities() -> FakeCapabilities:
    return FakeCapabilities()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def app_settings(tmp_path) -> AppSettings:
    """Settings isolated to a temp dir, without auto-save or catalog seeding."""
    settings = AppSettings(
        storage=StorageSettings(
            data_dir=str(tmp_path / "data"),
            screenshots_dir=str(tmp_path / "shots"),
        )
    )
    return settings.model_copy(
        update={"agent": settings.agent.model_copy(update={"auto_save": False, "seed_defaults": False, "default_url": None})}
    )
