"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "mcp-server-browser-skills"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/mcp-server-browser-skills)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path("~/.config").expanduser()

    path = base / APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    if not CONFIG_FILE.exists():
        return {}

    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)
    except Exception:
        return {}


def save_config_file(config_data: dict[str, Any]) -> None:
    """Save settings to the JSON config file."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config_data, indent=2), encoding="utf-8")


class AgentSettings(BaseSettings):
    """Agent behavior configuration."""

    model_config = SettingsConfigDict(env_prefix="MCP_AGENT_")

    name: str = Field(default="BrowserSkillAgent")
    default_url: Optional[str] = Field(default=None, description="URL recorded for sessions started without one")
    auto_save: bool = Field(default=True, description="Persist skills and the open session periodically")
    auto_save_interval: float = Field(default=30.0, gt=0, description="Seconds between auto-save ticks")
    action_timeout: float = Field(default=30.0, gt=0, description="Per-capability-call timeout in seconds")
    seed_defaults: bool = Field(default=True, description="Seed the built-in skill catalog on initialize")


class StorageSettings(BaseSettings):
    """Snapshot and artifact locations."""

    model_config = SettingsConfigDict(env_prefix="MCP_STORAGE_")

    data_dir: Optional[str] = Field(default=None, description="Directory for skills.yaml and sessions.db")
    screenshots_dir: Optional[str] = Field(default=None, description="Directory for screenshots")
    history_limit: int = Field(default=50, ge=1, description="Maximum persisted sessions")


class BrowserSettings(BaseSettings):
    """Browser configuration."""

    model_config = SettingsConfigDict(env_prefix="MCP_BROWSER_")

    headless: bool = Field(default=True)
    cdp_url: Optional[str] = Field(default=None, description="Attach to an external browser via CDP")
    proxy_server: Optional[str] = Field(default=None, description="Proxy server URL (e.g., http://host:8080)")
    proxy_bypass: Optional[str] = Field(default=None, description="Comma-separated hosts to bypass proxy")


TransportType = Literal["stdio", "streamable-http", "sse"]


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="MCP_SERVER_")

    logging_level: str = Field(default="INFO")
    transport: TransportType = Field(default="stdio", description="MCP transport: stdio, streamable-http, or sse")
    host: str = Field(default="127.0.0.1", description="Host for HTTP transports")
    port: int = Field(default=8383, description="Port for HTTP transports")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="MCP_", extra="ignore")

    agent: AgentSettings = Field(default_factory=AgentSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    def save(self) -> Path:
        """Save current configuration to file."""
        data = self.model_dump(mode="json", exclude_none=True)
        save_config_file(data)
        return CONFIG_FILE

    def get_data_dir(self) -> Path:
        """Get the data directory, creating if needed."""
        if self.storage.data_dir:
            path = Path(self.storage.data_dir).expanduser()
        else:
            path = get_config_dir() / "data"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_screenshots_dir(self) -> Path:
        """Get the screenshots directory, creating if needed."""
        if self.storage.screenshots_dir:
            path = Path(self.storage.screenshots_dir).expanduser()
        else:
            path = self.get_data_dir() / "screenshots"
        path.mkdir(parents=True, exist_ok=True)
        return path


# Overrides layered on top of the loaded settings by create_agent(preset=...)
AGENT_PRESETS: dict[str, dict[str, dict[str, Any]]] = {
    "development": {
        "agent": {"name": "BrowserSkillAgent-Dev", "auto_save": True},
        "server": {"logging_level": "DEBUG"},
    },
    "production": {
        "agent": {"name": "BrowserSkillAgent-Prod", "auto_save": True, "auto_save_interval": 60.0},
        "server": {"logging_level": "WARNING"},
    },
    "testing": {
        "agent": {"name": "BrowserSkillAgent-Test", "auto_save": False, "action_timeout": 10.0},
        "server": {"logging_level": "DEBUG"},
    },
}


def apply_preset(base: AppSettings, preset: str) -> AppSettings:
    """Return a copy of `base` with the named preset's overrides applied."""
    if preset not in AGENT_PRESETS:
        raise ValueError(f"Unknown preset {preset!r}, expected one of {sorted(AGENT_PRESETS)}")

    overrides = AGENT_PRESETS[preset]
    updates: dict[str, Any] = {}
    for section, values in overrides.items():
        current = getattr(base, section)
        updates[section] = current.model_copy(update=values)
    return base.model_copy(update=updates)


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    # Pydantic will overlay env vars on top
    return AppSettings(**file_data)


settings = _load_settings()
