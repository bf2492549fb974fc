"""MCP server exposing the skill-learning agent as tools."""

import asyncio
import contextlib
import json
import logging
import os
import sys
import time
from collections.abc import AsyncIterator
from typing import Any


def _configure_stdio_logging() -> None:
    """Configure logging for stdio MCP mode - all logs MUST go to stderr.

    In stdio mode, stdout is reserved exclusively for JSON-RPC messages.
    """
    # Suppress noisy loggers from dependencies BEFORE they're imported
    os.environ.setdefault("BROWSER_USE_LOGGING_LEVEL", "warning")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.handlers = [stderr_handler]
    root.setLevel(logging.WARNING)

    for logger_name in ["asyncio", "aiosqlite", "browser_use", "cdp_use", "websockets"]:
        dep_logger = logging.getLogger(logger_name)
        dep_logger.setLevel(logging.WARNING)
        dep_logger.handlers = [stderr_handler]
        dep_logger.propagate = False


# Configure logging BEFORE importing browser_use and other noisy dependencies
_configure_stdio_logging()

# ruff: noqa: E402 - Intentional late imports after logging configuration
from browser_use import BrowserProfile, BrowserSession
from browser_use.browser.profile import ProxySettings
from fastmcp import FastMCP

from .agent import SkillAgent
from .capabilities import CDPCapabilityProvider
from .config import settings
from .exceptions import MCPBrowserSkillsError
from .observability import setup_structured_logging
from .sessions import analyze_session, summarize_sessions

logger = logging.getLogger("mcp_server_browser_skills")
logger.setLevel(getattr(logging, settings.server.logging_level.upper()))


def _build_browser_session() -> BrowserSession:
    """Browser session configured from settings."""
    proxy = None
    if settings.browser.proxy_server:
        proxy = ProxySettings(server=settings.browser.proxy_server, bypass=settings.browser.proxy_bypass)
    profile = BrowserProfile(
        headless=settings.browser.headless,
        proxy=proxy,
        cdp_url=settings.browser.cdp_url,
    )
    if settings.browser.cdp_url:
        logger.info(f"Using external browser via CDP: {settings.browser.cdp_url}")
    return BrowserSession(browser_profile=profile)


def serve(agent: SkillAgent | None = None) -> FastMCP:
    """Create the MCP server.

    Args:
        agent: Pre-built agent, owned by the caller. If None, a browser and agent
            are started on the first tool call and stopped when the server shuts down.
    """
    setup_structured_logging(settings.server.logging_level)

    state: dict[str, Any] = {"agent": agent, "owned_agent": None, "browser_session": None}
    agent_lock = asyncio.Lock()

    async def _shutdown() -> None:
        """Stop the agent and browser this server started, if any."""
        async with agent_lock:
            owned: SkillAgent | None = state["owned_agent"]
            browser_session: BrowserSession | None = state["browser_session"]
            state.update(agent=agent, owned_agent=None, browser_session=None)

            try:
                if owned is not None:
                    logger.info(f"Stopping agent {owned.name}")
                    await owned.stop()
            finally:
                if browser_session is not None:
                    await browser_session.stop()

    @contextlib.asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await _shutdown()

    server = FastMCP("mcp_server_browser_skills", lifespan=lifespan)

    async def _get_agent() -> SkillAgent:
        async with agent_lock:
            if state["agent"] is None:
                browser_session = _build_browser_session()
                await browser_session.start()
                state["browser_session"] = browser_session
                created = SkillAgent(
                    CDPCapabilityProvider(browser_session, timeout=settings.agent.action_timeout),
                    settings=settings,
                )
                await created.initialize()
                state["agent"] = state["owned_agent"] = created
            return state["agent"]

    # --- Skill Tools ---

    @server.tool()
    async def skill_execute(
        skill_id: str | None = None,
        skill_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        """
        Execute a learned or learning skill in the browser.

        Each run updates the skill's confidence; once it reaches 0.7 the skill is learned.

        Args:
            skill_id: Id of the skill (e.g. "open-login-page")
            skill_name: Display name, used when skill_id is not given
            context: Values for {placeholders} in actions; "url" feeds navigate actions without a url

        Returns:
            JSON with success, confidence, time_elapsed (ms), observations and data_extracted
        """
        try:
            current = await _get_agent()
            result = await current.execute_skill(skill_id=skill_id, skill_name=skill_name, context=context)
        except MCPBrowserSkillsError as e:
            return f"Error: {e}"

        response = result.to_response()
        response.update({"skill_id": result.skill_id, "learned_now": result.learned_now, "screenshot": result.screenshot})
        return json.dumps(response, indent=2, default=str)

    @server.tool()
    async def skill_list(category: str | None = None, difficulty: str | None = None) -> str:
        """
        List skills, ordered by category priority.

        Args:
            category: Optional filter (navigation, tasks, filters, data, interface, automation)
            difficulty: Optional filter (basic, intermediate, advanced)

        Returns:
            JSON list of skill summaries
        """
        try:
            current = await _get_agent()
            skills = current.skill_store.list_skills(category=category, difficulty=difficulty)
        except MCPBrowserSkillsError as e:
            return f"Error: {e}"

        return json.dumps(
            {"skills": [s.summary() for s in skills], "skills_file": str(current.skill_store.path)},
            indent=2,
        )

    @server.tool()
    async def skill_get(skill_id: str) -> str:
        """
        Get the full definition and statistics of a skill.

        Args:
            skill_id: Id of the skill

        Returns:
            Skill as JSON
        """
        current = await _get_agent()
        skill = current.skill_store.get(skill_id)
        if skill is None:
            return f"Error: Skill '{skill_id}' not found"
        return json.dumps(skill.to_dict(), indent=2)

    @server.tool()
    async def skill_create(
        name: str,
        description: str,
        category: str,
        difficulty: str = "basic",
        actions: list[dict[str, Any]] | None = None,
        selectors: list[str] | None = None,
    ) -> str:
        """
        Register a new skill.

        Args:
            name: Display name; the id is derived from it
            description: What the skill does
            category: navigation, tasks, filters, data, interface or automation
            difficulty: basic, intermediate or advanced
            actions: Ordered actions, e.g. [{"type": "click", "selector": "#save"}]
            selectors: Selectors the skill relies on

        Returns:
            The created skill as JSON
        """
        spec = {
            "name": name,
            "description": description,
            "category": category,
            "difficulty": difficulty,
            "actions": actions or [],
            "selectors": selectors or [],
        }
        try:
            current = await _get_agent()
            skill = await current.create_skill(spec)
        except MCPBrowserSkillsError as e:
            return f"Error: {e}"
        return json.dumps(skill.to_dict(), indent=2)

    # --- Session Tools ---

    @server.tool()
    async def session_start(url: str | None = None) -> str:
        """
        Start a learning session, closing the current one first.

        Args:
            url: Page to open; navigation failures are recorded on the session

        Returns:
            JSON with the session id, url, autonomy level and errors
        """
        try:
            current = await _get_agent()
            session = await current.start_session(url)
        except MCPBrowserSkillsError as e:
            return f"Error: {e}"

        return json.dumps(
            {
                "session_id": session.id,
                "url": session.url,
                "autonomy_level": session.autonomy_level,
                "errors": session.errors,
            },
            indent=2,
        )

    @server.tool()
    async def session_end() -> str:
        """
        End the current session and persist it.

        Returns:
            JSON session analysis, or {"session": null} when no session is open
        """
        current = await _get_agent()
        session = await current.end_session()
        if session is None:
            return json.dumps({"session": None})
        return json.dumps(analyze_session(session), indent=2)

    @server.tool()
    async def session_history(limit: int = 10) -> str:
        """
        Recent sessions, newest first, with an aggregate summary.

        Args:
            limit: Maximum sessions to return

        Returns:
            JSON with "sessions" and "summary"
        """
        current = await _get_agent()
        sessions = await current.session_history(limit)
        return json.dumps(
            {
                "sessions": [analyze_session(s) for s in sessions],
                "summary": summarize_sessions(sessions),
            },
            indent=2,
        )

    # --- Status Tools ---

    @server.tool()
    async def agent_status() -> str:
        """
        Agent name, autonomy level, skill counts and the open session.

        Returns:
            JSON status object
        """
        current = await _get_agent()
        return json.dumps(current.get_status(), indent=2)

    @server.tool()
    async def learning_metrics() -> str:
        """
        Aggregate learning statistics over every skill.

        Returns:
            JSON metrics (totals, averages, per-category counts, recent learned skills)
        """
        current = await _get_agent()
        return json.dumps(current.skill_store.learning_metrics().to_dict(), indent=2)

    @server.tool()
    async def health_check() -> str:
        """
        Health check with process stats.

        Returns:
            JSON object with server health status
        """
        import psutil

        process = psutil.Process()
        memory_info = process.memory_info()
        current = state["agent"]

        return json.dumps(
            {
                "status": "healthy",
                "uptime_seconds": round(time.time() - _server_start_time, 1),
                "memory_mb": round(memory_info.rss / 1024 / 1024, 1),
                "agent_started": current is not None,
                "autonomy_level": current.autonomy_level if current else None,
                "active_session": current.current_session.id if current and current.current_session else None,
            },
            indent=2,
        )

    return server


# Track server start time for uptime calculation
_server_start_time = time.time()


def main() -> None:
    """Entry point for MCP server."""
    transport = settings.server.transport
    server_instance = serve()

    if transport == "stdio":
        server_instance.run(transport="stdio")
    elif transport in ("streamable-http", "sse"):
        logger.info(f"Starting MCP browser-skills server (transport: {transport})")
        logger.info(f"HTTP server at http://{settings.server.host}:{settings.server.port}/mcp")
        server_instance.run(transport=transport, host=settings.server.host, port=settings.server.port)
    else:
        raise ValueError(f"Unknown transport: {transport}")


if __name__ == "__main__":
    main()
