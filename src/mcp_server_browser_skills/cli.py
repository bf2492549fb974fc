"""CLI interface for the browser skills agent."""

import asyncio
import json

import typer

from .config import settings
from .exceptions import MCPBrowserSkillsError

app = typer.Typer(help="Browser skill-learning agent CLI")


def _parse_context(pairs: list[str] | None) -> dict[str, str]:
    context: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}")
        context[key] = value
    return context


@app.command()
def server() -> None:
    """Start the MCP server using the configured transport."""
    from .server import main

    main()


@app.command()
def skills(
    category: str = typer.Option(None, "--category", "-c", help="Only show this category"),
    learned: bool = typer.Option(False, "--learned", "-l", help="Only show learned skills"),
) -> None:
    """List skills from the snapshot file."""
    from .skills import SkillStore

    store = SkillStore()
    store.load()
    try:
        listed = store.list_skills(category=category)
    except MCPBrowserSkillsError as e:
        print(f"Error: {e}")
        raise typer.Exit(1) from e

    if learned:
        listed = [s for s in listed if s.learned]
    if not listed:
        print(f"No skills in {store.path}")
        return

    for skill in listed:
        mark = "*" if skill.learned else " "
        print(f"{mark} {skill.id:<28} {skill.category.value:<11} {skill.difficulty.value:<13} confidence={skill.confidence:.2f} attempts={skill.attempts}")


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of sessions to show"),
) -> None:
    """Show recent sessions, newest first."""
    from .sessions import SessionStore, analyze_session

    async def _history() -> list[dict]:
        store = SessionStore(history_limit=settings.storage.history_limit)
        return [analyze_session(s) for s in await store.history(limit)]

    for entry in asyncio.run(_history()):
        print(
            f"{entry['id']}  {entry['duration_formatted']:>10}  "
            f"attempted={entry['skills_attempted']} learned={entry['skills_learned']} "
            f"success={entry['success_rate']:.0%} autonomy={entry['autonomy_level']}%"
        )


@app.command()
def run(
    skill: str = typer.Argument(..., help="Skill id or display name"),
    url: str = typer.Option(None, "--url", "-u", help="Page to open before running the skill"),
    context: list[str] = typer.Option(None, "--context", "-x", help="Placeholder value as key=value (repeatable)"),
    preset: str = typer.Option(None, "--preset", "-p", help="Settings preset (development, production, testing)"),
) -> None:
    """Run one skill in a fresh browser session."""
    from .agent import create_agent
    from .capabilities import CDPCapabilityProvider
    from .server import _build_browser_session

    values = _parse_context(context)

    async def _run() -> dict:
        browser_session = _build_browser_session()
        await browser_session.start()
        try:
            provider = CDPCapabilityProvider(browser_session, timeout=settings.agent.action_timeout)
            agent = await create_agent(provider, preset=preset)
            try:
                await agent.start_session(url)
                result = await agent.execute_skill(skill_id=skill, skill_name=skill, context=values)
                response = result.to_response()
                response["learned_now"] = result.learned_now
                return response
            finally:
                await agent.stop()
        finally:
            await browser_session.stop()

    try:
        response = asyncio.run(_run())
    except (MCPBrowserSkillsError, ValueError) as e:
        print(f"Error: {e}")
        raise typer.Exit(1) from e

    print(json.dumps(response, indent=2, default=str))


@app.command()
def config() -> None:
    """Show current configuration."""
    print(f"Agent: {settings.agent.name}")
    print(f"Default URL: {settings.agent.default_url or '(none)'}")
    print(f"Auto-save: {settings.agent.auto_save} (every {settings.agent.auto_save_interval}s)")
    print(f"Action timeout: {settings.agent.action_timeout}s")
    print(f"Data dir: {settings.get_data_dir()}")
    print(f"Screenshots: {settings.get_screenshots_dir()}")
    print(f"History limit: {settings.storage.history_limit}")
    print(f"Headless: {settings.browser.headless}")
    print(f"Proxy: {settings.browser.proxy_server or '(none)'}")
    print(f"Transport: {settings.server.transport}")


if __name__ == "__main__":
    app()
