"""Browser capability boundary used by the skill executor.

The executor only talks to a `CapabilityProvider`. `CDPCapabilityProvider`
implements it over a browser-use `BrowserSession`, issuing session-scoped CDP
commands (``session_id=...``) so browser-use watchdogs never intercept them.

Return conventions:
- extract_title / extract_url / extract_text return a dict payload that the
  executor merges into the run's extracted data
- screenshot returns the written path
- everything else returns None
"""

import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from anyio import to_thread

from .exceptions import CapabilityError

if TYPE_CHECKING:
    from browser_use.browser.session import BrowserSession, CDPSession

logger = logging.getLogger(__name__)


@runtime_checkable
class CapabilityProvider(Protocol):
    """Primitive browser operations consumed by skills."""

    async def navigate(self, url: str) -> Any: ...

    async def click(self, selector: str) -> Any: ...

    async def type(self, selector: str, text: str) -> Any: ...

    async def fill(self, selector: str, value: str) -> Any: ...

    async def select(self, selector: str, value: str) -> Any: ...

    async def hover(self, selector: str) -> Any: ...

    async def wait_for(self, selector: str, timeout_ms: int) -> Any: ...

    async def extract_title(self) -> dict[str, Any]: ...

    async def extract_url(self) -> dict[str, Any]: ...

    async def extract_text(self, selector: str) -> dict[str, Any]: ...

    async def screenshot(self, path: str) -> str: ...


# Page-side helpers. Each returns {ok, value?, error?} so failures surface as data.
_ELEMENT_JS = """
(() => {{
    const el = document.querySelector({selector});
    if (!el) {{
        return {{ ok: false, error: 'Element not found: ' + {selector} }};
    }}
    try {{
{body}
    }} catch (error) {{
        return {{ ok: false, error: error.message || String(error) }};
    }}
}})()
"""

_CLICK_BODY = """
        el.scrollIntoView({ block: 'center' });
        el.click();
        return { ok: true };
"""

_HOVER_BODY = """
        el.scrollIntoView({ block: 'center' });
        for (const name of ['mouseover', 'mouseenter', 'mousemove']) {
            el.dispatchEvent(new MouseEvent(name, { bubbles: true, cancelable: true, view: window }));
        }
        return { ok: true };
"""

_TEXT_BODY = """
        return { ok: true, value: el.innerText ?? el.textContent ?? '' };
"""


def _type_body(text: str, clear: bool) -> str:
    current = "''" if clear else "(el.value ?? '')"
    return f"""
        el.focus();
        const next = {current} + {json.dumps(text)};
        el.value = next;
        el.dispatchEvent(new Event('input', {{ bubbles: true }}));
        el.dispatchEvent(new Event('change', {{ bubbles: true }}));
        return {{ ok: true }};
"""


def _select_body(value: str) -> str:
    return f"""
        const option = Array.from(el.options || []).find(o => o.value === {json.dumps(value)} || o.text === {json.dumps(value)});
        if (!option) {{
            return {{ ok: false, error: 'No option ' + {json.dumps(value)} }};
        }}
        el.value = option.value;
        el.dispatchEvent(new Event('input', {{ bubbles: true }}));
        el.dispatchEvent(new Event('change', {{ bubbles: true }}));
        return {{ ok: true }};
"""


class CDPCapabilityProvider:
    """Capability provider backed by a browser-use `BrowserSession`.

    Usage:
        session = BrowserSession(browser_profile=profile)
        await session.start()
        provider = CDPCapabilityProvider(session)
        await provider.navigate("https://example.com")
    """

    def __init__(self, browser_session: "BrowserSession", timeout: float = 30.0, poll_interval: float = 0.1):
        """Initialize provider.

        Args:
            browser_session: Started browser-use session
            timeout: Evaluation timeout in seconds
            poll_interval: Seconds between checks while waiting for selectors
        """
        self.browser_session = browser_session
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._cdp_session: "CDPSession | None" = None

    async def _get_cdp_session(self) -> "CDPSession":
        """Get or create a CDP session with Page and Runtime domains enabled."""
        if self._cdp_session is not None:
            return self._cdp_session

        cdp_session = await self.browser_session.get_or_create_cdp_session()
        try:
            await self.browser_session.cdp_client.send.Page.enable(session_id=cdp_session.session_id)
        except Exception as e:
            # May already be enabled by session manager
            logger.debug(f"Page.enable: {e}")
        try:
            await self.browser_session.cdp_client.send.Runtime.enable(session_id=cdp_session.session_id)
        except Exception as e:
            logger.debug(f"Runtime.enable: {e}")

        self._cdp_session = cdp_session
        return cdp_session

    async def _evaluate(self, expression: str) -> Any:
        """Run an expression in the page and return its value."""
        cdp_session = await self._get_cdp_session()
        try:
            result = await self.browser_session.cdp_client.send.Runtime.evaluate(
                params={
                    "expression": expression,
                    "awaitPromise": True,
                    "returnByValue": True,
                    "timeout": int(self.timeout * 1000),
                },
                session_id=cdp_session.session_id,
            )
        except Exception as e:
            raise CapabilityError(f"Runtime.evaluate failed: {e}") from e

        if result.get("exceptionDetails"):
            error = result["exceptionDetails"].get("text", "Unknown error")
            raise CapabilityError(f"Page script raised: {error}")

        return result.get("result", {}).get("value")

    async def _element_call(self, selector: str, body: str) -> Any:
        value = await self._evaluate(_ELEMENT_JS.format(selector=json.dumps(selector), body=body))
        if not isinstance(value, dict) or not value.get("ok"):
            error = value.get("error") if isinstance(value, dict) else "no result"
            raise CapabilityError(error or f"Action on {selector} failed")
        return value.get("value")

    async def navigate(self, url: str) -> None:
        if not url:
            raise CapabilityError("navigate needs a url")

        cdp_session = await self._get_cdp_session()
        logger.debug(f"Navigating to: {url}")
        try:
            nav_result = await self.browser_session.cdp_client.send.Page.navigate(
                params={"url": url, "transitionType": "address_bar"},
                session_id=cdp_session.session_id,
            )
        except Exception as e:
            raise CapabilityError(f"Navigation to {url} failed: {e}") from e

        if nav_result.get("errorText"):
            raise CapabilityError(f"Navigation to {url} failed: {nav_result['errorText']}")

        await self._wait_until(
            "document.readyState === 'complete'",
            self.timeout,
            f"Page {url} did not finish loading",
        )

    async def click(self, selector: str) -> None:
        await self._element_call(selector, _CLICK_BODY)

    async def type(self, selector: str, text: str) -> None:
        await self._element_call(selector, _type_body(text, clear=False))

    async def fill(self, selector: str, value: str) -> None:
        await self._element_call(selector, _type_body(value, clear=True))

    async def select(self, selector: str, value: str) -> None:
        await self._element_call(selector, _select_body(value))

    async def hover(self, selector: str) -> None:
        await self._element_call(selector, _HOVER_BODY)

    async def _wait_until(self, expression: str, timeout: float, message: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if await self._evaluate(expression):
                return
            if loop.time() >= deadline:
                raise CapabilityError(message)
            await asyncio.sleep(self.poll_interval)

    async def wait_for(self, selector: str, timeout_ms: int) -> None:
        await self._wait_until(
            f"document.querySelector({json.dumps(selector)}) !== null",
            timeout_ms / 1000,
            f"Timed out after {timeout_ms}ms waiting for {selector}",
        )

    async def extract_title(self) -> dict[str, Any]:
        return {"title": await self._evaluate("document.title")}

    async def extract_url(self) -> dict[str, Any]:
        return {"url": await self._evaluate("window.location.href")}

    async def extract_text(self, selector: str) -> dict[str, Any]:
        return {"text": await self._element_call(selector, _TEXT_BODY)}

    async def screenshot(self, path: str) -> str:
        cdp_session = await self._get_cdp_session()
        try:
            result = await self.browser_session.cdp_client.send.Page.captureScreenshot(
                params={"format": "png"},
                session_id=cdp_session.session_id,
            )
        except Exception as e:
            raise CapabilityError(f"Screenshot failed: {e}") from e

        data = result.get("data")
        if not data:
            raise CapabilityError("Screenshot returned no image data")

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await to_thread.run_sync(target.write_bytes, base64.b64decode(data))
        return str(target)
