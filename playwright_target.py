"""
Playwright execution target.

PageActionHandler answers the executor's request messages (EXECUTE_ACTION,
CHECK_CONDITION, CHECK_ELEMENT, EXECUTE_JS_HATCH) against a live page and
always replies with a ``{"success": ..., ...}`` dict. PlaywrightTab wraps a
page in the target interface the executor expects: message delivery,
location changes, ready-state queries and load/close signals.
"""

from __future__ import annotations

import itertools
import json
import logging
import random
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Browser, BrowserContext, Page, async_playwright

import workflow_config
from navigation import LOAD_COMPLETE_EVENT, TARGET_DESTROYED_EVENT
from workflow_errors import TargetClosedError

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--start-maximized",
]

ANTI_DETECT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
"""

ACTION_TIMEOUT_MS = 15000

# Runs jsHatch code as the body of an async function with value/selector/element in scope
JS_HATCH_RUNNER = """
async ({ code, value, selector }) => {
    const AsyncFunction = Object.getPrototypeOf(async function () {}).constructor;
    const element = selector ? document.querySelector(selector) : null;
    const fn = new AsyncFunction('value', 'selector', 'element', code);
    return await fn(value, selector, element);
}
"""

READ_VALUE_SCRIPT = "el => ('value' in el ? el.value : el.textContent)"

_PAGE_EVENTS = {
    LOAD_COMPLETE_EVENT: "load",
    TARGET_DESTROYED_EVENT: "close",
}

_target_ids = itertools.count(1)


class PageActionHandler:
    """Performs workflow requests inside a Playwright page."""

    def __init__(self, page: Page):
        self.page = page

    async def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        msg_type = message.get("type")
        payload = message.get("payload") or {}
        handlers = {
            "EXECUTE_ACTION": self._execute_action,
            "CHECK_CONDITION": self._check_condition,
            "CHECK_ELEMENT": self._check_element,
            "EXECUTE_JS_HATCH": self._execute_code,
        }
        handler = handlers.get(msg_type)
        if handler is None:
            logger.warning(f"Unknown message type: {msg_type}")
            return {"success": False, "error": f"Unknown message type: {msg_type}"}

        try:
            return await handler(payload)
        except Exception as e:
            logger.warning(f"{msg_type} failed: {e}")
            return {"success": False, "error": str(e)}

    async def _element(self, selector: Optional[str]):
        if not selector:
            raise ValueError("A selector is required")
        locator = self.page.locator(selector)
        if await locator.count() == 0:
            raise LookupError(f"Element not found: {selector}")
        return locator.first

    async def _execute_action(self, payload: dict[str, Any]) -> dict[str, Any]:
        action = payload.get("action")
        selector = payload.get("selector")
        value = payload.get("value")

        if action == "click":
            element = await self._element(selector)
            await element.click(timeout=ACTION_TIMEOUT_MS)

        elif action == "type":
            element = await self._element(selector)
            await element.focus()
            await element.fill("" if value is None else str(value), timeout=ACTION_TIMEOUT_MS)

        elif action == "log":
            logger.info(f"[Page log] {value}")
            await self.page.evaluate("v => console.log('[Workflow]', v)", value)

        elif action == "wait":
            await self.page.wait_for_timeout(float(value or 0))

        else:
            # 'navigate' never arrives here; the executor uses PlaywrightTab.update_location
            return {"success": False, "error": f"Unknown action: {action}"}

        return {"success": True}

    async def _check_condition(self, payload: dict[str, Any]) -> dict[str, Any]:
        condition_type = payload.get("conditionType")
        selector = payload.get("selector")
        if not selector:
            raise ValueError("A selector is required")
        locator = self.page.locator(selector)

        if condition_type == "ifExists":
            met = await locator.count() > 0
        elif condition_type == "ifValue":
            if await locator.count() == 0:
                met = False
            else:
                actual = await locator.first.evaluate(READ_VALUE_SCRIPT)
                met = actual == payload.get("equalsValue")
        else:
            return {"success": False, "error": f"Unknown condition type: {condition_type}"}

        return {"success": True, "data": {"conditionMet": met}}

    async def _check_element(self, payload: dict[str, Any]) -> dict[str, Any]:
        selector = payload.get("selector")
        if not selector:
            return {"success": True, "exists": False}
        return {"success": True, "exists": await self.page.locator(selector).count() > 0}

    async def _execute_code(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self.page.evaluate(
            JS_HATCH_RUNNER,
            {
                "code": payload.get("code") or "",
                "value": payload.get("value"),
                "selector": payload.get("selector"),
            },
        )
        return {"success": True, "data": result}


class PlaywrightTab:
    """A Playwright page exposed as a workflow execution target."""

    def __init__(self, page: Page, target_id: Union[int, str, None] = None):
        self.page = page
        self.target_id = target_id if target_id is not None else next(_target_ids)
        self.handler = PageActionHandler(page)
        self._listeners: dict[tuple[str, Callable[[], Any]], Callable[..., None]] = {}

    async def send_message(self, message: dict[str, Any]) -> Any:
        if self.page.is_closed():
            raise TargetClosedError(f"Target {self.target_id} is closed")
        return await self.handler.handle(message)

    async def update_location(self, url: str) -> None:
        await self.page.goto(url, wait_until="commit", timeout=workflow_config.NAVIGATION_TIMEOUT_MS)

    async def get_status(self) -> str:
        try:
            return await self.page.evaluate("document.readyState")
        except PlaywrightError:
            # Execution context is being replaced by a navigation
            return "loading"

    def add_listener(self, event: str, callback: Callable[[], Any]) -> None:
        def wrapper(*_args: Any) -> None:
            callback()

        self._listeners[(event, callback)] = wrapper
        self.page.on(_PAGE_EVENTS[event], wrapper)

    def remove_listener(self, event: str, callback: Callable[[], Any]) -> None:
        wrapper = self._listeners.pop((event, callback), None)
        if wrapper is not None:
            self.page.remove_listener(_PAGE_EVENTS[event], wrapper)


async def create_context(browser: Browser, cookies_file: Optional[str] = None) -> BrowserContext:
    """Create a browser context with anti-detection settings and saved cookies."""
    vw = 1920 + random.randint(-100, 100)
    vh = 1080 + random.randint(-100, 100)

    ctx = await browser.new_context(
        viewport={"width": vw, "height": vh},
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        locale="en-US",
        timezone_id="America/New_York",
    )

    if cookies_file:
        cf = Path(cookies_file)
        if cf.exists():
            try:
                cookies = json.loads(cf.read_text())
                await ctx.add_cookies(cookies)
                logger.info(f"Loaded {len(cookies)} cookies")
            except (OSError, ValueError, PlaywrightError) as e:
                logger.warning(f"Could not load cookies: {e}")

    return ctx


async def save_cookies(ctx: BrowserContext, cookies_file: Optional[str]) -> None:
    """Save context cookies to file."""
    if not cookies_file:
        return
    cf = Path(cookies_file)
    cf.parent.mkdir(parents=True, exist_ok=True)
    cookies = await ctx.cookies()
    cf.write_text(json.dumps(cookies, indent=2))
    logger.info(f"Saved {len(cookies)} cookies")


@asynccontextmanager
async def open_tab(
    headless: bool = workflow_config.HEADLESS,
    cookies_file: Optional[str] = workflow_config.COOKIES_FILE,
    start_url: Optional[str] = None,
) -> AsyncIterator[PlaywrightTab]:
    """Launch Chromium, open one tab and yield it as a workflow target."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=BROWSER_ARGS)
        ctx = await create_context(browser, cookies_file)
        try:
            page = await ctx.new_page()
            await page.add_init_script(ANTI_DETECT_SCRIPT)
            if start_url:
                await page.goto(start_url, wait_until="domcontentloaded", timeout=60000)
            yield PlaywrightTab(page)
        finally:
            try:
                await save_cookies(ctx, cookies_file)
            except (OSError, PlaywrightError) as e:
                logger.warning(f"Could not save cookies: {e}")
            await browser.close()
