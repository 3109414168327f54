"""One rendering-client session per invocation, torn down exactly once."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

from playwright.async_api import async_playwright

from .config import LaunchConfig
from .errors import SessionLaunchFailure

log = logging.getLogger(__name__)


def navigator_script(overrides: Dict[str, Any]) -> str:
    """Init script redefining ``navigator`` properties; ``None`` means undefined."""

    lines = []
    for name, value in overrides.items():
        literal = "undefined" if value is None else json.dumps(value)
        lines.append(
            f"Object.defineProperty(navigator, {json.dumps(name)}, {{ get: () => {literal} }});"
        )
    return "\n".join(lines)


class BrowserSession(Protocol):
    page: Any

    async def close(self) -> None: ...


class Launcher(Protocol):
    async def launch(self, config: LaunchConfig) -> BrowserSession: ...


class PlaywrightSession:
    def __init__(self, playwright: Any, browser: Any, context: Any, page: Any) -> None:
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.page = page

    async def close(self) -> None:
        try:
            if self.context is not None:
                await self.context.close()
            if self.browser is not None:
                await self.browser.close()
        finally:
            if self.playwright is not None:
                await self.playwright.stop()
            self.playwright = None
            self.browser = None
            self.context = None
            self.page = None


class PlaywrightLauncher:
    """Launch headless Chromium with the configured identity."""

    async def launch(self, config: LaunchConfig) -> PlaywrightSession:
        playwright = await async_playwright().start()
        session = PlaywrightSession(playwright, None, None, None)
        try:
            session.browser = await playwright.chromium.launch(
                headless=config.headless,
                args=list(config.args),
                timeout=config.launch_timeout_ms,
            )
            session.context = await session.browser.new_context(
                viewport=config.viewport,
                user_agent=config.user_agent,
                extra_http_headers=config.extra_http_headers,
            )
            if config.navigator_overrides:
                await session.context.add_init_script(navigator_script(config.navigator_overrides))
            session.page = await session.context.new_page()
        except Exception:
            await session.close()
            raise
        return session


class SessionLifecycle:
    """Async context manager yielding the session's page.

    Teardown happens exactly once on every exit path.  A failing teardown is
    logged and never replaces the error that ended the run.
    """

    def __init__(self, launch_config: LaunchConfig, launcher: Optional[Launcher] = None) -> None:
        self.launch_config = launch_config
        self.launcher = launcher or PlaywrightLauncher()
        self.teardown_count = 0
        self._session: Optional[BrowserSession] = None
        self._closed = False

    @property
    def page(self) -> Any:
        return self._session.page if self._session is not None else None

    async def __aenter__(self) -> Any:
        try:
            self._session = await self.launcher.launch(self.launch_config)
        except SessionLaunchFailure:
            raise
        except Exception as exc:
            raise SessionLaunchFailure(
                f"Could not launch browser session: {exc}",
                details={"headless": self.launch_config.headless},
            ) from exc
        log.info("Browser session started")
        return self._session.page

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False

    async def close(self) -> None:
        if self._closed or self._session is None:
            return
        self._closed = True
        self.teardown_count += 1
        try:
            await self._session.close()
        except Exception as exc:
            log.warning("Browser session teardown failed: %s", exc)
        else:
            log.info("Browser session closed")
