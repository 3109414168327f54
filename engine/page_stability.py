"""Waits that let an asynchronously re-rendering page settle between actions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from playwright.async_api import Error as PlaywrightError

log = logging.getLogger(__name__)

DEFAULT_STABILIZE_TIMEOUT = 2_000

LOADING_SELECTORS: Sequence[str] = (
    ".loading, .spinner, .loader",
    "[data-testid*='loading'], [data-testid*='spinner']",
    ".mat-progress-spinner, .mat-spinner, mat-spinner",
    ".MuiCircularProgress-root, .ant-spin",
)

DOM_IDLE_SCRIPT = """
    (timeoutMs) => new Promise(resolve => {
        const threshold = 300;
        let last = Date.now();
        const ob = new MutationObserver(() => (last = Date.now()));
        ob.observe(document, {subtree: true, childList: true, attributes: true});
        const start = Date.now();
        (function check() {
            if (Date.now() - last > threshold) {
                ob.disconnect();
                resolve(true);
                return;
            }
            if (Date.now() - start > timeoutMs) {
                ob.disconnect();
                resolve(false);
                return;
            }
            setTimeout(check, 50);
        })();
    })
"""


async def settle(delay_ms: int) -> None:
    """Fixed settling delay; a suspension point like any other wait."""

    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)


async def wait_dom_idle(page: Any, timeout_ms: int = DEFAULT_STABILIZE_TIMEOUT) -> bool:
    """Wait until DOM mutations have been idle for a short threshold."""

    try:
        return bool(await page.evaluate(DOM_IDLE_SCRIPT, timeout_ms))
    except PlaywrightError as exc:
        log.debug("DOM idle wait failed: %s", exc)
        await page.wait_for_timeout(100)
        return False


async def wait_for_loading_indicators(page: Any, timeout: int = 3_000) -> None:
    for selector in LOADING_SELECTORS:
        try:
            await page.wait_for_selector(selector, state="hidden", timeout=timeout)
        except PlaywrightError:
            continue


async def stabilize_page(page: Any, timeout: int = DEFAULT_STABILIZE_TIMEOUT) -> None:
    """Best-effort attempt to let the single-page app finish rendering."""

    try:
        await page.wait_for_load_state("networkidle", timeout=timeout)
    except PlaywrightError as exc:
        log.debug("Network idle not reached: %s", exc)
    await wait_dom_idle(page, timeout_ms=timeout)
    await wait_for_loading_indicators(page, timeout=timeout)
