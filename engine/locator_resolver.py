"""Resolve a visible element from an ordered ladder of locator strategies."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from .errors import ElementNotFound
from .locators import LocatorSpec

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_STRATEGY_TIMEOUT_MS = 5_000
POLL_INTERVAL_MS = 100


SYNTHESIZED_SCRIPT = """
({kind, value}) => {
  const visible = (el) => {
    if (!(el instanceof Element)) return false;
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return rect.width > 0 && rect.height > 0 &&
      style.visibility !== 'hidden' && style.display !== 'none';
  };
  const deepest = (matches) =>
    matches.find(el => !matches.some(other => other !== el && el.contains(other))) || null;

  if (kind === 'xpath') {
    const result = document.evaluate(value, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null);
    const node = result.singleNodeValue;
    return visible(node) ? node : null;
  }
  if (kind === 'aria') {
    const labelled = Array.from(document.querySelectorAll('[aria-label]')).filter(visible);
    return labelled.find(el => el.getAttribute('aria-label') === value) ||
      labelled.find(el => (el.getAttribute('aria-label') || '').includes(value)) ||
      null;
  }
  if (kind === 'text') {
    const needle = value.trim();
    const all = Array.from(document.querySelectorAll('body *')).filter(visible);
    const exact = all.filter(el => (el.textContent || '').trim() === needle);
    if (exact.length) return deepest(exact);
    return deepest(all.filter(el => (el.textContent || '').includes(needle)));
  }
  return null;
}
"""


class _StrategyMiss(Exception):
    pass


@dataclass(slots=True)
class ResolvedElement:
    """A visible element together with how it was found."""

    target: Any
    strategy: str
    native: bool
    attempts: int
    elapsed_ms: int


class LocatorResolver:
    """Try native strategies first, then in-document synthesized ones.

    The first visible match wins; nothing after it is evaluated.  When every
    strategy misses, a single :class:`ElementNotFound` lists each attempt with
    its last error.
    """

    def __init__(
        self,
        page: Any,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        per_strategy_timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.page = page
        self.timeout_ms = timeout_ms
        self.per_strategy_timeout_ms = per_strategy_timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self._clock = clock

    async def resolve(
        self,
        spec: LocatorSpec,
        *,
        timeout_ms: Optional[int] = None,
        per_strategy_timeout_ms: Optional[int] = None,
    ) -> ResolvedElement:
        total_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        sub_ms = self.per_strategy_timeout_ms if per_strategy_timeout_ms is None else per_strategy_timeout_ms
        started = self._clock()
        deadline = started + total_ms / 1000
        attempts: List[Dict[str, Any]] = []
        skipped: List[str] = []

        for strategy in spec.ladder():
            remaining_ms = int((deadline - self._clock()) * 1000)
            if remaining_ms <= 0:
                skipped.append(strategy.describe())
                continue
            wait_ms = max(1, min(sub_ms, remaining_ms))
            try:
                if strategy.native:
                    target = await self._try_native(strategy, wait_ms)
                else:
                    target = await self._try_synthesized(strategy, wait_ms)
            except (_StrategyMiss, PlaywrightError) as exc:
                attempts.append({"strategy": strategy.describe(), "error": _first_line(exc)})
                log.debug("Strategy %s missed: %s", strategy.describe(), exc)
                continue
            elapsed_ms = int((self._clock() - started) * 1000)
            log.debug("Resolved %s via %s in %dms", spec.describe(), strategy.describe(), elapsed_ms)
            return ResolvedElement(
                target=target,
                strategy=strategy.describe(),
                native=strategy.native,
                attempts=len(attempts) + 1,
                elapsed_ms=elapsed_ms,
            )

        raise ElementNotFound.aggregate(spec.describe(), attempts, skipped)

    async def is_visible(self, spec: LocatorSpec, *, timeout_ms: int = 1_000) -> bool:
        """Presence probe used for post-conditions; never raises ElementNotFound."""

        try:
            await self.resolve(spec, timeout_ms=timeout_ms, per_strategy_timeout_ms=timeout_ms)
        except ElementNotFound:
            return False
        return True

    async def _try_native(self, strategy: Any, wait_ms: int) -> Any:
        locator = self.page.locator(strategy.playwright_selector()).first
        await locator.wait_for(state="visible", timeout=wait_ms)
        return locator

    async def _try_synthesized(self, strategy: Any, wait_ms: int) -> Any:
        value = getattr(strategy, "text", None) or getattr(strategy, "expr", "")
        deadline = self._clock() + wait_ms / 1000
        last_error = f"no visible match within {wait_ms}ms"
        while True:
            handle = await self.page.evaluate_handle(
                SYNTHESIZED_SCRIPT, {"kind": strategy.kind, "value": value}
            )
            element = handle.as_element() if handle is not None else None
            if element is not None:
                return element
            if handle is not None:
                await handle.dispose()
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise _StrategyMiss(last_error)
            await asyncio.sleep(min(self.poll_interval_ms / 1000, remaining))


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip() or exc.__class__.__name__
    return text.splitlines()[0]
