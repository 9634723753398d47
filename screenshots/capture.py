"""Drive one browser page through navigation and screenshot capture."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import ScreenshotConfig
from .imaging import CaptureError, encode_webp
from .reporting import Reporter, resolve_reporter
from .storage import LocalScreenshotStore

LOGGER = logging.getLogger(__name__)

READY_STATE_SCRIPT = "() => document.readyState === 'complete'"
# Pause before grabbing whatever the page shows after the last attempt failed.
FINAL_CAPTURE_DELAY_MS = 500
# Upper bound on the best-effort wait for network idle after navigation.
NETWORK_IDLE_TIMEOUT_MS = 5_000
_ERROR_PAGE_PREFIXES = ("chrome-error:", "about:blank")


class Page(Protocol):
    """Subset of :class:`playwright.async_api.Page` used for capture."""

    url: str

    async def goto(self, url: str, **kwargs: Any) -> Any:
        ...

    async def wait_for_load_state(self, state: str = ..., **kwargs: Any) -> None:
        ...

    async def wait_for_function(self, expression: str, **kwargs: Any) -> Any:
        ...

    async def wait_for_timeout(self, timeout: float) -> None:
        ...

    async def evaluate(self, expression: str, arg: Any = ...) -> Any:
        ...

    async def screenshot(self, **kwargs: Any) -> bytes:
        ...

    async def close(self) -> None:
        ...


class Stabilizer(Protocol):
    async def stabilize(self, page: Any) -> None:
        ...


class CaptureEngine:
    """Render a source URL and persist it as ``{slug}.webp`` in the local store.

    Each attempt navigates, waits for ``document.readyState`` to complete,
    pauses to let late content settle, stabilises the page and captures it.
    A failed attempt is retried until ``capture_attempts`` is exhausted. If the
    last attempt timed out, whatever the page currently shows is captured as a
    final best effort. Nothing is written when every step fails.
    """

    def __init__(
        self,
        config: ScreenshotConfig,
        store: LocalScreenshotStore,
        stabilizer: Stabilizer,
        reporter: Reporter | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._stabilizer = stabilizer
        self._reporter = resolve_reporter(reporter)

    async def _navigate(self, page: Page, url: str) -> None:
        config = self._config
        await page.goto(url, wait_until="domcontentloaded", timeout=config.navigation_timeout_ms)
        idle_timeout = min(NETWORK_IDLE_TIMEOUT_MS, config.navigation_timeout_ms)
        try:
            await page.wait_for_load_state("networkidle", timeout=idle_timeout)
        except PlaywrightTimeoutError:
            # Pages that keep polling never go fully idle.
            LOGGER.debug("Network never went idle for %s; continuing", url)
        await page.wait_for_function(READY_STATE_SCRIPT, timeout=config.ready_state_timeout_ms)

    async def _save(self, page: Page, slug: str) -> None:
        raw = await page.screenshot(full_page=self._config.full_page, type="png")
        encoded = encode_webp(raw, quality=self._config.webp_quality)
        try:
            await self._store.write(slug, encoded)
        except OSError as exc:
            raise CaptureError(f"Failed to write screenshot for {slug}: {exc}") from exc

    async def _attempt(self, page: Page, url: str, slug: str) -> None:
        await self._navigate(page, url)
        if self._config.settle_delay_ms > 0:
            await page.wait_for_timeout(self._config.settle_delay_ms)
        await self._stabilizer.stabilize(page)
        await self._save(page, slug)

    async def _capture_current_state(self, page: Page, slug: str) -> bool:
        current_url = getattr(page, "url", "") or ""
        if current_url.startswith(_ERROR_PAGE_PREFIXES):
            self._reporter.warning("No page content to capture for %s (at %s)", slug, current_url)
            return False
        try:
            await page.wait_for_timeout(FINAL_CAPTURE_DELAY_MS)
            await self._save(page, slug)
        except (PlaywrightError, CaptureError) as exc:
            self._reporter.warning("Failed final screenshot for %s: %s", slug, exc)
            return False
        return True

    async def capture(self, page: Page, url: str, slug: str) -> bool:
        attempts = max(1, self._config.capture_attempts)
        for attempt in range(1, attempts + 1):
            final = attempt == attempts
            try:
                await self._attempt(page, url, slug)
                return True
            except PlaywrightTimeoutError as exc:
                if not final:
                    self._reporter.warning(
                        "Attempt %d failed for %s: %s Retrying...", attempt, slug, exc
                    )
                    continue
                self._reporter.warning(
                    "Attempt %d exceeded timeout for %s; capturing current state.", attempt, slug
                )
                return await self._capture_current_state(page, slug)
            except (PlaywrightError, CaptureError) as exc:
                if not final:
                    self._reporter.warning(
                        "Attempt %d failed for %s: %s Retrying...", attempt, slug, exc
                    )
                    continue
                self._reporter.error("Screenshot failed for %s after %d attempts: %s", slug, attempt, exc)
                return False
        return False
