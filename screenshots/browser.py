"""Shared headless browser process and per-worker page contexts."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol

from playwright.async_api import Browser, Dialog, async_playwright
from playwright.async_api import Error as PlaywrightError

from .blocker import ContentBlocker
from .config import ScreenshotConfig

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = ("--no-sandbox", "--disable-setuid-sandbox")


class BrowserLaunchError(RuntimeError):
    """Raised when the headless browser cannot be started."""


class PageFactory(Protocol):
    async def new_page(self) -> Any:
        ...

    async def close_page(self, page: Any) -> None:
        ...


async def _dismiss_dialog(dialog: Dialog) -> None:
    try:
        await dialog.dismiss()
    except PlaywrightError:
        pass


class BrowserSession:
    """One browser process handing out pre-configured, isolated pages."""

    def __init__(
        self,
        browser: Browser,
        config: ScreenshotConfig,
        blocker: ContentBlocker | None = None,
    ) -> None:
        self._browser = browser
        self._config = config
        self._blocker = blocker

    async def new_page(self) -> Any:
        config = self._config
        context = await self._browser.new_context(
            viewport={"width": config.viewport_width, "height": config.viewport_height},
            device_scale_factor=config.device_scale_factor,
            user_agent=config.user_agent,
            color_scheme=config.color_scheme,
            java_script_enabled=True,
            bypass_csp=True,
            ignore_https_errors=True,
        )
        try:
            context.set_default_navigation_timeout(config.navigation_timeout_ms)
            context.set_default_timeout(config.navigation_timeout_ms)
            page = await context.new_page()
            page.on("dialog", _dismiss_dialog)
            if self._blocker is not None:
                try:
                    await self._blocker.enable_in_page(page)
                except PlaywrightError as exc:
                    LOGGER.warning("Failed to enable ad blocker: %s", exc)
        except BaseException:
            await context.close()
            raise
        return page

    async def close_page(self, page: Any) -> None:
        context = page.context
        try:
            await page.close()
        except PlaywrightError as exc:
            LOGGER.debug("Error while closing page: %s", exc)
        finally:
            try:
                await context.close()
            except PlaywrightError as exc:
                LOGGER.debug("Error while closing browser context: %s", exc)

    async def close(self) -> None:
        await self._browser.close()


@asynccontextmanager
async def open_browser_session(
    config: ScreenshotConfig,
    blocker: ContentBlocker | None = None,
) -> AsyncIterator[BrowserSession]:
    """Launch Chromium for the duration of the block; always closes it on exit."""

    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch(
                headless=config.headless,
                args=list(LAUNCH_ARGS),
                timeout=config.navigation_timeout_ms * 2,
            )
        except PlaywrightError as exc:
            raise BrowserLaunchError(f"Failed to launch browser: {exc}") from exc

        session = BrowserSession(browser, config, blocker)
        try:
            yield session
        finally:
            try:
                await session.close()
            except PlaywrightError as exc:
                LOGGER.warning("Error while closing browser: %s", exc)
