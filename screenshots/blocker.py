"""Ad, tracker and cookie-consent blocking shared by every capture worker."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Sequence

import adblock
import httpx
from playwright.async_api import Error as PlaywrightError

LOGGER = logging.getLogger(__name__)

_LIST_FETCH_TIMEOUT = 30.0
# An invalid selector only voids the chunk it is injected with.
_SELECTOR_CHUNK_SIZE = 500

# Playwright resource types -> adblock request types.
_REQUEST_TYPES = {
    "document": "document",
    "stylesheet": "stylesheet",
    "image": "image",
    "media": "media",
    "font": "font",
    "script": "script",
    "texttrack": "other",
    "xhr": "xmlhttprequest",
    "fetch": "xmlhttprequest",
    "eventsource": "other",
    "websocket": "websocket",
    "manifest": "other",
    "other": "other",
}


class BlockerInitError(RuntimeError):
    """Raised when no block list could be loaded."""


class ContentBlocker:
    """Immutable wrapper around a compiled :class:`adblock.Engine`."""

    def __init__(self, engine: Any, *, list_count: int = 0) -> None:
        self._engine = engine
        self._list_count = list_count

    @property
    def list_count(self) -> int:
        return self._list_count

    @classmethod
    def from_filter_lists(cls, filter_lists: Iterable[str]) -> "ContentBlocker":
        filter_set = adblock.FilterSet()
        count = 0
        for filter_list in filter_lists:
            filter_set.add_filter_list(filter_list)
            count += 1
        return cls(adblock.Engine(filter_set=filter_set), list_count=count)

    def should_block(self, url: str, source_url: str, resource_type: str) -> bool:
        if resource_type == "document":
            # Never block the top-level navigation itself.
            return False
        request_type = _REQUEST_TYPES.get(resource_type, "other")
        result = self._engine.check_network_urls(url, source_url or url, request_type)
        return bool(result.matched)

    def hide_selectors(self, url: str) -> list[str]:
        resources = self._engine.url_cosmetic_resources(url)
        return sorted(resources.hide_selectors)

    async def enable_in_page(self, page: Any) -> None:
        async def handle_route(route: Any, request: Any) -> None:
            frame_url = ""
            try:
                frame_url = request.frame.url
            except PlaywrightError:
                pass
            try:
                blocked = self.should_block(request.url, frame_url or page.url, request.resource_type)
            except Exception:  # pragma: no cover - engine failure
                LOGGER.debug("Blocker check failed for %s", request.url, exc_info=True)
                blocked = False
            try:
                if blocked:
                    await route.abort()
                else:
                    await route.continue_()
            except PlaywrightError as exc:
                LOGGER.debug("Route handling failed for %s: %s", request.url, exc)

        await page.route("**/*", handle_route)

    async def apply_cosmetic_filters(self, page: Any) -> None:
        try:
            selectors = self.hide_selectors(page.url)
        except Exception:  # pragma: no cover - engine failure
            LOGGER.debug("Cosmetic lookup failed for %s", page.url, exc_info=True)
            return
        if not selectors:
            return
        for start in range(0, len(selectors), _SELECTOR_CHUNK_SIZE):
            chunk = selectors[start : start + _SELECTOR_CHUNK_SIZE]
            css = ",\n".join(chunk) + " { display: none !important; }"
            try:
                await page.add_style_tag(content=css)
            except PlaywrightError as exc:
                LOGGER.debug("Failed to inject cosmetic filters on %s: %s", page.url, exc)
                return


async def _fetch_list(client: httpx.AsyncClient, url: str) -> str | None:
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        LOGGER.warning("Failed to download block list %s: %s", url, exc)
        return None
    return response.text


async def load_content_blocker(
    urls: Sequence[str],
    *,
    client: httpx.AsyncClient | None = None,
) -> ContentBlocker:
    """Download every list concurrently and compile them into one engine."""

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=_LIST_FETCH_TIMEOUT, follow_redirects=True)
    try:
        results = await asyncio.gather(*(_fetch_list(client, url) for url in urls))
    finally:
        if owns_client:
            await client.aclose()

    lists = [text for text in results if text]
    if not lists:
        raise BlockerInitError("No block lists could be loaded")
    blocker = ContentBlocker.from_filter_lists(lists)
    LOGGER.info("Loaded content blocker from %d/%d lists", len(lists), len(urls))
    return blocker
