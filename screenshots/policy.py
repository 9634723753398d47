"""Decide per source whether to render, download or leave a screenshot alone."""

from __future__ import annotations

from enum import Enum

from .config import ScreenshotConfig
from .reporting import Reporter, resolve_reporter
from .storage import LocalScreenshotStore, RemoteScreenshotStore, RemoteStorageError


class CacheDecision(str, Enum):
    GENERATE = "generate"
    FETCH = "fetch"
    SKIP = "skip"


class CachePolicy:
    """Freshness rules across the local directory and the optional remote cache.

    First matching rule wins:

    1. ``skip_screenshots`` never generates.
    2. ``force_regenerate`` always generates.
    3. development generates only when neither a local file nor a remote object
       exists (remote age is ignored).
    4. production generates when the remote object is missing or older than the
       cache timeout; without a remote cache it falls back to the local file.
    5. any other environment generates when the local file is missing.

    Remote failures are reported and treated as a cache miss.
    """

    def __init__(
        self,
        config: ScreenshotConfig,
        local: LocalScreenshotStore,
        remote: RemoteScreenshotStore,
        reporter: Reporter | None = None,
    ) -> None:
        self._config = config
        self._local = local
        self._remote = remote
        self._reporter = resolve_reporter(reporter)

    async def _remote_check(self, slug: str, *, freshness: bool) -> bool:
        try:
            if freshness:
                return await self._remote.is_fresh(slug)
            return await self._remote.exists(slug)
        except RemoteStorageError as exc:
            self._reporter.warning("Remote cache check failed for %s; treating as missing: %s", slug, exc)
            return False

    async def should_generate(self, slug: str) -> bool:
        config = self._config
        if config.skip_screenshots:
            self._reporter.debug("Skipping %s: screenshots disabled", slug)
            return False

        if config.force_regenerate:
            self._reporter.info("Force regenerate: will generate %s", slug)
            return True

        local_exists = await self._local.exists(slug)

        if config.is_development:
            if local_exists:
                return False
            if self._remote.enabled:
                remote_exists = await self._remote_check(slug, freshness=False)
                self._reporter.debug(
                    "[dev] remote screenshot %s for %s", "found" if remote_exists else "missing", slug
                )
                return not remote_exists
            self._reporter.debug("[dev] no remote cache configured; generating %s", slug)
            return True

        if config.is_production:
            if self._remote.enabled:
                fresh = await self._remote_check(slug, freshness=True)
                self._reporter.info(
                    "[prod] remote %s fresh within %dms? %s -> generate: %s",
                    slug,
                    config.cache_timeout_ms,
                    fresh,
                    not fresh,
                )
                return not fresh
            self._reporter.info(
                "[prod] remote cache unavailable; local %s exists? %s -> generate: %s",
                slug,
                local_exists,
                not local_exists,
            )
            return not local_exists

        return not local_exists

    async def decide(self, slug: str) -> CacheDecision:
        if self._config.skip_screenshots:
            return CacheDecision.SKIP
        if await self.should_generate(slug):
            return CacheDecision.GENERATE
        if self._remote.enabled and not await self._local.exists(slug):
            return CacheDecision.FETCH
        return CacheDecision.SKIP
