"""Fan sources out across a fixed pool of browser pages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Sequence, TypeVar

from .browser import PageFactory
from .capture import CaptureEngine
from .config import ScreenshotConfig
from .policy import CacheDecision, CachePolicy
from .reporting import Reporter, resolve_reporter
from .sources import Source, is_absolute_http_url
from .storage import LocalScreenshotStore, RemoteScreenshotStore, RemoteStorageError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class SourceOutcome(str, Enum):
    GENERATED = "generated"
    FETCHED = "fetched"
    SKIPPED = "skipped"
    FAILED = "failed"
    INVALID = "invalid"


@dataclass(slots=True)
class RunStats:
    attempted: int = 0
    generated: int = 0
    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    invalid: int = 0

    def record(self, outcome: SourceOutcome) -> None:
        self.attempted += 1
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    def merge(self, other: "RunStats") -> None:
        for item in fields(self):
            setattr(self, item.name, getattr(self, item.name) + getattr(other, item.name))


def partition_round_robin(items: Sequence[T], worker_count: int) -> list[list[T]]:
    """Deal ``items`` across ``min(worker_count, len(items))`` partitions."""

    if not items:
        return []
    count = min(max(1, worker_count), len(items))
    partitions: list[list[T]] = [[] for _ in range(count)]
    for index, item in enumerate(items):
        partitions[index % count].append(item)
    return partitions


class SourceProcessor:
    """Apply the cache decision for one source: render, download or leave as is."""

    def __init__(
        self,
        config: ScreenshotConfig,
        *,
        local: LocalScreenshotStore,
        remote: RemoteScreenshotStore,
        policy: CachePolicy,
        engine: CaptureEngine,
        reporter: Reporter | None = None,
    ) -> None:
        self._config = config
        self._local = local
        self._remote = remote
        self._policy = policy
        self._engine = engine
        self._reporter = resolve_reporter(reporter)

    async def process(self, page: Any, source: Source) -> SourceOutcome:
        slug = source.slug
        if not source.url or not is_absolute_http_url(source.url):
            self._reporter.warning("Skipping source with missing or invalid URL: %s", source.name or slug)
            return SourceOutcome.INVALID

        decision = await self._policy.decide(slug)
        if decision is CacheDecision.GENERATE:
            return await self._generate(page, source, slug)
        if decision is CacheDecision.FETCH:
            return await self._fetch(source, slug)
        return SourceOutcome.SKIPPED

    async def _generate(self, page: Any, source: Source, slug: str) -> SourceOutcome:
        self._reporter.info("generate: %s", source.url)
        if not await self._engine.capture(page, source.url, slug):
            self._reporter.warning("no screenshot captured for %s", source.url)
            return SourceOutcome.FAILED

        if self._config.is_production and self._remote.enabled:
            try:
                await self._remote.upload(slug, self._local.path_for(slug))
            except RemoteStorageError as exc:
                self._reporter.warning("Failed to upload %s to remote storage: %s", slug, exc)
        return SourceOutcome.GENERATED

    async def _fetch(self, source: Source, slug: str) -> SourceOutcome:
        self._reporter.debug("[dev] download from remote cache for %s", source.url)
        try:
            downloaded = await self._remote.download(slug, self._local.path_for(slug))
        except RemoteStorageError as exc:
            self._reporter.warning("Remote download failed for %s: %s", source.url, exc)
            return SourceOutcome.FAILED
        if not downloaded:
            self._reporter.warning("Remote screenshot for %s disappeared before download", slug)
            return SourceOutcome.FAILED
        return SourceOutcome.FETCHED


class ScreenshotScheduler:
    """Run round-robin partitions concurrently, one page per partition.

    Each worker reuses its page for every source in its partition and closes it
    when done. Per-source errors are logged and counted, never propagated.
    """

    def __init__(self, pages: PageFactory, processor: SourceProcessor, concurrency: int) -> None:
        self._pages = pages
        self._processor = processor
        self._concurrency = max(1, concurrency)

    async def _run_worker(self, worker_id: int, partition: list[Source]) -> RunStats:
        stats = RunStats()
        try:
            page = await self._pages.new_page()
        except Exception:
            LOGGER.exception("Worker %d could not open a page; %d sources not processed", worker_id, len(partition))
            for _ in partition:
                stats.record(SourceOutcome.FAILED)
            return stats

        try:
            for source in partition:
                try:
                    outcome = await self._processor.process(page, source)
                except Exception:
                    LOGGER.exception("Unhandled error while processing %s", source.url)
                    outcome = SourceOutcome.FAILED
                stats.record(outcome)
        finally:
            await self._pages.close_page(page)
        LOGGER.debug("Worker %d finished %d sources", worker_id, len(partition))
        return stats

    async def run(self, sources: Sequence[Source]) -> RunStats:
        partitions = partition_round_robin(sources, self._concurrency)
        totals = RunStats()
        if not partitions:
            return totals
        results = await asyncio.gather(
            *(self._run_worker(index, partition) for index, partition in enumerate(partitions))
        )
        for result in results:
            totals.merge(result)
        return totals
