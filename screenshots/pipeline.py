"""Build-time entry point: load sources, launch the browser, capture screenshots."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional, Sequence

from .blocker import BlockerInitError, ContentBlocker, load_content_blocker
from .browser import PageFactory, open_browser_session
from .capture import CaptureEngine
from .config import DEVELOPMENT, PRODUCTION, ScreenshotConfig, load_config
from .policy import CachePolicy
from .reporting import Reporter, configure_logging, resolve_reporter
from .scheduler import RunStats, ScreenshotScheduler, SourceProcessor
from .sources import resolve_source_input
from .stabilize import PageStabilizer
from .storage import LocalScreenshotStore, RemoteScreenshotStore, build_remote_store

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[ScreenshotConfig, Optional[ContentBlocker]], AsyncContextManager[PageFactory]]
BlockerFactory = Callable[[ScreenshotConfig], Awaitable[ContentBlocker]]


async def _default_blocker_factory(config: ScreenshotConfig) -> ContentBlocker:
    return await load_content_blocker(config.blocklist_urls)


class ScreenshotPipeline:
    """Wire the stores, policy, capture engine and scheduler for one run."""

    def __init__(
        self,
        config: ScreenshotConfig,
        *,
        reporter: Reporter | None = None,
        remote: RemoteScreenshotStore | None = None,
        session_factory: SessionFactory | None = None,
        blocker_factory: BlockerFactory | None = None,
    ) -> None:
        self._config = config
        self._reporter = resolve_reporter(reporter)
        self._remote = remote
        self._session_factory = session_factory or open_browser_session
        self._blocker_factory = blocker_factory or _default_blocker_factory

    async def _load_blocker(self) -> ContentBlocker | None:
        try:
            return await self._blocker_factory(self._config)
        except BlockerInitError as exc:
            self._reporter.warning("Failed to initialize ad blocker: %s", exc)
        except Exception as exc:
            self._reporter.warning("Unexpected error while initializing ad blocker: %s", exc)
            LOGGER.debug("Ad blocker initialisation failed", exc_info=True)
        return None

    async def run(self, source_input: Any) -> RunStats:
        config = self._config
        reporter = self._reporter
        if config.skip_screenshots:
            reporter.info("screenshots: SKIP_SCREENSHOTS=true; skipping pre-processing")
            return RunStats()

        sources = resolve_source_input(source_input, reporter)
        if not sources:
            reporter.info("No sources found for screenshot generation.")
            return RunStats()

        config.ensure_directories()
        remote = self._remote if self._remote is not None else build_remote_store(config)
        local = LocalScreenshotStore(config.screenshot_dir)
        reporter.info(
            "screenshots: processing %d sources (env=%s, remote=%s)",
            len(sources),
            config.environment,
            remote.enabled,
        )

        blocker = await self._load_blocker()
        stabilizer = PageStabilizer(
            image_wait_timeout_ms=config.image_wait_timeout_ms,
            blocker=blocker,
            reporter=reporter,
        )
        processor = SourceProcessor(
            config,
            local=local,
            remote=remote,
            policy=CachePolicy(config, local, remote, reporter),
            engine=CaptureEngine(config, local, stabilizer, reporter),
            reporter=reporter,
        )

        async with self._session_factory(config, blocker) as session:
            scheduler = ScreenshotScheduler(session, processor, config.worker_limit)
            stats = await scheduler.run(sources)

        reporter.info(
            "screenshots: %d attempted, %d generated, %d fetched, %d skipped, %d failed, %d invalid",
            stats.attempted,
            stats.generated,
            stats.fetched,
            stats.skipped,
            stats.failed,
            stats.invalid,
        )
        return stats


async def pre_process_sources(
    source_input: Any,
    reporter: Reporter | None = None,
    *,
    config: ScreenshotConfig | None = None,
) -> RunStats:
    """Run the screenshot pipeline once for a site build."""

    pipeline = ScreenshotPipeline(config or load_config(), reporter=reporter)
    return await pipeline.run(source_input)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Capture or refresh screenshots for configured sources")
    parser.add_argument(
        "--sources",
        type=Path,
        default=None,
        help="Path to the sources JSON file (defaults to data/sources.<SITE_VARIANT>.json)",
    )
    parser.add_argument("--screenshot-dir", type=Path, default=None, help="Directory for {slug}.webp files")
    parser.add_argument(
        "--env",
        choices=(DEVELOPMENT, PRODUCTION),
        default=None,
        help="Cache policy to apply (defaults to SCREENSHOT_ENV)",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Number of concurrent browser pages")
    parser.add_argument("--force", action="store_true", help="Regenerate every screenshot")
    parser.add_argument("--skip", action="store_true", help="Skip screenshot processing entirely")
    parser.add_argument("--skip-remote", action="store_true", help="Do not use the S3 screenshot cache")
    parser.add_argument("--headed", action="store_true", help="Run the browser with a visible window")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def build_config(args: argparse.Namespace, base: ScreenshotConfig | None = None) -> ScreenshotConfig:
    config = base or load_config()
    overrides: dict[str, Any] = {}
    if args.screenshot_dir is not None:
        overrides["screenshot_dir"] = args.screenshot_dir
    if args.env is not None:
        overrides["environment"] = args.env
    if args.concurrency is not None:
        if args.concurrency < 1:
            raise ValueError("--concurrency must be at least 1")
        overrides["concurrency"] = args.concurrency
    if args.force:
        overrides["force_regenerate"] = True
    if args.skip:
        overrides["skip_screenshots"] = True
    if args.skip_remote:
        overrides["skip_remote_storage"] = True
    if args.headed:
        overrides["headless"] = False
    return replace(config, **overrides) if overrides else config


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = build_config(args)
    except ValueError as exc:
        parser.error(str(exc))

    sources_path = args.sources or config.default_sources_file()
    asyncio.run(pre_process_sources(sources_path, config=config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
