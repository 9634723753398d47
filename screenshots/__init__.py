"""Screenshot acquisition and caching pipeline for the news shuffle site."""

from .pipeline import ScreenshotPipeline, pre_process_sources

__all__ = ["ScreenshotPipeline", "pre_process_sources"]
