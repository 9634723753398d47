"""Configuration shared by every stage of the screenshot pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEVELOPMENT = "development"
PRODUCTION = "production"

DEFAULT_SCREENSHOT_DIR = Path("src/images/screenshots")
DEFAULT_DATA_DIR = Path("data")
DEFAULT_BUCKET_NAME = "web-shuffle-screenshots"
DEFAULT_CACHE_CONTROL = "public, max-age=604800, immutable"
DEFAULT_CACHE_TIMEOUT_MS = 6 * 60 * 60 * 1000

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
)

SITE_VARIANTS = ("news", "drudge")

DEFAULT_BLOCKLIST_URLS = (
    "https://easylist.to/easylist/easylist.txt",
    "https://easylist.to/easylist/easyprivacy.txt",
    "https://pgl.yoyo.org/adservers/serverlist.php?hostformat=adblockplus&showintro=0&mimetype=plaintext",
    "https://secure.fanboy.co.nz/fanboy-cookiemonster.txt",
    "https://secure.fanboy.co.nz/fanboy-annoyance.txt",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True, frozen=True)
class RemoteStorageConfig:
    """Connection settings for the S3 screenshot cache."""

    bucket_name: str = DEFAULT_BUCKET_NAME
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    endpoint_url: Optional[str] = None
    cache_control: str = DEFAULT_CACHE_CONTROL

    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)


@dataclass(slots=True, frozen=True)
class ScreenshotConfig:
    environment: str = DEVELOPMENT
    screenshot_dir: Path = DEFAULT_SCREENSHOT_DIR
    force_regenerate: bool = False
    skip_screenshots: bool = False
    skip_remote_storage: bool = False
    remote: RemoteStorageConfig = field(default_factory=RemoteStorageConfig)
    viewport_width: int = 1080
    viewport_height: int = 1920
    device_scale_factor: float = 2.0
    user_agent: str = DEFAULT_USER_AGENT
    color_scheme: str = "dark"
    headless: bool = True
    full_page: bool = True
    navigation_timeout_ms: int = 30_000
    ready_state_timeout_ms: int = 15_000
    settle_delay_ms: int = 4_000
    image_wait_timeout_ms: int = 8_000
    cache_timeout_ms: int = DEFAULT_CACHE_TIMEOUT_MS
    concurrency: int = 4
    capture_attempts: int = 2
    webp_quality: int = 80
    blocklist_urls: tuple[str, ...] = DEFAULT_BLOCKLIST_URLS
    site_variant: str = "news"
    data_dir: Path = DEFAULT_DATA_DIR

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @property
    def cache_timeout_seconds(self) -> float:
        return self.cache_timeout_ms / 1000.0

    @property
    def worker_limit(self) -> int:
        return max(1, int(self.concurrency))

    def ensure_directories(self) -> None:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)

    def default_sources_file(self) -> Path:
        variant = self.site_variant if self.site_variant in SITE_VARIANTS else SITE_VARIANTS[0]
        return self.data_dir / f"sources.{variant}.json"


def _clean(environ: Mapping[str, str], name: str) -> str | None:
    raw = environ.get(name)
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None


def _coerce_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = _clean(environ, name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def _coerce_int(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    value = _clean(environ, name)
    if value is None:
        return default
    try:
        parsed = int(float(value))
    except ValueError as exc:
        raise ValueError(f"Invalid number for {name}: {value!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {parsed})")
    return parsed


def load_config(environ: Mapping[str, str] | None = None) -> ScreenshotConfig:
    """Build a :class:`ScreenshotConfig` from environment variables."""

    env = os.environ if environ is None else environ
    defaults = ScreenshotConfig()

    remote = RemoteStorageConfig(
        bucket_name=_clean(env, "SCREENSHOT_BUCKET") or DEFAULT_BUCKET_NAME,
        region=_clean(env, "AWS_REGION"),
        access_key_id=_clean(env, "AWS_ACCESS_KEY_ID"),
        secret_access_key=_clean(env, "AWS_SECRET_ACCESS_KEY"),
        session_token=_clean(env, "AWS_SESSION_TOKEN"),
        endpoint_url=_clean(env, "S3_ENDPOINT_URL"),
    )

    screenshot_dir_raw = _clean(env, "SCREENSHOT_DIR")
    return ScreenshotConfig(
        environment=(_clean(env, "SCREENSHOT_ENV") or DEVELOPMENT).lower(),
        screenshot_dir=Path(screenshot_dir_raw) if screenshot_dir_raw else defaults.screenshot_dir,
        force_regenerate=_coerce_bool(env, "FORCE_REGENERATE", False),
        skip_screenshots=_coerce_bool(env, "SKIP_SCREENSHOTS", False),
        skip_remote_storage=_coerce_bool(env, "SKIP_S3", False),
        remote=remote,
        viewport_width=_coerce_int(env, "SCREENSHOT_VIEWPORT_WIDTH", defaults.viewport_width, minimum=1),
        viewport_height=_coerce_int(env, "SCREENSHOT_VIEWPORT_HEIGHT", defaults.viewport_height, minimum=1),
        color_scheme=(_clean(env, "SCREENSHOT_COLOR_SCHEME") or defaults.color_scheme).lower(),
        headless=_coerce_bool(env, "SCREENSHOT_HEADLESS", defaults.headless),
        full_page=_coerce_bool(env, "SCREENSHOT_FULL_PAGE", defaults.full_page),
        navigation_timeout_ms=_coerce_int(
            env, "SCREENSHOT_NAVIGATION_TIMEOUT", defaults.navigation_timeout_ms, minimum=1
        ),
        ready_state_timeout_ms=_coerce_int(
            env, "SCREENSHOT_WAIT_FOR_BODY_TIMEOUT", defaults.ready_state_timeout_ms, minimum=1
        ),
        settle_delay_ms=_coerce_int(env, "SCREENSHOT_WAIT_AFTER_LOAD", defaults.settle_delay_ms),
        image_wait_timeout_ms=_coerce_int(
            env, "SCREENSHOT_WAIT_FOR_IMAGES_TIMEOUT", defaults.image_wait_timeout_ms
        ),
        cache_timeout_ms=_coerce_int(env, "SCREENSHOT_CACHE_TIMEOUT_MS", defaults.cache_timeout_ms),
        concurrency=_coerce_int(env, "SCREENSHOT_CONCURRENCY", defaults.concurrency, minimum=1),
        site_variant=(_clean(env, "SITE_VARIANT") or defaults.site_variant).lower(),
    )
