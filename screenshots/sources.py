"""Source list loading and validation."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from .reporting import Reporter, resolve_reporter
from .slugs import SCREENSHOT_EXTENSION, derive_slug, parse_url


class InvalidSourceError(ValueError):
    """Raised when a configured source entry cannot be used."""


@dataclass(slots=True, frozen=True)
class Source:
    name: str
    url: str
    categories: tuple[str, ...] = field(default_factory=tuple)
    score: float = 0.0

    @property
    def slug(self) -> str:
        return derive_slug(self.url or self.name, self.name or None)

    @property
    def screenshot_filename(self) -> str:
        return f"{self.slug}.{SCREENSHOT_EXTENSION}"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], reporter: Reporter | None = None) -> "Source":
        """Build a source from one raw entry.

        Only the URL is mandatory. A missing name becomes ``""``; unusable
        categories or scores are reported and replaced by their defaults.
        """

        raw_name = payload.get("name")
        name = raw_name.strip() if isinstance(raw_name, str) else ""

        url = payload.get("url")
        if not isinstance(url, str) or not url.strip():
            raise InvalidSourceError(f"{name or 'source'}: url must be a non-empty string")
        url = url.strip()
        if not is_absolute_http_url(url):
            raise InvalidSourceError(f"{name or 'source'}: url {url!r} is not an absolute http(s) URL")

        log = resolve_reporter(reporter)
        label = name or url
        return cls(
            name=name,
            url=url,
            categories=_coerce_categories(payload.get("categories"), label, log),
            score=_coerce_score(payload.get("score"), label, log),
        )


def is_absolute_http_url(value: str) -> bool:
    parsed = parse_url(value)
    return parsed is not None and parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _coerce_categories(raw: Any, label: str, log: Reporter) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,) if raw else ()
    if isinstance(raw, (list, tuple)):
        categories = tuple(item for item in raw if isinstance(item, str))
        if len(categories) != len(raw):
            log.warning("%s: ignoring non-string categories", label)
        return categories
    log.warning("%s: categories must be a list of strings; using none", label)
    return ()


def _coerce_score(raw: Any, label: str, log: Reporter) -> float:
    if raw is None:
        return 0.0
    score: float | None = None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        score = float(raw)
    elif isinstance(raw, str):
        try:
            score = float(raw.strip())
        except ValueError:
            score = None
    if score is None or not math.isfinite(score):
        log.warning("%s: score %r is not a finite number; using 0", label, raw)
        return 0.0
    return score


def coerce_sources(items: Iterable[Any], reporter: Reporter | None = None) -> list[Source]:
    """Validate raw entries, skipping (and reporting) the unusable ones."""

    log = resolve_reporter(reporter)
    sources: list[Source] = []
    for index, item in enumerate(items):
        if isinstance(item, Source):
            candidate: Any = {
                "name": item.name,
                "url": item.url,
                "categories": list(item.categories),
                "score": item.score,
            }
        else:
            candidate = item
        if not isinstance(candidate, Mapping):
            log.warning("Skipping source #%d: expected an object, got %s", index, type(item).__name__)
            continue
        try:
            sources.append(Source.from_mapping(candidate, log))
        except InvalidSourceError as exc:
            log.warning("Skipping source #%d: %s", index, exc)
    return sources


def _entries_from_payload(payload: Any) -> list[Any] | None:
    if isinstance(payload, Mapping):
        payload = payload.get("sources")
    if isinstance(payload, (list, tuple)):
        return list(payload)
    return None


def resolve_source_input(source_input: Any, reporter: Reporter | None = None) -> list[Source]:
    """Accept a list, a ``{"sources": [...]}`` mapping or a JSON file path.

    Missing or unreadable input is reported and yields an empty list.
    """

    log = resolve_reporter(reporter)
    if isinstance(source_input, (str, Path)):
        path = Path(source_input)
        if not path.exists():
            log.warning("Sources file not found at %s; skipping screenshots.", path)
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.error("Failed to read or parse sources file %s: %s", path, exc)
            return []
    else:
        payload = source_input

    entries = _entries_from_payload(payload)
    if entries is None:
        if payload is not None:
            log.warning("Unsupported sources input of type %s", type(payload).__name__)
        return []
    return coerce_sources(entries, log)
