"""Build the Drudge Report source list from the outbound links on its front page."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from .reporting import configure_logging

LOGGER = logging.getLogger(__name__)

DRUDGE_URL = "https://www.drudgereport.com/"
DEFAULT_OUTPUT_FILE = Path("data/sources.drudge.json")
DEFAULT_IGNORE_FILE = Path("data/drudge-ignore-urls.txt")
USER_AGENT = "Mozilla/5.0 (compatible; NewsShuffleBot/1.0; +https://news.mickschroeder.com)"

DRUDGE_CATEGORY = "Drudge"
DRUDGE_SCORE = 3.0


class SourceBuildError(RuntimeError):
    """Raised when the Drudge source list cannot be produced."""


@dataclass(slots=True)
class IgnoreRules:
    scheme_prefixes: list[str] = field(default_factory=list)
    url_prefixes: list[str] = field(default_factory=list)
    domains: set[str] = field(default_factory=set)


def normalize_domain(hostname: str) -> str:
    lowered = hostname.lower()
    return lowered[4:] if lowered.startswith("www.") else lowered


def _is_internal_host(hostname: str) -> bool:
    normalized = normalize_domain(hostname)
    return normalized == "drudgereport.com" or normalized.endswith(".drudgereport.com")


def parse_ignore_rules(text: str) -> IgnoreRules:
    rules = IgnoreRules()
    for raw_line in text.splitlines():
        line = raw_line.strip().lower()
        if not line or line.startswith("#"):
            continue
        if line.endswith(":") and "/" not in line:
            rules.scheme_prefixes.append(line)
            continue
        parsed = urlsplit(line)
        # Invalid lines are ignored.
        if parsed.scheme in {"http", "https"} and parsed.hostname:
            rules.url_prefixes.append(line)
            rules.domains.add(normalize_domain(parsed.hostname))
    return rules


def load_ignore_rules(path: Path) -> IgnoreRules:
    if not path.exists():
        LOGGER.warning("Ignore file %s not found; no links will be filtered", path)
        return IgnoreRules()
    return parse_ignore_rules(path.read_text(encoding="utf-8"))


def extract_outbound_domains(html: str, rules: IgnoreRules, *, base_url: str = DRUDGE_URL) -> list[str]:
    soup = BeautifulSoup(html, "html.parser")
    domains: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href:
            continue
        href_lower = href.lower()
        if any(href_lower.startswith(prefix) for prefix in rules.scheme_prefixes):
            continue

        try:
            resolved = urljoin(base_url, href)
            parsed = urlsplit(resolved)
            hostname = parsed.hostname
        except ValueError:
            continue
        if parsed.scheme not in {"http", "https"} or not hostname:
            continue
        resolved_lower = resolved.lower()
        if any(resolved_lower.startswith(prefix) for prefix in rules.url_prefixes):
            continue
        if _is_internal_host(hostname):
            continue
        domain = normalize_domain(hostname)
        if domain in rules.domains:
            continue
        if domain:
            domains.add(domain)
    return sorted(domains)


def domains_to_sources(domains: Sequence[str]) -> list[dict]:
    return [
        {
            "name": domain,
            "url": f"https://{domain}/",
            "categories": [DRUDGE_CATEGORY],
            "score": DRUDGE_SCORE,
        }
        for domain in domains
    ]


def build_sources(
    rules: IgnoreRules,
    *,
    client: httpx.Client | None = None,
    url: str = DRUDGE_URL,
) -> list[dict]:
    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=30.0, follow_redirects=True, headers={"User-Agent": USER_AGENT})
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise SourceBuildError(f"Request to {url} failed: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    domains = extract_outbound_domains(response.text, rules, base_url=url)
    if not domains:
        raise SourceBuildError("No outbound domains were extracted from Drudge Report HTML.")
    return domains_to_sources(domains)


def write_sources(sources: Sequence[dict], output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(list(sources), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Regenerate the Drudge Report source list")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT_FILE, help="Destination JSON file")
    parser.add_argument("--ignore-file", type=Path, default=DEFAULT_IGNORE_FILE, help="Ignore rules file")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        sources = build_sources(load_ignore_rules(args.ignore_file))
        write_sources(sources, args.output)
    except (SourceBuildError, OSError) as exc:
        LOGGER.error("[sources:drudge] Failed: %s", exc)
        return 1

    LOGGER.info("Wrote %d sources to %s", len(sources), args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
