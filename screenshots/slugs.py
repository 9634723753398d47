"""Stable, filesystem-safe keys for screenshot artifacts.

The key must match what the site generator computes for the same source, so
URLs are broken up the way a browser's URL parser does it: hostnames are
punycoded, paths are percent-encoded with dot segments resolved, and query
parameter names are decoded.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
from dataclasses import dataclass
from urllib.parse import parse_qsl, quote, unquote

MAX_BASE_LENGTH = 80
DEFAULT_FALLBACK = "screenshot"
SCREENSHOT_EXTENSION = "webp"

SPECIAL_SCHEMES = frozenset({"http", "https", "ws", "wss", "ftp", "file"})

_SCHEME_PREFIX_RE = re.compile(r"^https?://", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*):")
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_COMBINING_MARKS_RE = re.compile("[\u0300-\u036f]")
_STRIP_CHARS = "".join(chr(code) for code in range(0x21))
_FORBIDDEN_HOST_CHARS = frozenset(" #%/:<>?@[\\]^|\x7f") | frozenset(chr(code) for code in range(0x20))
_AUTHORITY_END_RE = re.compile(r"[/\\?#]")

# Printable ASCII left untouched in special-scheme paths; everything else is %XX-encoded.
_PATH_SAFE = "!$%&'()*+,-./:;=@[\\]^_|~"
_OPAQUE_PATH_SAFE = _PATH_SAFE + ' "#<>?`{}'


@dataclass(slots=True, frozen=True)
class ParsedUrl:
    scheme: str
    hostname: str
    pathname: str
    query: str


def _sanitize(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = _COMBINING_MARKS_RE.sub("", decomposed)
    return _NON_ALNUM_RE.sub("-", stripped).strip("-")


def _encode_host(raw_host: str) -> str | None:
    host = unquote(raw_host)
    if host.startswith("["):
        return host.lower() if host.endswith("]") and len(host) > 2 else None
    if not host:
        return None
    if not host.isascii():
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError:
            return None
    host = host.lower()
    if any(char in _FORBIDDEN_HOST_CHARS for char in host):
        return None
    return host


def _split_port(authority: str) -> tuple[str, str]:
    if authority.startswith("["):
        end = authority.find("]")
        if end == -1:
            return authority, ""
        host, rest = authority[: end + 1], authority[end + 1 :]
        return host, rest[1:] if rest.startswith(":") else rest
    host, separator, port = authority.rpartition(":")
    return (host, port) if separator else (authority, "")


def _normalize_path(path: str) -> str:
    segments: list[str] = []
    parts = path.split("/")[1:] if path.startswith("/") else path.split("/")
    for index, segment in enumerate(parts):
        last = index == len(parts) - 1
        lowered = segment.lower()
        if lowered in {"..", ".%2e", "%2e.", "%2e%2e"}:
            if segments:
                segments.pop()
            if last:
                segments.append("")
        elif lowered in {".", "%2e"}:
            if last:
                segments.append("")
        else:
            segments.append(quote(segment, safe=_PATH_SAFE))
    return "/" + "/".join(segments)


def parse_url(value: str) -> ParsedUrl | None:
    """Split an absolute URL into the parts used for slugs, or ``None`` if invalid."""

    value = value.strip(_STRIP_CHARS).replace("\t", "").replace("\n", "").replace("\r", "")
    match = _SCHEME_RE.match(value)
    if match is None:
        return None
    scheme = match.group(1).lower()
    remainder = value[match.end() :]
    remainder, _, _fragment = remainder.partition("#")

    special = scheme in SPECIAL_SCHEMES
    if special:
        remainder = remainder.replace("\\", "/")

    if special or remainder.startswith("//"):
        remainder = remainder.lstrip("/") if special else remainder[2:]
        end = _AUTHORITY_END_RE.search(remainder)
        authority = remainder[: end.start()] if end else remainder
        rest = remainder[end.start() :] if end else ""
        authority = authority.rpartition("@")[2]
        raw_host, port = _split_port(authority)
        if port and (not port.isdigit() or int(port) > 65535):
            return None
        if special:
            hostname = _encode_host(raw_host)
            if hostname is None and not (scheme == "file" and not raw_host):
                return None
            hostname = hostname or ""
        else:
            hostname = quote(raw_host, safe=_OPAQUE_PATH_SAFE)
        path, _, query = rest.partition("?")
        pathname = _normalize_path(path) if (special or path) else ""
    else:
        hostname = ""
        path, _, query = remainder.partition("?")
        pathname = quote(path, safe=_OPAQUE_PATH_SAFE)

    return ParsedUrl(scheme=scheme, hostname=hostname, pathname=pathname, query=query)


def _base_from_url(raw: str) -> str:
    if not raw:
        return ""

    parsed = parse_url(raw)
    if parsed is None and not _SCHEME_PREFIX_RE.match(raw):
        parsed = parse_url(f"https://{raw}")
    if parsed is None:
        return raw

    hostname = _WWW_RE.sub("", parsed.hostname)
    segments = [segment for segment in parsed.pathname.split("/") if segment]
    param_names = [name for name, _ in parse_qsl(parsed.query, keep_blank_values=True)][:2]

    parts = [hostname, *segments, "-".join(param_names)]
    joined = "-".join(part for part in parts if part)
    return joined or parsed.hostname


def derive_slug(raw: str | None, fallback: str | None = None) -> str:
    """Return ``{sanitized-base}-{6 hex}`` for a source URL (or name).

    The hex suffix is the SHA-1 of the raw input, so two inputs that sanitise
    to the same base still get distinct slugs. The base is cut at 80
    characters as is, even when the cut leaves a trailing hyphen.
    """

    source = raw or fallback or DEFAULT_FALLBACK
    base = _sanitize(_base_from_url(source)) or _sanitize(fallback or "") or DEFAULT_FALLBACK
    base = base[:MAX_BASE_LENGTH]
    digest = hashlib.sha1(str(source).encode("utf-8")).hexdigest()[:6]
    return f"{base}-{digest}"


def screenshot_filename(url: str | None, name: str | None = None) -> str:
    return f"{derive_slug(url or name, name)}.{SCREENSHOT_EXTENSION}"
