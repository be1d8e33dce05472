from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable
from urllib.parse import urlparse

from clipdrop.domain.errors import ValidationError


# Shell metacharacters: never valid in a share link
_DANGEROUS_CHARS_RX = re.compile(r"[;&|`$]")


@lru_cache(maxsize=8)
def _platform_url_rx(domain: str) -> re.Pattern[str]:
    d = re.escape(domain)
    return re.compile(
        rf"(https?://(?:www\.|vm\.|vt\.|m\.)?{d}/"
        r"(?:@[\w.-]+/video/\d+|[\w.-]+/|v/|t/|embed/|video/|(?:[^\s/]+)/?))",
        flags=re.IGNORECASE,
    )


def mentions_platform(text: str | None, domain: str) -> bool:
    return bool(text) and domain in text


def extract_platform_url(text: str | None, domain: str) -> str:
    if not text:
        raise ValidationError("Message text is empty")
    m = _platform_url_rx(domain).search(text)
    if not m:
        raise ValidationError(f"No valid {domain} URL in message")
    return m.group(1)


def validate_url(url: str, allowed_domains: Iterable[str]) -> str:
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as exc:
        raise ValidationError(f"Invalid URL format: {exc}") from exc

    if parsed.scheme not in ("http", "https"):
        raise ValidationError(f"Invalid URL scheme: {parsed.scheme!r}")
    if host not in set(allowed_domains):
        raise ValidationError(f"Invalid domain: {host}")
    if _DANGEROUS_CHARS_RX.search(url):
        raise ValidationError("URL contains potentially dangerous characters")

    return url
