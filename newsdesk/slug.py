"""URL slug generation."""

import re
from datetime import datetime, timezone

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w\-]+", re.ASCII)
_HYPHEN_RUNS = re.compile(r"--+")


def generate(title: str | None) -> str:
    """Turn a title into a lowercase, hyphen-separated slug.

    >>> generate(" Hello, World! ")
    'hello-world'
    """
    if not title:
        return ""
    slug = _WHITESPACE.sub("-", str(title).lower())
    slug = _NON_WORD.sub("", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-")


def generate_suffixed(title: str | None, now: datetime | None = None) -> str:
    """Slug with the last six digits of the epoch-millisecond clock appended.

    Lowers collision odds for sites that publish many similarly titled pieces.
    It is not a uniqueness guarantee: callers still check for an existing slug.
    """
    base = generate(title)
    if not base:
        return ""
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{base}-{str(millis)[-6:]}"
