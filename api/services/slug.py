"""Title-to-identifier mapping for blog posts."""

import re
import time
import unicodedata

MAX_SLUG_LENGTH = 200

_WHITESPACE_RE = re.compile(r"[\s_]+")
_UNSAFE_RE = re.compile(r"[^a-z0-9-]")
_HYPHENS_RE = re.compile(r"-{2,}")


def base_slug(title: str) -> str:
    """Slug for *title* without the timestamp fallback; may be empty.

    Accented Latin letters are folded to ASCII ("Café" -> "cafe"); any other
    character outside ``[a-z0-9-]`` (CJK text, emoji, full-width punctuation)
    is dropped.
    """
    text = unicodedata.normalize("NFKD", title)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _WHITESPACE_RE.sub("-", text.lower())
    text = _UNSAFE_RE.sub("", text)
    text = _HYPHENS_RE.sub("-", text).strip("-")
    return text[:MAX_SLUG_LENGTH].rstrip("-")


def slugify(title: str, *, now_ms: int | None = None) -> str:
    """Convert a title to a lowercase, hyphen-separated, path-safe slug.

    Titles that reduce to nothing get a timestamp-derived id instead.
    """
    text = base_slug(title)
    if not text:
        stamp = now_ms if now_ms is not None else int(time.time() * 1000)
        return f"post-{stamp}"
    return text
