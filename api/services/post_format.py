"""Blog post file format: frontmatter writing and tolerant parsing.

Posts are stored as::

    ---
    title: <title>
    date: <ISO-8601>
    ---

    <body>

Reading deliberately does NOT parse YAML.  Title and date come from the
first ``title:`` / ``date:`` match anywhere in the file, because existing
stored posts are not guaranteed to be valid YAML.
"""

import re
from datetime import datetime, timezone
from urllib.parse import unquote

from api.models.blog import BlogPost

BLOG_DIR = "content/blog"

_TITLE_RE = re.compile(r"title:\s*([^\r\n]+)")
_DATE_RE = re.compile(r"date:\s*([^\r\n]+)")
_IMAGE_URL_RE = re.compile(r"(https?://[^\s]+?\.(?:png|jpg|jpeg|gif|webp))", re.IGNORECASE)
_GITHUB_BLOB_RE = re.compile(
    r"^https://github\.com/([^/]+)/([^/]+)/blob/([^/]+)/(.+)\?raw=true$"
)


def post_path(post_id: str) -> str:
    return f"{BLOG_DIR}/{post_id}.md"


def post_id_from_name(file_name: str) -> str:
    return file_name.removesuffix(".md")


def iso_now() -> str:
    return to_iso(datetime.now(timezone.utc))


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def normalize_date(raw: str) -> str:
    """Normalize a stored date to ISO-8601 UTC; unparseable values pass through."""
    value = raw.strip()
    try:
        return to_iso(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return value


def extract_title(text: str) -> str | None:
    match = _TITLE_RE.search(text)
    return match.group(1) if match else None


def extract_date(text: str) -> str | None:
    """Return the stored date string verbatim, or None if there is none."""
    match = _DATE_RE.search(text)
    return match.group(1).strip() if match else None


def transform_github_image_url(src: str | None) -> str | None:
    """Rewrite ``github.com/.../blob/<ref>/<path>?raw=true`` to its raw host form."""
    if not src:
        return None
    match = _GITHUB_BLOB_RE.match(src)
    if not match:
        return src
    owner, repo, ref, path = match.groups()
    return f"https://raw.githubusercontent.com/{owner}/{repo}/{ref}/{path}"


def first_image_url(text: str) -> str | None:
    match = _IMAGE_URL_RE.search(text)
    if not match:
        return None
    url = match.group(1)
    if url.startswith("https://github.com/"):
        return transform_github_image_url(f"{url}?raw=true")
    return url


def build_post_file(title: str, date: str, body: str) -> str:
    return f"---\ntitle: {title}\ndate: {date}\n---\n\n{body}"


def parse_post(file_name: str, text: str) -> BlogPost:
    """Build a BlogPost from a stored file's name and text."""
    post_id = post_id_from_name(file_name)
    title = extract_title(text)
    raw_date = extract_date(text)
    return BlogPost(
        id=post_id,
        title=title if title is not None else unquote(post_id),
        content=text,
        date=normalize_date(raw_date) if raw_date else iso_now(),
        image_url=first_image_url(text),
    )


def is_post_file(name: str) -> bool:
    return name.endswith(".md") and name != ".gitkeep"
