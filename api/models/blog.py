"""Blog post data models."""

import re

from pydantic import BaseModel, Field, field_validator

# Matches the frontmatter block written by ``build_post_file``
_FRONTMATTER_RE = re.compile(r"\A---\r?\n.*?\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class BlogPost(BaseModel):
    """A blog post as stored at ``content/blog/<id>.md``."""

    id: str
    title: str
    content: str  # raw file text, frontmatter included
    date: str  # ISO-8601
    image_url: str | None = None

    @property
    def body(self) -> str:
        """The post body with the frontmatter block removed."""
        match = _FRONTMATTER_RE.match(self.content)
        if not match:
            return self.content
        rest = self.content[match.end() :]
        # One blank line separates frontmatter from the body
        if rest.startswith("\r\n"):
            return rest[2:]
        if rest.startswith("\n"):
            return rest[1:]
        return rest


class BlogPostInput(BaseModel):
    """Create/update payload for a blog post."""

    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=100_000)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value


class BlogPostCreated(BaseModel):
    id: str
    message: str = "Blog post created successfully"


class BlogPostUpdated(BaseModel):
    id: str
    previous_id: str
    renamed: bool
    message: str = "Blog post updated successfully"
